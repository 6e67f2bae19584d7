"""
Energy API - current, historic and predicted energy of cluster entities.

This module provides endpoints for:
- Health of the modeller and its telemetry source
- Hosts, the VMs and applications running on them
- Current, historic and predicted energy of hosts, VMs and applications
- Replacing host calibration data
- General purpose node overhead
"""

import time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .. import __version__
from ..deps import get_modeller
from ..models import (
    ApplicationInfo,
    CalibrationRequest,
    CalibrationResponse,
    CurrentPowerResponse,
    HealthResponse,
    HistoricEnergyResponse,
    HostInfo,
    PredictedEnergyResponse,
    TelemetryStatus,
    VmInfo,
)
from ..modeller import EnergyModeller
from ..types import CalibrationPoint, Host, TimePeriod, VmDeployed

router = APIRouter()


def _host_or_404(modeller: EnergyModeller, name: str) -> Host:
    host = modeller.host(name)
    if host is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Host '{name}' not found")
    return host


def _vm_or_404(modeller: EnergyModeller, name: str) -> VmDeployed:
    vm = modeller.vm(name)
    if vm is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"VM '{name}' not found")
    return vm


def _history_period(start: Optional[float], end: Optional[float]) -> Optional[TimePeriod]:
    if start is None and end is None:
        return None
    period = TimePeriod(start if start is not None else 0.0, end if end is not None else time.time())
    if not period.is_valid:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                            detail=f"Period start {period.start} is after its end {period.end}")
    return period


# ============================================================================
# Health
# ============================================================================

@router.get("/health", response_model=HealthResponse)
def health_check(modeller: EnergyModeller = Depends(get_modeller)):
    """
    Provides the health status of the modeller and its telemetry source.

    **Returns:** Telemetry connectivity, whether data gathering is running and the active predictor.
    """
    return HealthResponse(
        status="healthy",
        version=__version__,
        telemetry=TelemetryStatus(
            status=modeller.telemetry.check_health(),
            source=modeller.settings.TELEMETRY_SOURCE
        ),
        gathering=modeller.gatherer.running,
        predictor=str(modeller.predictor)
    )


# ============================================================================
# Hosts
# ============================================================================

@router.get("/hosts", response_model=List[HostInfo])
def list_hosts(modeller: EnergyModeller = Depends(get_modeller)):
    return [HostInfo.from_host(host) for host in modeller.host_list()]


@router.get("/hosts/{name}", response_model=HostInfo)
def get_host(name: str, modeller: EnergyModeller = Depends(get_modeller)):
    return HostInfo.from_host(_host_or_404(modeller, name))


@router.get("/hosts/{name}/vms", response_model=List[VmInfo])
def list_host_vms(name: str, modeller: EnergyModeller = Depends(get_modeller)):
    host = _host_or_404(modeller, name)
    return [VmInfo.from_vm(vm) for vm in modeller.vms_on_host(host)]


@router.get("/hosts/{name}/applications", response_model=List[ApplicationInfo])
def list_host_applications(name: str, modeller: EnergyModeller = Depends(get_modeller)):
    host = _host_or_404(modeller, name)
    return [ApplicationInfo.from_application(app) for app in modeller.applications_on_host(host)]


@router.get("/hosts/{name}/energy/current", response_model=CurrentPowerResponse)
def get_host_current_energy(name: str, modeller: EnergyModeller = Depends(get_modeller)):
    host = _host_or_404(modeller, name)
    record = modeller.current_energy_for_host(host)
    if record is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                            detail=f"No power measurement available for host '{name}'")
    return CurrentPowerResponse.from_record(record)


@router.get("/hosts/{name}/energy/historic", response_model=HistoricEnergyResponse)
def get_host_historic_energy(
    name: str,
    start: Optional[float] = Query(None, description="Start of the period in seconds since the epoch"),
    end: Optional[float] = Query(None, description="End of the period in seconds since the epoch"),
    modeller: EnergyModeller = Depends(get_modeller)
):
    host = _host_or_404(modeller, name)
    record = modeller.energy_record_for_host(host, _history_period(start, end))
    return HistoricEnergyResponse.from_record(record)


@router.get("/hosts/{name}/energy/predicted", response_model=PredictedEnergyResponse)
def get_host_predicted_energy(
    name: str,
    duration: int = Query(3600, gt=0, description="Length of the forecast in seconds from now"),
    modeller: EnergyModeller = Depends(get_modeller)
):
    host = _host_or_404(modeller, name)
    prediction = modeller.host_predicted_energy(host, modeller.vms_on_host(host), TimePeriod.from_now(duration))
    return PredictedEnergyResponse.from_prediction(prediction, str(modeller.predictor))


@router.put("/hosts/{name}/calibration", response_model=CalibrationResponse)
def put_host_calibration(name: str, request: CalibrationRequest, modeller: EnergyModeller = Depends(get_modeller)):
    """
    Replaces the calibration data of a host.

    Any power model fitted on the previous calibration data is discarded.
    """
    host = _host_or_404(modeller, name)
    points = [CalibrationPoint(cpu=p.cpu, memory=p.memory, watts=p.watts) for p in request.points]
    modeller.set_calibration_data(host, points)
    return CalibrationResponse(
        host=host.name,
        points=len(points),
        idle_power_watts=host.idle_power_consumption,
        max_power_watts=host.max_power_consumption
    )


# ============================================================================
# VMs
# ============================================================================

@router.get("/vms/{name}/energy/current", response_model=CurrentPowerResponse)
def get_vm_current_energy(name: str, modeller: EnergyModeller = Depends(get_modeller)):
    vm = _vm_or_404(modeller, name)
    return CurrentPowerResponse.from_record(modeller.current_energy_for_vm(vm))


@router.get("/vms/{name}/energy/historic", response_model=HistoricEnergyResponse)
def get_vm_historic_energy(
    name: str,
    start: Optional[float] = Query(None, description="Start of the period in seconds since the epoch"),
    end: Optional[float] = Query(None, description="End of the period in seconds since the epoch"),
    modeller: EnergyModeller = Depends(get_modeller)
):
    vm = _vm_or_404(modeller, name)
    record = modeller.energy_record_for_vm(vm, _history_period(start, end))
    return HistoricEnergyResponse.from_record(record)


@router.get("/vms/{name}/energy/predicted", response_model=PredictedEnergyResponse)
def get_vm_predicted_energy(
    name: str,
    duration: int = Query(3600, gt=0, description="Length of the forecast in seconds from now"),
    modeller: EnergyModeller = Depends(get_modeller)
):
    vm = _vm_or_404(modeller, name)
    host = vm.allocated_to
    if host is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT,
                            detail=f"VM '{name}' is not allocated to a host")
    prediction = modeller.predicted_energy_for_vm(vm, modeller.vms_on_host(host), host,
                                                  TimePeriod.from_now(duration))
    return PredictedEnergyResponse.from_prediction(prediction, str(modeller.predictor))


# ============================================================================
# Applications and general purpose nodes
# ============================================================================

@router.get("/applications/{name}/energy/current", response_model=List[CurrentPowerResponse])
def get_application_current_energy(name: str, modeller: EnergyModeller = Depends(get_modeller)):
    """Current power of every running instance of the named application."""
    apps = modeller.applications(name=name)
    if not apps:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Application '{name}' not found")
    return [CurrentPowerResponse.from_record(record) for record in modeller.current_energy_for_applications(apps)]


@router.get("/general-purpose/overhead", response_model=CurrentPowerResponse)
def get_general_purpose_overhead(modeller: EnergyModeller = Depends(get_modeller)):
    return CurrentPowerResponse.from_record(modeller.current_general_power_consumer_overhead())

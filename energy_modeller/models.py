from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .types import (
    ApplicationOnHost,
    CurrentUsageRecord,
    EnergyUsagePrediction,
    Host,
    TimePeriod,
    VmDeployed,
)


class BaseResponse(BaseModel):
    """Base model included in all API responses."""
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Timestamp of the response in UTC.")


class Period(BaseModel):
    start: float = Field(..., description="Start of the period in seconds since the epoch")
    end: float = Field(..., description="End of the period in seconds since the epoch")

    @classmethod
    def from_period(cls, period: Optional[TimePeriod]) -> Optional["Period"]:
        if period is None:
            return None
        return cls(start=period.start, end=period.end)


class CalibrationPointModel(BaseModel):
    cpu: float = Field(..., ge=0, le=1, description="CPU load fraction")
    memory: float = Field(0.0, ge=0, le=1, description="Memory load fraction")
    watts: float = Field(..., ge=0, description="Observed power in watts")


class CalibrationRequest(BaseModel):
    points: List[CalibrationPointModel] = Field(..., min_length=1, description="Replacement calibration points")


class HostInfo(BaseModel):
    """A physical host known to the modeller."""
    id: int
    name: str
    available: bool
    state: str
    cores: int = Field(..., ge=0)
    ram_mb: int = Field(..., ge=0)
    disk_gb: float = Field(..., ge=0)
    calibrated: bool
    idle_power_watts: float = Field(..., description="Lowest calibration power, 0 when uncalibrated")
    max_power_watts: float
    accelerators: List[str] = []

    @classmethod
    def from_host(cls, host: Host) -> "HostInfo":
        return cls(
            id=host.id,
            name=host.name,
            available=host.available,
            state=host.state,
            cores=host.cores,
            ram_mb=host.ram_mb,
            disk_gb=host.disk_gb,
            calibrated=host.is_calibrated,
            idle_power_watts=host.idle_power_consumption,
            max_power_watts=host.max_power_consumption,
            accelerators=[accelerator.name for accelerator in host.accelerators],
        )


class VmInfo(BaseModel):
    id: int
    name: str
    cpus: int
    ram_mb: int
    disk_gb: float
    state: str
    host: Optional[str] = None
    deployment_id: Optional[str] = None
    application_tags: List[str] = []
    disk_images: List[str] = []

    @classmethod
    def from_vm(cls, vm: VmDeployed) -> "VmInfo":
        return cls(
            id=vm.id,
            name=vm.name,
            cpus=vm.cpus,
            ram_mb=vm.ram_mb,
            disk_gb=vm.disk_gb,
            state=vm.state,
            host=vm.allocated_to.name if vm.allocated_to is not None else None,
            deployment_id=vm.deployment_id,
            application_tags=sorted(vm.application_tags),
            disk_images=sorted(vm.disk_images),
        )


class ApplicationInfo(BaseModel):
    id: int
    name: str
    status: str
    host: Optional[str] = None
    deployment_id: Optional[str] = None

    @classmethod
    def from_application(cls, app: ApplicationOnHost) -> "ApplicationInfo":
        return cls(
            id=app.id,
            name=app.name,
            status=app.status.value,
            host=app.allocated_to.name if app.allocated_to is not None else None,
            deployment_id=app.deployment_id,
        )


def _user_names(users) -> List[str]:
    return sorted(getattr(user, "name", str(user)) for user in users)


class CurrentPowerResponse(BaseResponse):
    """Latest power of one or more energy users."""
    energy_users: List[str]
    time: float = Field(..., description="Clock of the measurement in seconds since the epoch")
    power_watts: float

    @classmethod
    def from_record(cls, record: CurrentUsageRecord) -> "CurrentPowerResponse":
        return cls(energy_users=_user_names(record.energy_users), time=record.time, power_watts=record.power)


class EnergyUsageResponse(BaseResponse):
    """Average power and total energy of energy users over a period."""
    energy_users: List[str]
    avg_power_watts: float
    total_energy_wh: float
    period: Optional[Period] = None

    @classmethod
    def from_record(cls, record) -> "EnergyUsageResponse":
        return cls(
            energy_users=_user_names(record.energy_users),
            avg_power_watts=record.avg_power_used,
            total_energy_wh=record.total_energy_used,
            period=Period.from_period(record.duration),
        )


class HistoricEnergyResponse(EnergyUsageResponse):
    pass


class PredictedEnergyResponse(EnergyUsageResponse):
    predictor: str

    @classmethod
    def from_prediction(cls, record: EnergyUsagePrediction, predictor: str) -> "PredictedEnergyResponse":
        return cls(
            energy_users=_user_names(record.energy_users),
            avg_power_watts=record.avg_power_used,
            total_energy_wh=record.total_energy_used,
            period=Period.from_period(record.duration),
            predictor=predictor,
        )


class TelemetryStatus(BaseModel):
    status: str
    source: str


class HealthResponse(BaseResponse):
    status: str
    version: str
    telemetry: TelemetryStatus
    gathering: bool = Field(..., description="Whether the data gatherer thread is running")
    predictor: str


class CalibrationResponse(BaseResponse):
    host: str
    points: int
    idle_power_watts: float
    max_power_watts: float


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Optional[str] = None


class ErrorResponse(BaseResponse):
    error: ErrorDetail

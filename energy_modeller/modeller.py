"""
Energy modeller

The single entry point for energy questions about a cluster: historic
energy of hosts and VMs, current power of hosts, VMs and applications, and
forecasts for hosts and for VMs that may be placed on them.
"""

import logging
import time
from typing import Callable, Iterable, List, Optional

from .config import Settings
from .datastore import EnergyStore, InMemoryEnergyStore, ReadOnlyEnergyStore, create_accelerator_loader
from .division import LoadFractionShareRule, create_historic_division, create_share_rule
from .predictor import AbstractEnergyPredictor, create_energy_predictor
from .services import ApplicationEnergyUsageLogger, DataGatherer, VmEnergyUsageLogger
from .telemetry import TelemetrySource, create_telemetry_source
from .types import (
    ApplicationOnHost,
    CalibrationPoint,
    CurrentUsageRecord,
    EnergyUsagePrediction,
    EnergyUsageSource,
    HistoricUsageRecord,
    Host,
    TimePeriod,
    VM,
    VmDeployed,
)

logger = logging.getLogger(__name__)


def _valid_period(period: Optional[TimePeriod]) -> bool:
    if period is not None and not period.is_valid:
        logger.error(
            f"The time period passed to the energy modeller was invalid. "
            f"Please check the start and end times used. {period}"
        )
        return False
    return True


class EnergyModeller:
    """Facade over telemetry, the energy store, the predictor and the data gatherer."""

    def __init__(
        self,
        settings: Settings,
        telemetry: TelemetrySource,
        store: EnergyStore,
        predictor: AbstractEnergyPredictor,
        gatherer: DataGatherer,
    ):
        self.settings = settings
        self.telemetry = telemetry
        self.store = store
        self.predictor = predictor
        self.gatherer = gatherer

    def start(self):
        self.gatherer.start()

    def stop(self):
        """Stops data gathering and releases the store and telemetry connections."""
        self.gatherer.stop()
        self.store.close()
        self.telemetry.close()

    # Entities

    def host(self, name: str) -> Optional[Host]:
        return self.gatherer.host(name)

    def hosts(self, names: Iterable[str]) -> List[Optional[Host]]:
        return [self.host(name) for name in names]

    def host_list(self, sort_key: Optional[Callable[[Host], object]] = None) -> List[Host]:
        return sorted(self.gatherer.host_list(), key=sort_key or (lambda host: host.name))

    def vm(self, name: str) -> Optional[VmDeployed]:
        return self.gatherer.vm(name)

    def vms_on_host(self, host: Host) -> List[VmDeployed]:
        return self.gatherer.vms_on_host(host)

    def applications_on_host(self, host: Host) -> List[ApplicationOnHost]:
        return self.gatherer.applications_on_host(host)

    def applications(self, name: Optional[str] = None, deployment_id: Optional[str] = None) -> List[ApplicationOnHost]:
        return self.gatherer.application_list(name, deployment_id)

    def set_calibration_data(self, host: Host, points: List[CalibrationPoint]):
        """Replaces a host's calibration data and drops the models fitted on the old data."""
        host.calibration_data = list(points)
        self.store.set_host_calibration_data(host, host.calibration_data)
        self.predictor.invalidate(host)
        logger.info(f"Calibration data for {host.name} replaced with {len(points)} points")

    def set_vm_profile_data(self, vm: VmDeployed):
        self.store.set_vms([vm])
        self.store.set_vm_profile_data(vm)

    # Historic energy

    def energy_record_for_host(self, host: Host, period: Optional[TimePeriod] = None) -> Optional[HistoricUsageRecord]:
        """
        Energy used by a host, integrated over its stored power records

        Two or more records are integrated with the trapezoidal rule and
        the average power is the energy over the records' time span. A
        single record gives its power and no energy.
        """
        if not _valid_period(period):
            return None
        records = self.store.get_host_history_data(host, period)
        answer = HistoricUsageRecord(energy_users={host}, duration=period)
        if len(records) >= 2:
            total_energy = 0.0
            for first, second in zip(records, records[1:]):
                hours = (second.time - first.time) / 3600.0
                total_energy += abs(hours * (first.power + second.power) * 0.5)
            span = TimePeriod(records[0].time, records[-1].time)
            answer.total_energy_used = total_energy
            answer.avg_power_used = total_energy / span.duration_hours if span.duration > 0 else 0.0
            answer.duration = span
        elif len(records) == 1:
            answer.avg_power_used = records[0].power
            answer.total_energy_used = 0.0
            answer.duration = TimePeriod(records[0].time, records[0].time)
        return answer

    def energy_record_for_hosts(self, hosts: Iterable[Host], period: Optional[TimePeriod] = None) -> Optional[List[HistoricUsageRecord]]:
        if not _valid_period(period):
            return None
        return [self.energy_record_for_host(host, period) for host in hosts]

    def energy_record_for_vm(self, vm: VmDeployed, period: Optional[TimePeriod] = None) -> Optional[HistoricUsageRecord]:
        """Energy used by a VM: its load based share of its host's stored energy."""
        if not _valid_period(period):
            return None
        answer = HistoricUsageRecord(energy_users={vm}, duration=period)
        host = vm.allocated_to
        if host is None:
            logger.warning(f"The VM {vm.name} host was not correctly detected!")
            return answer
        samples = self.store.get_host_load_fraction_history(host, period)
        division = create_historic_division(self.settings.HISTORIC_DIVISION_RULE, host)
        for sample in samples:
            division.add_energy_users(sample.vms)
        division.set_energy_usage(self.store.get_host_history_data(host, period))
        division.set_load_fraction(samples)

        total_energy = division.energy_usage(vm)
        hours = division.duration() / 3600.0
        answer.total_energy_used = total_energy
        answer.avg_power_used = total_energy / hours if hours > 0 else 0.0
        if division.start is not None and division.end is not None:
            answer.duration = TimePeriod(division.start, division.end)
        return answer

    def energy_record_for_vms(self, vms: Iterable[VmDeployed], period: Optional[TimePeriod] = None) -> Optional[List[HistoricUsageRecord]]:
        if not _valid_period(period):
            return None
        return [self.energy_record_for_vm(vm, period) for vm in vms]

    def energy_record_for_deployment(self, deployment_id: str, period: Optional[TimePeriod] = None) -> Optional[List[HistoricUsageRecord]]:
        if not _valid_period(period):
            return None
        return [self.energy_record_for_vm(vm, period) for vm in self.gatherer.vm_list(deployment_id)]

    # Current power

    def current_energy_for_host(self, host: Host) -> Optional[CurrentUsageRecord]:
        return self.telemetry.current_energy_usage(host)

    def current_energy_for_hosts(self, hosts: Iterable[Host]) -> List[CurrentUsageRecord]:
        answer = []
        for host in hosts:
            record = self.current_energy_for_host(host)
            if record is not None:
                answer.append(record)
        return answer

    def _current_share(self, subject: EnergyUsageSource, host: Optional[Host],
                       co_resident: List[EnergyUsageSource], measure) -> CurrentUsageRecord:
        answer = CurrentUsageRecord(energy_users={subject}, time=time.time(), power=0.0)
        if host is None:
            logger.warning(f"The host of {subject} was not correctly detected!")
            return answer
        if subject not in co_resident:
            co_resident = co_resident + [subject]
        rule = create_share_rule(self.settings.CURRENT_DIVISION_RULE)
        if isinstance(rule, LoadFractionShareRule):
            rule.set_measurements(measure(co_resident))
        host_answer = self.telemetry.current_energy_usage(host)
        if host_answer is None:
            logger.warning(f"Host power consumption of {host.name} not detected correctly!")
            return answer
        division = rule.energy_usage(host, co_resident)
        division.consider_idle_energy = self.settings.CONSIDER_IDLE_ENERGY_CURRENT
        answer.time = host_answer.time
        answer.power = division.share_of(host_answer.power, subject)
        return answer

    def current_energy_for_vm(self, vm: VmDeployed) -> CurrentUsageRecord:
        host = vm.allocated_to
        co_resident = self.vms_on_host(host) if host is not None else []
        return self._current_share(vm, host, co_resident, self.telemetry.vm_measurements)

    def current_energy_for_vms(self, vms: Iterable[VmDeployed]) -> List[CurrentUsageRecord]:
        return [self.current_energy_for_vm(vm) for vm in vms]

    def current_energy_for_application(self, app: ApplicationOnHost) -> CurrentUsageRecord:
        host = app.allocated_to
        co_resident = self.applications_on_host(host) if host is not None else []
        return self._current_share(app, host, co_resident, self.telemetry.application_measurements)

    def current_energy_for_applications(self, apps: Iterable[ApplicationOnHost]) -> List[CurrentUsageRecord]:
        return [self.current_energy_for_application(app) for app in apps]

    def current_general_power_consumer_overhead(self) -> CurrentUsageRecord:
        """Current power of all general purpose nodes together."""
        nodes = self.gatherer.general_purpose_node_list()
        return CurrentUsageRecord(
            energy_users=set(nodes),
            time=time.time(),
            power=self.gatherer.general_purpose_power_consumption(),
        )

    def vm_total_current_power(self) -> float:
        return sum(record.power for record in self.current_energy_for_vms(self.telemetry.list_vms()))

    def hosts_total_current_power(self) -> float:
        return sum(record.power for record in self.current_energy_for_hosts(self.telemetry.list_hosts()))

    def vm_to_host_power_ratio(self) -> float:
        hosts_power = self.hosts_total_current_power()
        if hosts_power == 0:
            return 0.0
        return self.vm_total_current_power() / hosts_power

    def host_power_unallocated_to_vms(self) -> float:
        return self.hosts_total_current_power() - self.vm_total_current_power()

    # Forecasts

    def host_predicted_energy(self, host: Host, workload: Optional[Iterable[EnergyUsageSource]] = None,
                              period: Optional[TimePeriod] = None) -> Optional[EnergyUsagePrediction]:
        if not _valid_period(period):
            return None
        return self.predictor.host_predicted_energy(host, workload, period)

    def predicted_energy_for_vm(self, vm: VM, vms_on_host: Iterable[VM], host: Host,
                                period: Optional[TimePeriod] = None) -> Optional[EnergyUsagePrediction]:
        """Forecast for ``vm`` running alongside ``vms_on_host``; one hour from now by default."""
        if not _valid_period(period):
            return None
        vms = list(vms_on_host)
        if vm not in vms:
            vms.append(vm)
        return self.predictor.vm_predicted_energy(vm, vms, host, period)

    def predicted_energy_for_vm_transfer(self, vm: VmDeployed, destination: Host,
                                         period: Optional[TimePeriod] = None) -> Optional[EnergyUsagePrediction]:
        """
        Combined forecast for a VM on its current host and on ``destination``

        The destination forecast places a copy of the VM alongside the VMs
        already running there.
        """
        if not _valid_period(period):
            return None
        origin = vm.allocated_to
        if origin is None:
            logger.warning(f"The VM {vm.name} host was not correctly detected!")
            return None
        moved = VM(cpus=vm.cpus, ram_mb=vm.ram_mb, disk_gb=vm.disk_gb, name=vm.name,
                   application_tags=set(vm.application_tags), disk_images=set(vm.disk_images))
        origin_answer = self.predicted_energy_for_vm(vm, self.vms_on_host(origin), origin, period)
        destination_answer = self.predicted_energy_for_vm(moved, self.vms_on_host(destination), destination, period)
        return EnergyUsagePrediction(
            energy_users=origin_answer.energy_users | destination_answer.energy_users,
            avg_power_used=origin_answer.avg_power_used + destination_answer.avg_power_used,
            total_energy_used=origin_answer.total_energy_used + destination_answer.total_energy_used,
            duration=origin_answer.duration,
        )


def build_energy_modeller(settings: Settings, telemetry: Optional[TelemetrySource] = None,
                          store: Optional[EnergyStore] = None) -> EnergyModeller:
    """Wires up an EnergyModeller from configuration."""
    telemetry = telemetry or create_telemetry_source(settings)
    store = store or InMemoryEnergyStore()
    if not settings.PERFORM_DATA_GATHERING and not isinstance(store, ReadOnlyEnergyStore):
        store = ReadOnlyEnergyStore(store)
    predictor = create_energy_predictor(settings, telemetry, store)

    vm_logger = None
    if settings.LOG_VMS_TO_DISK:
        vm_logger = VmEnergyUsageLogger(
            settings.VM_LOG_FILENAME, consider_idle_energy=settings.LOGGER_CONSIDER_IDLE_ENERGY
        )
    app_logger = None
    if settings.LOG_APPS_TO_DISK:
        app_logger = ApplicationEnergyUsageLogger(
            settings.APP_LOG_FILENAME, consider_idle_energy=settings.LOGGER_CONSIDER_IDLE_ENERGY
        )
    gatherer = DataGatherer(
        telemetry,
        store,
        settings,
        accelerator_loader=create_accelerator_loader(settings.ACCELERATOR_CALIBRATION_DIR),
        vm_logger=vm_logger,
        app_logger=app_logger,
    )
    logger.info(
        f"Energy modeller using {settings.ENERGY_PREDICTOR} predictor "
        f"and {settings.TELEMETRY_SOURCE} telemetry"
    )
    return EnergyModeller(settings, telemetry, store, predictor, gatherer)

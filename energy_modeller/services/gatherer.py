"""
Data gatherer

Polls the telemetry source, keeps the registries of known hosts, VMs,
applications and general purpose nodes, and writes host energy records and
load fraction samples to the energy store.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from ..config import Settings
from ..datastore import AcceleratorCalibrationLoader, EnergyStore
from ..division import EnergyShareRule, LoadFractionShareRule
from ..telemetry import TelemetrySource
from ..types import (
    ApplicationOnHost,
    CalibrationPoint,
    GeneralPurposeNode,
    Host,
    JobStatus,
    LoadFractionSample,
    Measurement,
    VmDeployed,
    metrics,
    sum_power,
)
from .usage_logger import ApplicationEnergyUsageLogger, VmEnergyUsageLogger, apportion

logger = logging.getLogger(__name__)


class DataGatherer:
    """
    Background poller feeding the energy store

    Each tick discovers new hosts, VMs and general purpose nodes, then, for
    every host whose measurement has moved on since the previous tick,
    stores the host's power and the load fractions of the VMs on it.
    Failed ticks are counted; once the count passes FAULT_THRESHOLD the
    gatherer sleeps for FAULT_COOLDOWN_SECONDS and starts counting again.
    """

    def __init__(
        self,
        telemetry: TelemetrySource,
        store: EnergyStore,
        settings: Settings,
        sleep: Callable[[float], None] = time.sleep,
        accelerator_loader: Optional[AcceleratorCalibrationLoader] = None,
        vm_logger: Optional[VmEnergyUsageLogger] = None,
        app_logger: Optional[ApplicationEnergyUsageLogger] = None,
    ):
        self.telemetry = telemetry
        self.store = store
        self.settings = settings
        self.sleep = sleep
        self.accelerator_loader = accelerator_loader
        self.vm_logger = vm_logger
        self.app_logger = app_logger
        self.perform_data_gathering = settings.PERFORM_DATA_GATHERING
        self.write_back_rule: EnergyShareRule = LoadFractionShareRule()

        self.hosts: Dict[str, Host] = {}
        self.vms: Dict[str, VmDeployed] = {}
        self.general_purpose_nodes: Dict[str, GeneralPurposeNode] = {}
        self.applications: List[ApplicationOnHost] = []
        self._last_clock: Dict[str, int] = {}
        self._lock = threading.RLock()

        self.fault_count = 0
        self.cooldown_count = 0
        self._running = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # Lifecycle

    def start(self):
        """Runs the gather loop on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        if self.perform_data_gathering:
            for usage_logger in (self.vm_logger, self.app_logger):
                if usage_logger is not None:
                    usage_logger.start()
        self._running.set()
        self._thread = threading.Thread(target=self.run, name="DataGatherer", daemon=True)
        self._thread.start()
        logger.info("Data gatherer started")

    def stop(self, timeout: Optional[float] = None):
        """Stops after the current tick and flushes the disk loggers."""
        self._running.clear()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout)
        self._thread = None
        for usage_logger in (self.vm_logger, self.app_logger):
            if usage_logger is not None:
                usage_logger.stop()
        logger.info("Data gatherer stopped")

    @property
    def running(self) -> bool:
        return self._running.is_set()

    def run(self):
        self._running.set()
        while self._running.is_set():
            self.run_once()

    def run_once(self):
        """One guarded tick followed by the poll sleep or a fault cooldown."""
        try:
            self.tick()
        except Exception as e:
            self.fault_count += 1
            logger.error(f"Data gathering failed ({self.fault_count} faults): {e}", exc_info=True)
            if self.fault_count > self.settings.FAULT_THRESHOLD:
                self.cooldown_count += 1
                logger.error(
                    f"Fault threshold exceeded, pausing data gathering for "
                    f"{self.settings.FAULT_COOLDOWN_SECONDS}s"
                )
                self.sleep(self.settings.FAULT_COOLDOWN_SECONDS)
                self.fault_count = 0
                return
            self.sleep(self.settings.POLL_INTERVAL_SECONDS)
            return
        self.fault_count = max(self.fault_count - 1, 0)
        self.sleep(self.settings.POLL_INTERVAL_SECONDS)

    # Tick

    def tick(self):
        hosts = self.telemetry.list_hosts()
        self.refresh_hosts(hosts)
        nodes = self.telemetry.list_general_purpose_nodes()
        self.refresh_general_purpose_nodes(nodes)
        vms = self.telemetry.list_vms()
        self.refresh_vms(vms)
        with self._lock:
            self.applications = self.telemetry.list_applications()

        node_measurements = self.telemetry.host_measurements(nodes)
        offset = self.host_power_offset(node_measurements)
        for measurement in self.telemetry.host_measurements(hosts):
            with self._lock:
                host = self.hosts.get(measurement.entity.name, measurement.entity)
            measurement.entity = host
            if self.perform_data_gathering:
                self.gather_measurements(host, measurement, offset, vms)
        logger.debug(f"Tick complete: {len(hosts)} hosts, {len(vms)} VMs, {len(nodes)} general purpose nodes")

    def host_power_offset(self, node_measurements: List[Measurement]) -> float:
        """General purpose node power attributed to each known host."""
        with self._lock:
            host_count = len(self.hosts)
        if host_count == 0:
            return 0.0
        return sum_power(node_measurements) / host_count

    def gather_measurements(self, host: Host, measurement: Measurement, offset: float,
                            vms: List[VmDeployed]):
        """Stores a host measurement whose clock has moved on since the last one seen."""
        last = self._last_clock.get(host.name)
        if last is not None and measurement.clock <= last:
            return
        self._last_clock[host.name] = measurement.clock
        power = measurement.power
        if power == -1:
            logger.debug(f"No power reading for {host.name}, skipping")
            return
        energy = measurement.energy if measurement.energy_metric_exists else 0.0
        self.store.write_host_historic_data(host, measurement.clock, power, energy)

        resident = self.vms_on_host(host, vms)
        if resident:
            vm_measurements = self.telemetry.vm_measurements(resident)
            sample = LoadFractionSample(
                host=host,
                time=measurement.clock,
                fractions=LoadFractionSample.fractions_from_measurements(vm_measurements),
                host_power_offset=offset,
            )
            self.store.write_host_load_fraction(host, measurement.clock, sample)
            if self.vm_logger is not None:
                self.vm_logger.log(measurement, sample)
            self.write_back(measurement, sample, metrics.VM_POWER)

        apps = ApplicationOnHost.filter_by_host(
            self.telemetry.list_applications(JobStatus.RUNNING), host
        )
        if apps:
            app_measurements = self.telemetry.application_measurements(apps)
            if not app_measurements:
                return
            sample = LoadFractionSample(
                host=host,
                time=measurement.clock,
                fractions=LoadFractionSample.fractions_from_measurements(app_measurements),
                host_power_offset=offset,
            )
            if self.app_logger is not None:
                self.app_logger.log(measurement, sample)
            self.write_back(measurement, sample, metrics.APP_POWER)

    def write_back(self, measurement: Measurement, sample: LoadFractionSample, key: str):
        if not self.settings.WRITE_BACK_TO_TELEMETRY or not self.telemetry.supports_write_back:
            return
        for user, value in apportion(measurement, sample, self.write_back_rule,
                                     self.settings.LOGGER_CONSIDER_IDLE_ENERGY):
            self.telemetry.write_metric(user, key, value)

    # Registries

    def refresh_hosts(self, hosts: List[Host]):
        with self._lock:
            new_hosts = [h for h in hosts if h.name not in self.hosts]
            if not new_hosts:
                return
            self.store.set_hosts(new_hosts)
            for host in new_hosts:
                self.hosts[host.name] = self.check_and_calibrate(host)
                logger.info(f"Discovered host {host.name}")

    def refresh_general_purpose_nodes(self, nodes: List[GeneralPurposeNode]):
        with self._lock:
            new_nodes = [n for n in nodes if n.name not in self.general_purpose_nodes]
            if not new_nodes:
                return
            self.store.set_hosts(new_nodes)
            for node in new_nodes:
                self.general_purpose_nodes[node.name] = self.check_and_calibrate(node)
                logger.info(f"Discovered general purpose node {node.name}")

    def refresh_vms(self, vms: List[VmDeployed]):
        with self._lock:
            changed = []
            for vm in vms:
                if vm.allocated_to is None:
                    vm.allocated_to = self.resolve_host(vm)
                known = self.vms.get(vm.name)
                if known is None or (vm.allocated_to is not None and vm.allocated_to != known.allocated_to):
                    changed.append(vm)
            for vm in vms:
                self.store.get_vm_profile_data(vm)
            self.store.set_vms(changed)
            for vm in changed:
                self.vms[vm.name] = vm

    def check_and_calibrate(self, host: Host) -> Host:
        """Fills in calibration, profile and accelerator data for a newly seen host."""
        if not host.is_calibrated:
            host.calibration_data = self.store.get_host_calibration_data(host)
            host.profile_data = self.store.get_host_profile_data(host)
        if not host.is_calibrated and self.settings.AUTO_CALIBRATE_FROM_OBSERVED_POWER:
            self.calibrate_from_observed_power(host)
        if host.has_accelerator and not host.is_accelerators_calibrated and self.accelerator_loader is not None:
            self.accelerator_loader.calibrate(host)
        return host

    def calibrate_from_observed_power(self, host: Host):
        """Two point calibration from the lowest and highest power seen for ``host``."""
        lowest = self.telemetry.lowest_observed_power(host)
        highest = self.telemetry.highest_observed_power(host)
        if highest <= 0 or lowest < 0 or highest < lowest:
            logger.warning(f"Cannot calibrate {host.name} from observed power ({lowest}W, {highest}W)")
            return
        host.calibration_data = [
            CalibrationPoint(cpu=0.0, memory=0.0, watts=lowest),
            CalibrationPoint(cpu=1.0, memory=1.0, watts=highest),
        ]
        if self.perform_data_gathering:
            self.store.set_host_calibration_data(host, host.calibration_data)
        logger.info(f"Calibrated {host.name} from observed power: {lowest}W idle, {highest}W max")

    def resolve_host(self, vm: VmDeployed) -> Optional[Host]:
        """
        Host of a VM with no known allocation

        Asks the telemetry source first, then assumes the VM is named
        ``<prefix>_<hostname>``.
        """
        found = self.telemetry.vm_by_name(vm.name)
        if found is not None and found.allocated_to is not None:
            return self.hosts.get(found.allocated_to.name, found.allocated_to)
        if "_" in vm.name:
            return self.hosts.get(vm.name.split("_", 1)[1])
        return None

    # Lookups

    def host(self, name: str) -> Optional[Host]:
        with self._lock:
            return self.hosts.get(name)

    def host_list(self) -> List[Host]:
        with self._lock:
            return list(self.hosts.values())

    def general_purpose_node_list(self) -> List[GeneralPurposeNode]:
        with self._lock:
            return list(self.general_purpose_nodes.values())

    def vm(self, name: str) -> Optional[VmDeployed]:
        with self._lock:
            answer = self.vms.get(name)
        if answer is None:
            self.refresh_vms(self.telemetry.list_vms())
            with self._lock:
                answer = self.vms.get(name)
        return self._validate(answer)

    def vm_list(self, deployment_id: Optional[str] = None) -> List[VmDeployed]:
        with self._lock:
            vms = list(self.vms.values())
        if deployment_id is not None:
            vms = [vm for vm in vms if vm.deployment_id == deployment_id]
        return [self._validate(vm) for vm in vms]

    def vms_on_host(self, host: Host, active: Optional[List[VmDeployed]] = None) -> List[VmDeployed]:
        """Known VMs allocated to ``host`` that are still active."""
        if active is None:
            active = self.telemetry.list_vms()
        active_names = {vm.name for vm in active}
        with self._lock:
            known = list(self.vms.values())
        answer = []
        for vm in known:
            self._validate(vm)
            if vm.name in active_names and vm.allocated_to is not None and vm.allocated_to.name == host.name:
                answer.append(vm)
        return answer

    def applications_on_host(self, host: Optional[Host]) -> List[ApplicationOnHost]:
        if host is None:
            logger.warning("The host to get the list of applications for was not detected correctly")
            return []
        return ApplicationOnHost.filter_by_host(self.telemetry.list_applications(), host)

    def application_list(self, name: Optional[str] = None, deployment_id: Optional[str] = None) -> List[ApplicationOnHost]:
        apps = self.telemetry.list_applications()
        if name is not None:
            apps = [app for app in apps if app.name == name]
        if deployment_id is not None:
            apps = [app for app in apps if app.deployment_id == deployment_id]
        return apps

    def general_purpose_power_consumption(self) -> float:
        """Current total power of the known general purpose nodes."""
        return sum_power(self.telemetry.host_measurements(self.general_purpose_node_list()))

    def _validate(self, vm: Optional[VmDeployed]) -> Optional[VmDeployed]:
        if vm is not None and vm.allocated_to is None:
            vm.allocated_to = self.resolve_host(vm)
        return vm

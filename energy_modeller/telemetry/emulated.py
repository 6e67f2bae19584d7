"""
In-memory telemetry source

Entities and their measurements are registered programmatically. Used for
tests, demos and offline replays where no Prometheus server is available.
"""

import logging
import threading
import time
from typing import Dict, List, Optional, Tuple

from ..types import (
    ApplicationOnHost,
    EnergyUsageSource,
    GeneralPurposeNode,
    Host,
    JobStatus,
    Measurement,
    VmDeployed,
    metrics,
)
from .base import TelemetrySource

logger = logging.getLogger(__name__)


class EmulatedTelemetrySource(TelemetrySource):
    """A thread-safe, programmable telemetry source."""

    supports_write_back = True

    def __init__(self):
        self._hosts: Dict[str, Host] = {}
        self._vms: Dict[str, VmDeployed] = {}
        self._apps: Dict[Tuple, ApplicationOnHost] = {}
        self._general_nodes: Dict[str, GeneralPurposeNode] = {}
        self._measurements: Dict[EnergyUsageSource, Measurement] = {}
        self._power_seen: Dict[str, List[float]] = {}
        self._cpu_history: Dict[str, List[Tuple[float, float]]] = {}
        self.written_metrics: List[Tuple[EnergyUsageSource, str, float]] = []
        self._lock = threading.RLock()

    # Registration

    def add_host(self, host: Host):
        with self._lock:
            self._hosts[host.name] = host

    def remove_host(self, name: str):
        with self._lock:
            self._hosts.pop(name, None)

    def add_vm(self, vm: VmDeployed):
        with self._lock:
            self._vms[vm.name] = vm

    def remove_vm(self, name: str):
        with self._lock:
            self._vms.pop(name, None)

    def add_application(self, app: ApplicationOnHost):
        with self._lock:
            self._apps[app.identity] = app

    def add_general_purpose_node(self, node: GeneralPurposeNode):
        with self._lock:
            self._general_nodes[node.name] = node

    def set_measurement(self, entity: EnergyUsageSource, values: Dict[str, float],
                        clock: Optional[int] = None) -> Measurement:
        """Record the latest measurement for ``entity``."""
        measurement = Measurement(entity, int(time.time()) if clock is None else clock, dict(values))
        with self._lock:
            self._measurements[entity] = measurement
            if isinstance(entity, Host) and metrics.POWER in values:
                self._power_seen.setdefault(entity.name, []).append(values[metrics.POWER])
            if isinstance(entity, Host) and measurement.cpu_utilisation is not None:
                self._cpu_history.setdefault(entity.name, []).append(
                    (measurement.clock, measurement.cpu_utilisation)
                )
        return measurement

    # TelemetrySource

    def list_hosts(self) -> List[Host]:
        with self._lock:
            return list(self._hosts.values())

    def list_vms(self) -> List[VmDeployed]:
        with self._lock:
            return list(self._vms.values())

    def list_applications(self, status: Optional[JobStatus] = None) -> List[ApplicationOnHost]:
        with self._lock:
            apps = list(self._apps.values())
        if status is None:
            return apps
        return ApplicationOnHost.filter_by_status(apps, status)

    def list_general_purpose_nodes(self) -> List[GeneralPurposeNode]:
        with self._lock:
            return list(self._general_nodes.values())

    def host_measurement(self, host: Host) -> Optional[Measurement]:
        return self._latest(host)

    def vm_measurement(self, vm: VmDeployed) -> Optional[Measurement]:
        return self._latest(vm)

    def application_measurement(self, app: ApplicationOnHost) -> Optional[Measurement]:
        return self._latest(app)

    def lowest_observed_power(self, host: Host) -> float:
        with self._lock:
            seen = self._power_seen.get(host.name)
        return min(seen) if seen else 0.0

    def highest_observed_power(self, host: Host) -> float:
        with self._lock:
            seen = self._power_seen.get(host.name)
        return max(seen) if seen else 0.0

    def cpu_utilisation(self, host: Host, window_seconds: int) -> float:
        history = self.cpu_utilisation_history(host, window_seconds)
        if not history:
            return 0.0
        return sum(history) / len(history)

    def cpu_utilisation_history(self, host: Host, window_seconds: int) -> List[float]:
        with self._lock:
            samples = list(self._cpu_history.get(host.name, []))
        if not samples:
            return []
        newest = samples[-1][0]
        return [value for clock, value in samples if clock >= newest - window_seconds]

    def write_metric(self, entity: EnergyUsageSource, key: str, value: float):
        with self._lock:
            self.written_metrics.append((entity, key, value))

    def _latest(self, entity: EnergyUsageSource) -> Optional[Measurement]:
        with self._lock:
            return self._measurements.get(entity)

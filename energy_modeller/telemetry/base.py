"""
Telemetry source boundary

The data gatherer and the predictors consume a TelemetrySource: something
that can list the hosts, VMs, applications and general purpose nodes of a
cluster and report their latest measurements.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from ..types import (
    ApplicationOnHost,
    CurrentUsageRecord,
    EnergyUsageSource,
    GeneralPurposeNode,
    Host,
    JobStatus,
    Measurement,
    VmDeployed,
)

logger = logging.getLogger(__name__)


class TelemetrySource(ABC):
    """Read access to cluster telemetry, with optional metric write back."""

    supports_write_back = False

    @abstractmethod
    def list_hosts(self) -> List[Host]:
        ...

    @abstractmethod
    def list_vms(self) -> List[VmDeployed]:
        ...

    @abstractmethod
    def list_applications(self, status: Optional[JobStatus] = None) -> List[ApplicationOnHost]:
        ...

    @abstractmethod
    def list_general_purpose_nodes(self) -> List[GeneralPurposeNode]:
        ...

    @abstractmethod
    def host_measurement(self, host: Host) -> Optional[Measurement]:
        ...

    @abstractmethod
    def vm_measurement(self, vm: VmDeployed) -> Optional[Measurement]:
        ...

    @abstractmethod
    def application_measurement(self, app: ApplicationOnHost) -> Optional[Measurement]:
        ...

    @abstractmethod
    def lowest_observed_power(self, host: Host) -> float:
        ...

    @abstractmethod
    def highest_observed_power(self, host: Host) -> float:
        ...

    @abstractmethod
    def cpu_utilisation(self, host: Host, window_seconds: int) -> float:
        """Average CPU utilisation (0-1) of ``host`` over the last window."""
        ...

    def cpu_utilisation_history(self, host: Host, window_seconds: int) -> List[float]:
        """CPU utilisation samples (0-1), oldest first, over the last window."""
        return []

    def host_by_name(self, name: str) -> Optional[Host]:
        for host in self.list_hosts():
            if host.name == name:
                return host
        return None

    def vm_by_name(self, name: str) -> Optional[VmDeployed]:
        for vm in self.list_vms():
            if vm.name == name:
                return vm
        return None

    def host_measurements(self, hosts: Iterable[Host]) -> List[Measurement]:
        return self._collect(self.host_measurement, hosts)

    def vm_measurements(self, vms: Iterable[VmDeployed]) -> List[Measurement]:
        return self._collect(self.vm_measurement, vms)

    def application_measurements(self, apps: Iterable[ApplicationOnHost]) -> List[Measurement]:
        return self._collect(self.application_measurement, apps)

    def current_energy_usage(self, host: Host) -> Optional[CurrentUsageRecord]:
        """Latest power reading of ``host`` as a usage record."""
        measurement = self.host_measurement(host)
        if measurement is None:
            return None
        return CurrentUsageRecord(
            energy_users={host},
            time=measurement.clock,
            power=max(measurement.power, 0.0),
        )

    def write_metric(self, entity: EnergyUsageSource, key: str, value: float):
        """Publish a derived value for ``entity`` back into the telemetry system."""
        raise NotImplementedError(f"{type(self).__name__} does not support metric write back")

    def check_health(self) -> str:
        return "connected"

    def close(self):
        pass

    @staticmethod
    def _collect(fetch, entities) -> List[Measurement]:
        answer = []
        for entity in entities:
            measurement = fetch(entity)
            if measurement is not None:
                answer.append(measurement)
        return answer

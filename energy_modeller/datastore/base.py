"""
Persistent store boundary

Everything the energy modeller keeps between poll cycles and between
processes goes through an EnergyStore: entity registries, calibration and
profile data, raw historic host records and load fraction samples, and the
aggregate CPU history queries the workload estimators rely on.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..types import (
    CalibrationPoint,
    Host,
    HostEnergyRecord,
    HostProfileData,
    LoadFractionSample,
    LoadHistoryBootRecord,
    LoadHistoryRecord,
    LoadHistoryWeekRecord,
    TimePeriod,
    VM,
    VmDeployed,
)


class EnergyStore(ABC):

    # Registries

    @abstractmethod
    def get_hosts(self) -> List[Host]:
        ...

    @abstractmethod
    def set_hosts(self, hosts: List[Host]):
        ...

    @abstractmethod
    def get_vms(self) -> List[VmDeployed]:
        ...

    @abstractmethod
    def set_vms(self, vms: List[VmDeployed]):
        ...

    # Calibration and profile data

    @abstractmethod
    def get_host_calibration_data(self, host: Host) -> List[CalibrationPoint]:
        ...

    @abstractmethod
    def set_host_calibration_data(self, host: Host, points: List[CalibrationPoint]):
        ...

    @abstractmethod
    def get_host_profile_data(self, host: Host) -> List[HostProfileData]:
        ...

    @abstractmethod
    def set_host_profile_data(self, host: Host, data: List[HostProfileData]):
        ...

    @abstractmethod
    def get_vm_profile_data(self, vm: VM) -> VM:
        """Fills in ``vm``'s application tags and disk images from the store."""
        ...

    @abstractmethod
    def set_vm_profile_data(self, vm: VM):
        """Stores ``vm``'s application tags and disk images."""
        ...

    # Historic data

    @abstractmethod
    def write_host_historic_data(self, host: Host, time: int, power: float, energy: float):
        ...

    @abstractmethod
    def get_host_history_data(self, host: Host, period: Optional[TimePeriod] = None) -> List[HostEnergyRecord]:
        ...

    @abstractmethod
    def write_host_load_fraction(self, host: Host, time: int, sample: LoadFractionSample):
        ...

    @abstractmethod
    def get_host_load_fraction_history(
        self, host: Host, period: Optional[TimePeriod] = None
    ) -> List[LoadFractionSample]:
        ...

    # Aggregate CPU history of VMs

    @abstractmethod
    def average_cpu_utilisation_tag(self, tag: str) -> LoadHistoryRecord:
        ...

    @abstractmethod
    def average_cpu_utilisation_disk(self, disk: str) -> LoadHistoryRecord:
        ...

    @abstractmethod
    def average_cpu_utilisation_week_trace_for_tag(self, tag: str) -> List[LoadHistoryWeekRecord]:
        ...

    @abstractmethod
    def average_cpu_utilisation_week_trace_for_disk(self, disk: str) -> List[LoadHistoryWeekRecord]:
        ...

    @abstractmethod
    def average_cpu_utilisation_boot_trace_for_tag(self, tag: str, window_size: int) -> List[LoadHistoryBootRecord]:
        ...

    @abstractmethod
    def average_cpu_utilisation_boot_trace_for_disk(self, disk: str, window_size: int) -> List[LoadHistoryBootRecord]:
        ...

    def close(self):
        pass

"""
Read-only energy store

Used by energy modeller instances that do not own data gathering: reads go
to the wrapped store, writes are dropped.
"""

import logging
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
from .base import EnergyStore

logger = logging.getLogger(__name__)


class ReadOnlyEnergyStore(EnergyStore):

    def __init__(self, store: EnergyStore):
        self.store = store

    def _skip(self, operation: str):
        logger.debug(f"Read-only store: ignoring {operation}")

    def get_hosts(self) -> List[Host]:
        return self.store.get_hosts()

    def set_hosts(self, hosts: List[Host]):
        self._skip("set_hosts")

    def get_vms(self) -> List[VmDeployed]:
        return self.store.get_vms()

    def set_vms(self, vms: List[VmDeployed]):
        self._skip("set_vms")

    def get_host_calibration_data(self, host: Host) -> List[CalibrationPoint]:
        return self.store.get_host_calibration_data(host)

    def set_host_calibration_data(self, host: Host, points: List[CalibrationPoint]):
        self._skip("set_host_calibration_data")

    def get_host_profile_data(self, host: Host) -> List[HostProfileData]:
        return self.store.get_host_profile_data(host)

    def set_host_profile_data(self, host: Host, data: List[HostProfileData]):
        self._skip("set_host_profile_data")

    def get_vm_profile_data(self, vm: VM) -> VM:
        return self.store.get_vm_profile_data(vm)

    def set_vm_profile_data(self, vm: VM):
        self._skip("set_vm_profile_data")

    def write_host_historic_data(self, host: Host, time: int, power: float, energy: float):
        self._skip("write_host_historic_data")

    def get_host_history_data(self, host: Host, period: Optional[TimePeriod] = None) -> List[HostEnergyRecord]:
        return self.store.get_host_history_data(host, period)

    def write_host_load_fraction(self, host: Host, time: int, sample: LoadFractionSample):
        self._skip("write_host_load_fraction")

    def get_host_load_fraction_history(
        self, host: Host, period: Optional[TimePeriod] = None
    ) -> List[LoadFractionSample]:
        return self.store.get_host_load_fraction_history(host, period)

    def average_cpu_utilisation_tag(self, tag: str) -> LoadHistoryRecord:
        return self.store.average_cpu_utilisation_tag(tag)

    def average_cpu_utilisation_disk(self, disk: str) -> LoadHistoryRecord:
        return self.store.average_cpu_utilisation_disk(disk)

    def average_cpu_utilisation_week_trace_for_tag(self, tag: str) -> List[LoadHistoryWeekRecord]:
        return self.store.average_cpu_utilisation_week_trace_for_tag(tag)

    def average_cpu_utilisation_week_trace_for_disk(self, disk: str) -> List[LoadHistoryWeekRecord]:
        return self.store.average_cpu_utilisation_week_trace_for_disk(disk)

    def average_cpu_utilisation_boot_trace_for_tag(self, tag: str, window_size: int) -> List[LoadHistoryBootRecord]:
        return self.store.average_cpu_utilisation_boot_trace_for_tag(tag, window_size)

    def average_cpu_utilisation_boot_trace_for_disk(self, disk: str, window_size: int) -> List[LoadHistoryBootRecord]:
        return self.store.average_cpu_utilisation_boot_trace_for_disk(disk, window_size)

    def close(self):
        self.store.close()

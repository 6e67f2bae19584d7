"""
In-memory energy store

Keeps all records in process memory behind a lock. Aggregate CPU queries
treat a VM's load fraction in each stored sample as its CPU load.
"""

import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from operator import attrgetter
from typing import Callable, Dict, List, Optional, Set, Tuple

import numpy as np

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


def _in_period(time: float, period: Optional[TimePeriod]) -> bool:
    return period is None or period.start <= time <= period.end


def _summarise(loads: List[float]) -> Tuple[float, float]:
    if not loads:
        return 0.0, 0.0
    values = np.array(loads, dtype=float)
    return float(values.mean()), float(values.std())


class InMemoryEnergyStore(EnergyStore):
    """A thread-safe EnergyStore held entirely in memory."""

    def __init__(self):
        self._hosts: Dict[str, Host] = {}
        self._vms: Dict[str, VmDeployed] = {}
        self._calibration: Dict[str, List[CalibrationPoint]] = {}
        self._profiles: Dict[str, List[HostProfileData]] = {}
        self._vm_tags: Dict[str, Set[str]] = {}
        self._vm_disks: Dict[str, Set[str]] = {}
        self._host_records: Dict[str, Dict[int, HostEnergyRecord]] = defaultdict(dict)
        self._load_fractions: Dict[str, Dict[int, LoadFractionSample]] = defaultdict(dict)
        self._lock = threading.RLock()

    # Registries

    def get_hosts(self) -> List[Host]:
        with self._lock:
            return list(self._hosts.values())

    def set_hosts(self, hosts: List[Host]):
        with self._lock:
            for host in hosts:
                self._hosts[host.name] = host

    def get_vms(self) -> List[VmDeployed]:
        with self._lock:
            return list(self._vms.values())

    def set_vms(self, vms: List[VmDeployed]):
        with self._lock:
            for vm in vms:
                self._vms[vm.name] = vm

    # Calibration and profile data

    def get_host_calibration_data(self, host: Host) -> List[CalibrationPoint]:
        with self._lock:
            return list(self._calibration.get(host.name, []))

    def set_host_calibration_data(self, host: Host, points: List[CalibrationPoint]):
        with self._lock:
            self._calibration[host.name] = list(points)

    def get_host_profile_data(self, host: Host) -> List[HostProfileData]:
        with self._lock:
            return list(self._profiles.get(host.name, []))

    def set_host_profile_data(self, host: Host, data: List[HostProfileData]):
        with self._lock:
            self._profiles[host.name] = list(data)

    def get_vm_profile_data(self, vm: VM) -> VM:
        with self._lock:
            if vm.name in self._vm_tags:
                vm.application_tags = set(self._vm_tags[vm.name])
            if vm.name in self._vm_disks:
                vm.disk_images = set(self._vm_disks[vm.name])
        return vm

    def set_vm_profile_data(self, vm: VM):
        if not vm.name:
            raise ValueError("A VM must have a name to store its profile data")
        with self._lock:
            self._vm_tags[vm.name] = set(vm.application_tags)
            self._vm_disks[vm.name] = set(vm.disk_images)

    # Historic data

    def write_host_historic_data(self, host: Host, time: int, power: float, energy: float):
        with self._lock:
            self._host_records[host.name][time] = HostEnergyRecord(host, time, power, energy)

    def get_host_history_data(self, host: Host, period: Optional[TimePeriod] = None) -> List[HostEnergyRecord]:
        with self._lock:
            records = list(self._host_records.get(host.name, {}).values())
        return sorted((r for r in records if _in_period(r.time, period)), key=attrgetter("time"))

    def write_host_load_fraction(self, host: Host, time: int, sample: LoadFractionSample):
        with self._lock:
            self._load_fractions[host.name][time] = sample

    def get_host_load_fraction_history(
        self, host: Host, period: Optional[TimePeriod] = None
    ) -> List[LoadFractionSample]:
        with self._lock:
            samples = list(self._load_fractions.get(host.name, {}).values())
        return sorted((s for s in samples if _in_period(s.time, period)), key=attrgetter("time"))

    # Aggregate CPU history of VMs

    def _vm_loads(self, matches: Callable[[str], bool]) -> List[Tuple[str, int, float]]:
        """(vm name, clock, cpu load) for every stored sample of matching VMs."""
        rows = []
        with self._lock:
            for samples in self._load_fractions.values():
                for sample in samples.values():
                    for source, fraction in sample.fractions.items():
                        if isinstance(source, VmDeployed) and matches(source.name):
                            rows.append((source.name, sample.time, fraction))
        return rows

    def _tagged(self, tag: str) -> Callable[[str], bool]:
        return lambda name: tag in self._vm_tags.get(name, ())

    def _with_disk(self, disk: str) -> Callable[[str], bool]:
        return lambda name: disk in self._vm_disks.get(name, ())

    def _average(self, matches) -> LoadHistoryRecord:
        utilisation, std_dev = _summarise([load for _, _, load in self._vm_loads(matches)])
        return LoadHistoryRecord(utilisation, std_dev)

    def _week_trace(self, matches) -> List[LoadHistoryWeekRecord]:
        slots: Dict[Tuple[int, int], List[float]] = defaultdict(list)
        for _, clock, load in self._vm_loads(matches):
            moment = datetime.fromtimestamp(clock, tz=timezone.utc)
            slots[(moment.weekday(), moment.hour)].append(load)
        answer = []
        for (day, hour), loads in sorted(slots.items()):
            utilisation, std_dev = _summarise(loads)
            answer.append(LoadHistoryWeekRecord(utilisation, std_dev, day_of_week=day, hour_of_day=hour))
        return answer

    def _boot_trace(self, matches, window_size: int) -> List[LoadHistoryBootRecord]:
        if window_size <= 0:
            raise ValueError("Boot trace window size must be positive")
        rows = self._vm_loads(matches)
        first_seen: Dict[str, int] = {}
        for name, clock, _ in rows:
            first_seen[name] = min(clock, first_seen.get(name, clock))
        slots: Dict[int, List[float]] = defaultdict(list)
        for name, clock, load in rows:
            slots[int((clock - first_seen[name]) // window_size)].append(load)
        answer = []
        for index, loads in sorted(slots.items()):
            utilisation, std_dev = _summarise(loads)
            answer.append(LoadHistoryBootRecord(utilisation, std_dev, index=index))
        return answer

    def average_cpu_utilisation_tag(self, tag: str) -> LoadHistoryRecord:
        return self._average(self._tagged(tag))

    def average_cpu_utilisation_disk(self, disk: str) -> LoadHistoryRecord:
        return self._average(self._with_disk(disk))

    def average_cpu_utilisation_week_trace_for_tag(self, tag: str) -> List[LoadHistoryWeekRecord]:
        return self._week_trace(self._tagged(tag))

    def average_cpu_utilisation_week_trace_for_disk(self, disk: str) -> List[LoadHistoryWeekRecord]:
        return self._week_trace(self._with_disk(disk))

    def average_cpu_utilisation_boot_trace_for_tag(self, tag: str, window_size: int) -> List[LoadHistoryBootRecord]:
        return self._boot_trace(self._tagged(tag), window_size)

    def average_cpu_utilisation_boot_trace_for_disk(self, disk: str, window_size: int) -> List[LoadHistoryBootRecord]:
        return self._boot_trace(self._with_disk(disk), window_size)

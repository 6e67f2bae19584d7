"""
Usage and history record types

TimePeriod, raw historic records written by the data gatherer, and the
current, historic and predicted usage records returned to callers.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .energy_user import ApplicationOnHost, EnergyUsageSource, Host, VM, VmDeployed
from .measurement import Measurement

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimePeriod:
    """A closed interval of time in seconds since the epoch."""
    start: float
    end: float

    @property
    def is_valid(self) -> bool:
        return self.start <= self.end

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def duration_hours(self) -> float:
        return self.duration / 3600.0

    @classmethod
    def from_now(cls, seconds: float) -> "TimePeriod":
        now = time.time()
        return cls(now, now + seconds)

    @classmethod
    def last(cls, seconds: float) -> "TimePeriod":
        now = time.time()
        return cls(now - seconds, now)


@dataclass(frozen=True)
class HostEnergyRecord:
    host: Host
    time: int
    power: float
    energy: float = 0.0


@dataclass
class LoadFractionSample:
    """
    Share of a host's load held by each energy user at one instant

    ``host_power_offset`` is the shared infrastructure overhead attributed
    to this host at this instant, in watts.
    """
    host: Host
    time: int
    fractions: Dict[EnergyUsageSource, float] = field(default_factory=dict)
    host_power_offset: float = 0.0

    def fraction(self, source: EnergyUsageSource) -> float:
        return self.fractions.get(source, 0.0)

    @property
    def sources(self) -> List[EnergyUsageSource]:
        return list(self.fractions.keys())

    @property
    def vms(self) -> List[VmDeployed]:
        return [s for s in self.fractions if isinstance(s, VmDeployed)]

    @property
    def applications(self) -> List[ApplicationOnHost]:
        return [s for s in self.fractions if isinstance(s, ApplicationOnHost)]

    @staticmethod
    def fractions_from_measurements(
        measurements: List[Measurement],
        consider_core_count: bool = False,
    ) -> Dict[EnergyUsageSource, float]:
        """
        Derive load fractions from CPU utilisation measurements

        Args:
            measurements: One measurement per energy user on the same host
            consider_core_count: Scale each fraction by the VM's core count

        Returns:
            Mapping of energy user to its share of the host's CPU load. When
            any measurement lacks CPU data every user gets 1.0; when the
            total load is zero the load is split evenly.
        """
        answer: Dict[EnergyUsageSource, float] = {}
        if not measurements:
            return answer
        loads = [m.cpu_utilisation for m in measurements]
        if any(load is None for load in loads):
            logger.warning("Using fallback due to no CPU load information.")
            return {m.entity: 1.0 for m in measurements}
        total_load = sum(loads)
        if total_load == 0:
            logger.warning("Using fallback due to the total CPU load being equal to zero.")
            count = float(len(measurements))
            return {m.entity: 1.0 / count for m in measurements}
        for measurement, load in zip(measurements, loads):
            fraction = load / total_load
            if consider_core_count and isinstance(measurement.entity, VM):
                fraction = max(measurement.entity.cpus, 1) * fraction
            answer[measurement.entity] = fraction
        return answer


def energy_users_of(samples: Iterable[LoadFractionSample]) -> Set[EnergyUsageSource]:
    answer: Set[EnergyUsageSource] = set()
    for sample in samples:
        answer.update(sample.fractions.keys())
    return answer


@dataclass(eq=False)
class UsageRecord:
    energy_users: Set[EnergyUsageSource] = field(default_factory=set)

    @property
    def energy_user(self) -> Optional[EnergyUsageSource]:
        """The single energy user of this record, if there is exactly one."""
        if len(self.energy_users) == 1:
            return next(iter(self.energy_users))
        return None


@dataclass(eq=False)
class EnergyUsagePrediction(UsageRecord):
    avg_power_used: float = 0.0
    total_energy_used: float = 0.0
    duration: Optional[TimePeriod] = None


@dataclass(eq=False)
class CurrentUsageRecord(UsageRecord):
    time: float = 0.0
    power: float = 0.0
    current: float = -1.0
    voltage: float = -1.0


@dataclass(eq=False)
class HistoricUsageRecord(UsageRecord):
    avg_power_used: float = 0.0
    total_energy_used: float = 0.0
    duration: Optional[TimePeriod] = None


@dataclass(frozen=True)
class LoadHistoryRecord:
    """Average CPU utilisation and its standard deviation."""
    utilisation: float
    std_dev: float = 0.0


@dataclass(frozen=True)
class LoadHistoryWeekRecord(LoadHistoryRecord):
    day_of_week: int = 0
    hour_of_day: int = 0


@dataclass(frozen=True)
class LoadHistoryBootRecord(LoadHistoryRecord):
    index: int = 0

"""
Telemetry measurements

A measurement is a snapshot of named metric values for one entity at one
clock value (seconds since the epoch).
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from . import metrics
from .energy_user import EnergyUsageSource


@dataclass
class Measurement:
    entity: EnergyUsageSource
    clock: int
    metrics: Dict[str, float] = field(default_factory=dict)

    def metric(self, key: str) -> Optional[float]:
        return self.metrics.get(key)

    def has_metric(self, key: str) -> bool:
        return key in self.metrics

    @property
    def power(self) -> float:
        """Instantaneous power in watts, -1 when the entity has no power meter."""
        value = self.metrics.get(metrics.POWER)
        return -1.0 if value is None else value

    @property
    def energy_metric_exists(self) -> bool:
        return metrics.ENERGY in self.metrics

    @property
    def energy(self) -> float:
        return self.metrics.get(metrics.ENERGY, 0.0)

    @property
    def cpu_utilisation(self) -> Optional[float]:
        """CPU utilisation as a fraction, None when no CPU data was reported."""
        spot = self.metrics.get(metrics.CPU_SPOT_USAGE_PERCENT)
        if spot is not None:
            return spot / 100.0
        idle = self.metrics.get(metrics.CPU_IDLE_PERCENT)
        if idle is not None:
            return (100.0 - idle) / 100.0
        return None

    @property
    def memory_utilisation(self) -> Optional[float]:
        available = self.metrics.get(metrics.MEMORY_AVAILABLE_BYTES)
        total = self.metrics.get(metrics.MEMORY_TOTAL_BYTES)
        if available is None or not total:
            return None
        return (total - available) / total

    def filter_metrics(self, names: Iterable[str]) -> Dict[str, float]:
        return {name: self.metrics[name] for name in names if name in self.metrics}


HostMeasurement = Measurement
VmMeasurement = Measurement
ApplicationMeasurement = Measurement


def sum_power(measurements: List[Measurement]) -> float:
    """Total power of the measurements that carry a power reading."""
    return sum(m.power for m in measurements if m.power > 0)

"""
Calibration data types

Calibration points are the observed (workload, power) pairs that the
predictive models are fitted against.
"""

from dataclasses import dataclass, field
from typing import Dict, List


@dataclass(frozen=True)
class CalibrationPoint:
    """Observed host power at a given CPU and memory load (fractions 0-1)."""
    cpu: float
    memory: float
    watts: float


@dataclass
class AcceleratorCalibrationPoint:
    """Observed accelerator power for a set of named accelerator metrics."""
    identifier: str
    parameters: Dict[str, float] = field(default_factory=dict)
    power: float = 0.0

    def has_parameter(self, name: str) -> bool:
        return name in self.parameters

    def parameter(self, name: str) -> float:
        return self.parameters[name]


@dataclass(frozen=True)
class HostProfileData:
    """A benchmark result for a host, e.g. flops per watt."""
    type: str
    value: float


def calibration_arrays(points: List[CalibrationPoint]):
    """Split calibration points into (cpu loads, watts) lists."""
    return [p.cpu for p in points], [p.watts for p in points]

"""Background services: data gathering and disk logging of apportioned power."""

from .gatherer import DataGatherer
from .usage_logger import ApplicationEnergyUsageLogger, EnergyUsageLogger, VmEnergyUsageLogger

__all__ = [
    "ApplicationEnergyUsageLogger",
    "DataGatherer",
    "EnergyUsageLogger",
    "VmEnergyUsageLogger",
]

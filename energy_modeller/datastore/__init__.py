"""Persistent store for energy history, calibration and profile data."""

from .accelerator_calibration import AcceleratorCalibrationLoader, create_accelerator_loader
from .base import EnergyStore
from .memory import InMemoryEnergyStore
from .read_only import ReadOnlyEnergyStore

__all__ = [
    "AcceleratorCalibrationLoader",
    "EnergyStore",
    "InMemoryEnergyStore",
    "ReadOnlyEnergyStore",
    "create_accelerator_loader",
]

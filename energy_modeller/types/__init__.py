"""
Domain types for energy accounting
"""

from .calibration import AcceleratorCalibrationPoint, CalibrationPoint, HostProfileData, calibration_arrays
from .energy_user import (
    Accelerator,
    AcceleratorType,
    ApplicationOnHost,
    EnergyUsageSource,
    GeneralPurposeNode,
    Host,
    JobStatus,
    VM,
    VmDeployed,
    hosts_by_name,
)
from .measurement import (
    ApplicationMeasurement,
    HostMeasurement,
    Measurement,
    VmMeasurement,
    sum_power,
)
from .usage import (
    CurrentUsageRecord,
    EnergyUsagePrediction,
    HistoricUsageRecord,
    HostEnergyRecord,
    LoadFractionSample,
    LoadHistoryBootRecord,
    LoadHistoryRecord,
    LoadHistoryWeekRecord,
    TimePeriod,
    energy_users_of,
)

__all__ = [
    "Accelerator",
    "AcceleratorCalibrationPoint",
    "AcceleratorType",
    "ApplicationMeasurement",
    "ApplicationOnHost",
    "CalibrationPoint",
    "CurrentUsageRecord",
    "EnergyUsagePrediction",
    "EnergyUsageSource",
    "GeneralPurposeNode",
    "HistoricUsageRecord",
    "Host",
    "HostEnergyRecord",
    "HostMeasurement",
    "HostProfileData",
    "JobStatus",
    "LoadFractionSample",
    "LoadHistoryBootRecord",
    "LoadHistoryRecord",
    "LoadHistoryWeekRecord",
    "Measurement",
    "TimePeriod",
    "VM",
    "VmDeployed",
    "VmMeasurement",
    "calibration_arrays",
    "energy_users_of",
    "hosts_by_name",
    "sum_power",
]

"""
Exception hierarchy for the energy modeller
"""


class EnergyModellerError(Exception):
    """Base class for all energy modeller errors."""
    pass


class ConfigurationError(EnergyModellerError):
    """Raised when a configured selector or option is not recognised."""
    pass


class TelemetryError(EnergyModellerError):
    """Custom exception for telemetry source errors."""
    pass


class StoreError(EnergyModellerError):
    """Raised when the persistent store cannot serve a request."""
    pass


class InsufficientCalibrationDataError(EnergyModellerError):
    """Raised when a model is fitted with too few calibration points."""

    def __init__(self, required: int, available: int):
        super().__init__(
            f"Need at least {required} calibration points, got {available}"
        )
        self.required = required
        self.available = available

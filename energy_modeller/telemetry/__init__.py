"""
Telemetry sources the energy modeller polls
"""

from typing import Callable, Dict

from ..config import Settings
from ..exceptions import ConfigurationError
from .base import TelemetrySource
from .emulated import EmulatedTelemetrySource
from .prometheus import PrometheusClient, PrometheusTelemetrySource

TELEMETRY_SOURCES: Dict[str, Callable[[Settings], TelemetrySource]] = {
    "prometheus": PrometheusTelemetrySource,
    "emulated": lambda settings: EmulatedTelemetrySource(),
}


def create_telemetry_source(settings: Settings) -> TelemetrySource:
    """Build the telemetry source selected by ``TELEMETRY_SOURCE``."""
    try:
        factory = TELEMETRY_SOURCES[settings.TELEMETRY_SOURCE]
    except KeyError:
        raise ConfigurationError(
            f"Unknown telemetry source '{settings.TELEMETRY_SOURCE}', "
            f"expected one of {sorted(TELEMETRY_SOURCES)}"
        ) from None
    return factory(settings)


__all__ = [
    "EmulatedTelemetrySource",
    "PrometheusClient",
    "PrometheusTelemetrySource",
    "TELEMETRY_SOURCES",
    "TelemetrySource",
    "create_telemetry_source",
]

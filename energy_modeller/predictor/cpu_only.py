"""
CPU only energy predictors

Host power is modelled purely from CPU load, fitted against the host's
calibration data. One fitted model per host is kept in a bounded cache.
"""

import logging
from typing import Optional

from ..types import Host, calibration_arrays
from .base import AbstractEnergyPredictor
from .cache import ModelCache
from .functions import (
    LinearFunction,
    PolynomialFunction,
    PredictorFunction,
    SplineFunction,
    build_predictor_function,
)

logger = logging.getLogger(__name__)


def fit_cpu_model(function_type, host: Host) -> PredictorFunction:
    """Fit ``function_type`` to the host's (CPU load, watts) calibration points."""
    cpu, watts = calibration_arrays(host.calibration_data)
    logger.info(f"Fitting {function_type.__name__} for {host.name} on {len(cpu)} calibration points")
    return build_predictor_function(function_type, cpu, watts)


class CpuOnlyEnergyPredictor(AbstractEnergyPredictor):
    """Linear model of power against CPU load."""

    name = "cpu_only_linear"
    function_type = LinearFunction

    def __init__(self, settings, workload_estimator=None, share_rule=None):
        super().__init__(settings, workload_estimator, share_rule)
        self.model_cache = ModelCache(settings.MODEL_CACHE_MAX_SIZE)

    def cpu_model(self, host: Host) -> PredictorFunction:
        return self.model_cache.get_or_create(host.name, lambda: fit_cpu_model(self.function_type, host))

    def predict_power_used(self, host: Host, cpu_usage: Optional[float] = None) -> float:
        if cpu_usage is None:
            cpu_usage = self.cpu_usage(host)
        return self.cpu_model(host).value(cpu_usage)

    def sum_of_square_error(self, host: Host) -> float:
        return self.cpu_model(host).sum_of_square_error

    def root_mean_square_error(self, host: Host) -> float:
        return self.cpu_model(host).root_mean_square_error

    def invalidate(self, host: Host):
        self.model_cache.invalidate(host.name)


class CpuOnlyPolynomialEnergyPredictor(CpuOnlyEnergyPredictor):
    """Degree 2 polynomial of power against CPU load."""

    name = "cpu_only_polynomial"
    function_type = PolynomialFunction


class CpuOnlySplineEnergyPredictor(CpuOnlyEnergyPredictor):
    name = "cpu_only_spline"
    function_type = SplineFunction

"""
CPU and accelerator energy predictors

Host power is a CPU model plus the power of each calibrated accelerator.
Accelerator usage is either the configured default
(DEFAULT_ACCELERATOR_LOAD) or, when that is -1, read from the host's latest
measurement.
"""

import logging
import re
from typing import Dict, List, Optional

from ..telemetry import TelemetrySource
from ..types import Accelerator, Host
from .cache import ModelCache
from .cpu_only import CpuOnlyEnergyPredictor
from .functions import (
    GroupingFunction,
    NeuralNetFunction,
    PolynomialFunction,
    PredictorFunction,
    build_predictor_function,
)
from .workload import accelerator_utilisation

logger = logging.getLogger(__name__)

# Misses tolerated before missing accelerator usage data is reported.
MISSING_USAGE_WARNING_THRESHOLD = 5


def accelerator_usage_values(values: Dict[str, float], grouping_parameter: str, count: int) -> List[float]:
    """
    Per accelerator usage for a host's accelerators of one model

    An exact ``grouping_parameter`` key gives the usage of the first
    accelerator. Otherwise ``grouping_parameter`` is treated as a regular
    expression: every fully matching metric key contributes its value at
    the index formed by the key's digits. Accelerators with no data get 0.

    Args:
        values: Metric values of the host
        grouping_parameter: Metric name or pattern carrying the usage
        count: Number of accelerators of this model on the host

    Returns:
        List of ``count`` usage values
    """
    answer = [0.0] * max(count, 1)
    if grouping_parameter in values:
        answer[0] = values[grouping_parameter]
        return answer
    try:
        pattern = re.compile(grouping_parameter)
    except re.error as e:
        logger.warning(f"Grouping parameter {grouping_parameter} is not a valid pattern: {e}")
        return answer
    for key, value in values.items():
        if not pattern.fullmatch(key):
            continue
        digits = re.sub(r"[^0-9]", "", key.strip())
        if not digits:
            logger.warning(f"Index value not found in metric: {key.strip()}")
            continue
        index = int(digits)
        if 0 <= index < len(answer):
            answer[index] = value
            logger.debug(f"Index: {index} Key: {key} Usage inserted: {value}")
    return answer


class AcceleratorEnergyPredictor(CpuOnlyEnergyPredictor):
    """Polynomial CPU model plus per accelerator models."""

    function_type = PolynomialFunction

    def __init__(self, settings, workload_estimator=None, share_rule=None,
                 telemetry: Optional[TelemetrySource] = None):
        super().__init__(settings, workload_estimator, share_rule)
        self.telemetry = telemetry
        self.accelerator_cache = ModelCache(settings.MODEL_CACHE_MAX_SIZE)
        self.missing_usage_count = 0

    def predict_power_used(self, host: Host, cpu_usage: Optional[float] = None) -> float:
        power = super().predict_power_used(host, cpu_usage)
        if host.available:
            power += self.accelerator_power(host)
        return power

    def accelerator_model(self, host: Host, accelerator: Accelerator) -> PredictorFunction:
        return self.accelerator_cache.get_or_create(
            (host.name, accelerator.name),
            lambda: self.fit_accelerator_model(accelerator),
        )

    def fit_accelerator_model(self, accelerator: Accelerator) -> PredictorFunction:
        raise NotImplementedError

    def accelerator_power(self, host: Host) -> float:
        raise NotImplementedError

    def invalidate(self, host: Host):
        super().invalidate(host)
        self.accelerator_cache.invalidate(host.name)

    def _note_missing_usage(self, host: Host, accelerator: Accelerator):
        self.missing_usage_count += 1
        if self.missing_usage_count >= MISSING_USAGE_WARNING_THRESHOLD:
            logger.warning(
                f"Accelerator load data was not available! Host: {host.name} : Accelerator {accelerator.name}"
            )


class CpuAndAcceleratorEnergyPredictor(AcceleratorEnergyPredictor):
    """Accelerators are modelled by a neural network over their calibration metrics."""

    name = "cpu_and_accelerator"

    def fit_accelerator_model(self, accelerator: Accelerator) -> PredictorFunction:
        inputs = [point.parameters for point in accelerator.calibration_data]
        outputs = [point.power for point in accelerator.calibration_data]
        return build_predictor_function(NeuralNetFunction, inputs, outputs)

    def accelerator_power(self, host: Host) -> float:
        usage: Dict[Accelerator, Dict[str, float]] = {}
        if self.uses_measured_accelerator_load and self.telemetry is not None:
            usage = accelerator_utilisation(self.telemetry, host)
        power = 0.0
        for accelerator in host.accelerators:
            if not accelerator.is_calibrated:
                continue
            if self.uses_measured_accelerator_load:
                values = usage.get(accelerator, {})
                if not values:
                    self._note_missing_usage(host, accelerator)
            else:
                values = {name: self.default_accelerator_load
                          for name in accelerator.metrics_in_calibration_data()}
            power += self.accelerator_model(host, accelerator).value(values)
        return power


class CpuAndBiModalAcceleratorEnergyPredictor(AcceleratorEnergyPredictor):
    """
    Accelerators are modelled by grouping their calibration power on one
    metric (ACCELERATOR_GROUPING_PARAMETER); each accelerator of a model
    contributes separately.
    """

    name = "cpu_and_bimodal_accelerator"

    def __init__(self, settings, workload_estimator=None, share_rule=None, telemetry=None):
        super().__init__(settings, workload_estimator, share_rule, telemetry)
        self.grouping_parameter = settings.ACCELERATOR_GROUPING_PARAMETER

    def fit_accelerator_model(self, accelerator: Accelerator) -> PredictorFunction:
        points = [p for p in accelerator.calibration_data if p.has_parameter(self.grouping_parameter)]
        if not points:
            logger.warning(
                f"No calibration data for {accelerator.name} carries {self.grouping_parameter}"
            )
            return PredictorFunction.no_fit()
        xs = [p.parameter(self.grouping_parameter) for p in points]
        ys = [p.power for p in points]
        return build_predictor_function(GroupingFunction, xs, ys)

    def accelerator_usage(self, host: Host, accelerator: Accelerator) -> List[float]:
        measurement = self.telemetry.host_measurement(host) if self.telemetry is not None else None
        values = measurement.metrics if measurement is not None else {}
        if not values:
            self._note_missing_usage(host, accelerator)
        return accelerator_usage_values(values, self.grouping_parameter, accelerator.count)

    def accelerator_power(self, host: Host) -> float:
        power = 0.0
        for accelerator in host.accelerators:
            if not accelerator.is_calibrated:
                continue
            model = self.accelerator_model(host, accelerator)
            if self.uses_measured_accelerator_load:
                usage = self.accelerator_usage(host, accelerator)
            else:
                usage = [self.default_accelerator_load] * max(accelerator.count, 1)
            for index, value in enumerate(usage):
                additional = model.value(value)
                logger.debug(f"Accelerator {index} additional power: {additional}")
                power += additional
        return power

"""
Best fit energy predictor

Picks, per host, the CPU model with the lowest root mean square error
against the host's calibration data and delegates every forecast to it.
Hosts with calibrated accelerators always use the accelerator aware
predictor.
"""

import logging
import threading
from typing import List, Optional

from ..types import Host
from .accelerator import CpuAndBiModalAcceleratorEnergyPredictor
from .base import AbstractEnergyPredictor
from .cache import ModelCache
from .cpu_only import CpuOnlyEnergyPredictor, CpuOnlyPolynomialEnergyPredictor, CpuOnlySplineEnergyPredictor

logger = logging.getLogger(__name__)


def best_predictor(host: Host, predictors: List[AbstractEnergyPredictor]) -> Optional[AbstractEnergyPredictor]:
    """The predictor with the least calibration error for ``host``; the first wins a tie."""
    answer = None
    answer_error = None
    for predictor in predictors:
        error = predictor.root_mean_square_error(host)
        if answer is None or error < answer_error:
            answer = predictor
            answer_error = error
    return answer


class BestFitEnergyPredictor(AbstractEnergyPredictor):

    name = "best_fit"

    def __init__(self, settings, workload_estimator=None, share_rule=None, telemetry=None):
        super().__init__(settings, workload_estimator, share_rule)
        self.linear = CpuOnlyEnergyPredictor(settings, workload_estimator, share_rule)
        self.polynomial = CpuOnlyPolynomialEnergyPredictor(settings, workload_estimator, share_rule)
        self.spline = CpuOnlySplineEnergyPredictor(settings, workload_estimator, share_rule)
        self.accelerator_predictor = CpuAndBiModalAcceleratorEnergyPredictor(
            settings, workload_estimator, share_rule, telemetry
        )
        self.candidates: List[AbstractEnergyPredictor] = [self.linear, self.polynomial, self.spline]
        self.choices = ModelCache(settings.MODEL_CACHE_MAX_SIZE)
        self._lock = threading.RLock()

    def best_fit(self, host: Host) -> AbstractEnergyPredictor:
        with self._lock:
            answer = self.choices.get(host.name)
            if answer is None:
                if host.has_accelerator and host.is_accelerators_calibrated:
                    answer = self.accelerator_predictor
                else:
                    answer = best_predictor(host, self.candidates)
                logger.info(f"Using the {answer} predictor for {host.name}")
                self.choices.put(host.name, answer)
            return answer

    def host_predicted_energy(self, host, workload=None, period=None):
        return self.best_fit(host).host_predicted_energy(host, workload, period)

    def vm_predicted_energy(self, vm, vms, host, period=None):
        return self.best_fit(host).vm_predicted_energy(vm, vms, host, period)

    def application_predicted_energy(self, app, apps, host, period=None):
        return self.best_fit(host).application_predicted_energy(app, apps, host, period)

    def predict_power_used(self, host: Host, cpu_usage: Optional[float] = None) -> float:
        return self.best_fit(host).predict_power_used(host, cpu_usage)

    def sum_of_square_error(self, host: Host) -> float:
        return self.best_fit(host).sum_of_square_error(host)

    def root_mean_square_error(self, host: Host) -> float:
        return self.best_fit(host).root_mean_square_error(host)

    def invalidate(self, host: Host):
        with self._lock:
            self.choices.invalidate(host.name)
        for predictor in self.candidates + [self.accelerator_predictor]:
            predictor.invalidate(host)

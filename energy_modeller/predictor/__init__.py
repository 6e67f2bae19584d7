"""
Energy prediction: fitted power models, workload estimation and forecasts
"""

from typing import Dict, Optional, Type

from ..config import Settings
from ..datastore import EnergyStore
from ..division import create_share_rule
from ..exceptions import ConfigurationError
from ..telemetry import TelemetrySource
from .accelerator import (
    AcceleratorEnergyPredictor,
    CpuAndAcceleratorEnergyPredictor,
    CpuAndBiModalAcceleratorEnergyPredictor,
)
from .base import AbstractEnergyPredictor
from .best_fit import BestFitEnergyPredictor
from .cache import ModelCache
from .cpu_only import CpuOnlyEnergyPredictor, CpuOnlyPolynomialEnergyPredictor, CpuOnlySplineEnergyPredictor
from .functions import NO_FIT_ERROR, PredictorFunction
from .simple import AveragePowerEnergyPredictor, DummyEnergyPredictor
from .workload import WORKLOAD_ESTIMATORS, WorkloadEstimator, create_workload_estimator

PREDICTORS: Dict[str, Type[AbstractEnergyPredictor]] = {
    predictor.name: predictor
    for predictor in (
        CpuOnlyEnergyPredictor,
        CpuOnlyPolynomialEnergyPredictor,
        CpuOnlySplineEnergyPredictor,
        CpuAndAcceleratorEnergyPredictor,
        CpuAndBiModalAcceleratorEnergyPredictor,
        AveragePowerEnergyPredictor,
        DummyEnergyPredictor,
        BestFitEnergyPredictor,
    )
}


def create_energy_predictor(
    settings: Settings,
    telemetry: Optional[TelemetrySource] = None,
    store: Optional[EnergyStore] = None,
    name: Optional[str] = None,
) -> AbstractEnergyPredictor:
    """
    Build the predictor registered under ``name`` (ENERGY_PREDICTOR by default)

    The predictor gets the configured workload estimator and forecast
    share rule.
    """
    name = name or settings.ENERGY_PREDICTOR
    try:
        predictor_type = PREDICTORS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown energy predictor '{name}', expected one of {sorted(PREDICTORS)}"
        ) from None
    estimator = create_workload_estimator(settings, telemetry, store)
    share_rule = create_share_rule(settings.PREDICTOR_SHARE_RULE)
    if issubclass(predictor_type, (AcceleratorEnergyPredictor, BestFitEnergyPredictor)):
        return predictor_type(settings, estimator, share_rule, telemetry=telemetry)
    if issubclass(predictor_type, AveragePowerEnergyPredictor):
        return predictor_type(settings, estimator, share_rule, store=store)
    return predictor_type(settings, estimator, share_rule)


__all__ = [
    "AbstractEnergyPredictor",
    "AveragePowerEnergyPredictor",
    "BestFitEnergyPredictor",
    "CpuAndAcceleratorEnergyPredictor",
    "CpuAndBiModalAcceleratorEnergyPredictor",
    "CpuOnlyEnergyPredictor",
    "CpuOnlyPolynomialEnergyPredictor",
    "CpuOnlySplineEnergyPredictor",
    "DummyEnergyPredictor",
    "ModelCache",
    "NO_FIT_ERROR",
    "PREDICTORS",
    "PredictorFunction",
    "WORKLOAD_ESTIMATORS",
    "WorkloadEstimator",
    "create_energy_predictor",
    "create_workload_estimator",
]

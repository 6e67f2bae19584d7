"""
Fitted power model functions

Each function maps a workload value (CPU load fraction, accelerator metric
or a set of named accelerator metrics) to a predicted power in watts. A
PredictorFunction bundles a fitted function with its goodness of fit so
the best model for a host can be picked by RMSE.
"""

import logging
import math
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from sklearn.linear_model import LinearRegression
from sklearn.neural_network import MLPRegressor
from sklearn.pipeline import make_pipeline
from sklearn.preprocessing import MinMaxScaler, SplineTransformer

from ..exceptions import InsufficientCalibrationDataError

logger = logging.getLogger(__name__)

# Error score of a model that could not be fitted; ranks below every real fit.
NO_FIT_ERROR = sys.float_info.max


class ConstantFunction:
    """Predicts the same value for every input."""

    def __init__(self, constant: float = 0.0):
        self.constant = constant

    def value(self, x: Any) -> float:
        return self.constant


class LinearFunction:
    """Ordinary least squares line: power = coefficient * load + intercept."""

    MIN_POINTS = 2

    def __init__(self, intercept: float = 0.0, coefficient: float = 0.0):
        self.intercept = intercept
        self.coefficient = coefficient

    @classmethod
    def fit(cls, xs: Sequence[float], ys: Sequence[float]) -> "LinearFunction":
        _require_points(cls.MIN_POINTS, xs)
        X = np.array(xs, dtype=float).reshape(-1, 1)
        y = np.array(ys, dtype=float)
        model = LinearRegression()
        model.fit(X, y)
        return cls(intercept=float(model.intercept_), coefficient=float(model.coef_[0]))

    def value(self, x: float) -> float:
        return self.coefficient * x + self.intercept


class PolynomialFunction:
    """Least squares polynomial, degree 2 by default."""

    DEGREE = 2
    MIN_POINTS = DEGREE + 1

    def __init__(self, coefficients: Sequence[float]):
        # Highest power first, as returned by numpy.polyfit
        self.coefficients = np.array(coefficients, dtype=float)

    @classmethod
    def fit(cls, xs: Sequence[float], ys: Sequence[float]) -> "PolynomialFunction":
        _require_points(cls.MIN_POINTS, xs)
        coefficients = np.polyfit(np.array(xs, dtype=float), np.array(ys, dtype=float), cls.DEGREE)
        return cls(coefficients)

    def value(self, x: float) -> float:
        return float(np.polyval(self.coefficients, x))


class SplineFunction:
    """
    Piecewise cubic polynomial over the load range

    Fits a B-spline basis expansion with linear least squares, giving a
    smoother curve than a single polynomial where the host's power curve
    bends at different loads.
    """

    MIN_POINTS = 4

    def __init__(self, pipeline):
        self.pipeline = pipeline

    @classmethod
    def fit(cls, xs: Sequence[float], ys: Sequence[float]) -> "SplineFunction":
        _require_points(cls.MIN_POINTS, xs)
        distinct = len(set(xs))
        n_knots = max(2, min(5, distinct - 1))
        pipeline = make_pipeline(
            SplineTransformer(n_knots=n_knots, degree=3, extrapolation="linear"),
            LinearRegression(),
        )
        pipeline.fit(np.array(xs, dtype=float).reshape(-1, 1), np.array(ys, dtype=float))
        return cls(pipeline)

    def value(self, x: float) -> float:
        return float(self.pipeline.predict(np.array([[x]], dtype=float))[0])


class GroupingFunction:
    """
    Bimodal accelerator model

    Calibration points are grouped by their exact input value and each
    group predicts the mean power observed for it. Inputs that match no
    group snap to whichever of the lowest or highest group is closer.
    Intermediate groups are only used on an exact match.
    """

    def __init__(self):
        self.lowest_group: Optional[float] = None
        self.highest_group: Optional[float] = None
        self._total_power: Dict[float, float] = {}
        self._count: Dict[float, int] = {}

    @classmethod
    def fit(cls, xs: Sequence[float], ys: Sequence[float]) -> "GroupingFunction":
        function = cls()
        for x, y in zip(xs, ys):
            function.add_point(x, y)
        return function

    def add_point(self, x: float, power: float):
        if self.lowest_group is None or x < self.lowest_group:
            self.lowest_group = x
        if self.highest_group is None or x > self.highest_group:
            self.highest_group = x
        self._total_power[x] = self._total_power.get(x, 0.0) + power
        self._count[x] = self._count.get(x, 0) + 1

    @property
    def groups(self) -> List[float]:
        return sorted(self._total_power)

    def group_mean(self, group: float) -> float:
        return self._total_power[group] / self._count[group]

    def value(self, x: float) -> float:
        if not self._total_power:
            logger.warning("No calibration data found for grouping function.")
            return 0.0
        if x < 0:
            logger.warning(f"Incorrect input utilisation value, its value was: {x}")
            return 0.0
        if x in self._total_power:
            return self.group_mean(x)
        proximity_to_lower = x - self.lowest_group
        proximity_to_higher = self.highest_group - x
        if proximity_to_lower < proximity_to_higher:
            return self.group_mean(self.lowest_group)
        return self.group_mean(self.highest_group)


class NeuralNetFunction:
    """
    Multi-parameter accelerator model backed by a small neural network

    Inputs and the power output are min-max scaled. The network has one
    tanh hidden layer of ``int(sqrt(inputs + 1))`` units.
    """

    MIN_POINTS = 2
    MAX_ITERATIONS = 2000

    def __init__(self, header: List[str], network: MLPRegressor,
                 input_scaler: MinMaxScaler, output_scaler: MinMaxScaler):
        self.header = header
        self.network = network
        self.input_scaler = input_scaler
        self.output_scaler = output_scaler

    @classmethod
    def fit(cls, inputs: Sequence[Dict[str, float]], outputs: Sequence[float]) -> "NeuralNetFunction":
        _require_points(cls.MIN_POINTS, inputs)
        header = sorted({name for row in inputs for name in row})
        X = np.array([[row.get(name, 0.0) for name in header] for row in inputs], dtype=float)
        y = np.array(outputs, dtype=float).reshape(-1, 1)

        input_scaler = MinMaxScaler(feature_range=(-1, 1))
        output_scaler = MinMaxScaler(feature_range=(-1, 1))
        X_scaled = input_scaler.fit_transform(X)
        y_scaled = output_scaler.fit_transform(y).ravel()

        hidden_size = max(1, int(math.sqrt(len(header) + 1)))
        network = MLPRegressor(
            hidden_layer_sizes=(hidden_size,),
            activation="tanh",
            solver="lbfgs",
            max_iter=cls.MAX_ITERATIONS,
            random_state=0,
        )
        network.fit(X_scaled, y_scaled)
        logger.info(
            f"Trained accelerator network on {len(header)} inputs, "
            f"hidden layer {hidden_size}, {network.n_iter_} iterations"
        )
        return cls(header, network, input_scaler, output_scaler)

    def value(self, usage: Dict[str, float]) -> float:
        missing = [name for name in self.header if name not in usage]
        if missing:
            logger.debug(f"Accelerator metrics missing from input, assuming 0: {missing}")
        row = np.array([[usage.get(name, 0.0) for name in self.header]], dtype=float)
        scaled = self.network.predict(self.input_scaler.transform(row)).reshape(-1, 1)
        return float(self.output_scaler.inverse_transform(scaled)[0, 0])


@dataclass
class PredictorFunction:
    """A fitted function together with its sum of square and RMS errors."""
    function: Any
    sum_of_square_error: float
    root_mean_square_error: float

    @classmethod
    def no_fit(cls) -> "PredictorFunction":
        return cls(ConstantFunction(0.0), NO_FIT_ERROR, NO_FIT_ERROR)

    @property
    def is_fitted(self) -> bool:
        return self.root_mean_square_error != NO_FIT_ERROR

    def value(self, x: Any) -> float:
        return self.function.value(x)


def fit_errors(function, xs: Sequence[Any], ys: Sequence[float]):
    """
    Goodness of fit of ``function`` against observed points

    Returns:
        Tuple of (sum of square error, root mean square error)
    """
    if len(xs) == 0:
        return NO_FIT_ERROR, NO_FIT_ERROR
    residuals = np.array([y - function.value(x) for x, y in zip(xs, ys)], dtype=float)
    sse = float(np.sum(residuals ** 2))
    rmse = float(np.sqrt(sse / len(residuals)))
    return sse, rmse


def build_predictor_function(function_type, xs: Sequence[Any], ys: Sequence[float]) -> PredictorFunction:
    """
    Fit ``function_type`` and score it, degrading to the no-fit sentinel

    Args:
        function_type: A class exposing ``fit(xs, ys)`` and ``value(x)``
        xs: Observed inputs
        ys: Observed power in watts

    Returns:
        PredictorFunction; when fitting fails its errors are NO_FIT_ERROR
    """
    try:
        function = function_type.fit(xs, ys)
    except InsufficientCalibrationDataError as e:
        logger.warning(f"{function_type.__name__} not fitted: {e}")
        return PredictorFunction.no_fit()
    except (ValueError, np.linalg.LinAlgError) as e:
        logger.error(f"{function_type.__name__} fitting failed: {e}")
        return PredictorFunction.no_fit()
    sse, rmse = fit_errors(function, xs, ys)
    logger.info(f"Fitted {function_type.__name__}: SSE={sse:.4f}, RMSE={rmse:.4f}")
    return PredictorFunction(function, sse, rmse)


def _require_points(required: int, points: Sequence[Any]):
    if len(points) < required:
        raise InsufficientCalibrationDataError(required, len(points))

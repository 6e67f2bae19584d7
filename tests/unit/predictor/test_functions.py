"""
Tests for fitted power functions and the model cache
"""
import pytest

from energy_modeller.exceptions import InsufficientCalibrationDataError
from energy_modeller.predictor.cache import ModelCache
from energy_modeller.predictor.functions import (
    NO_FIT_ERROR,
    GroupingFunction,
    LinearFunction,
    NeuralNetFunction,
    PolynomialFunction,
    PredictorFunction,
    SplineFunction,
    build_predictor_function,
    fit_errors,
)


class TestLinearFunction:
    """Test the least squares line"""

    def test_fits_calibration_line(self):
        """Test a 50 W to 150 W calibration predicts about 100 W at half load"""
        function = LinearFunction.fit([0.0, 0.5, 1.0], [50.0, 100.0, 150.0])
        assert function.value(0.5) == pytest.approx(100.0)
        assert function.coefficient == pytest.approx(100.0)
        assert function.intercept == pytest.approx(50.0)

    def test_errors_of_exact_fit_are_zero(self):
        """Test an exact fit has zero SSE and RMSE"""
        predictor = build_predictor_function(LinearFunction, [0.0, 1.0], [10.0, 20.0])
        assert predictor.is_fitted
        assert predictor.sum_of_square_error == pytest.approx(0.0, abs=1e-9)
        assert predictor.root_mean_square_error == pytest.approx(0.0, abs=1e-9)


class TestPolynomialFunction:
    """Test the quadratic fit"""

    def test_fits_quadratic(self):
        """Test a quadratic curve is reproduced exactly"""
        xs = [0.0, 0.25, 0.5, 0.75, 1.0]
        ys = [40.0 + 100.0 * x * x for x in xs]
        function = PolynomialFunction.fit(xs, ys)
        assert function.value(0.6) == pytest.approx(76.0)


class TestSplineFunction:
    """Test the spline fit"""

    def test_follows_calibration_points(self):
        """Test the spline passes close to its calibration points"""
        xs = [0.0, 0.2, 0.4, 0.6, 0.8, 1.0]
        ys = [50.0, 70.0, 90.0, 110.0, 130.0, 150.0]
        predictor = build_predictor_function(SplineFunction, xs, ys)
        assert predictor.is_fitted
        assert predictor.value(0.4) == pytest.approx(90.0, abs=1.0)


class TestGroupingFunction:
    """Test the bimodal accelerator model"""

    @pytest.fixture
    def function(self):
        return GroupingFunction.fit([0.0, 0.0, 100.0, 100.0], [45.0, 55.0, 140.0, 160.0])

    def test_exact_groups_give_their_mean(self, function):
        """Test an exact input returns the mean power of its group"""
        assert function.value(0.0) == pytest.approx(50.0)
        assert function.value(100.0) == pytest.approx(150.0)

    def test_inputs_snap_to_nearest_extreme(self, function):
        """Test unseen inputs use the closer of the lowest and highest group"""
        assert function.value(30.0) == pytest.approx(50.0)
        assert function.value(80.0) == pytest.approx(150.0)

    def test_tie_goes_to_highest(self, function):
        """Test the midpoint uses the highest group"""
        assert function.value(50.0) == pytest.approx(150.0)

    def test_negative_and_empty(self, function):
        """Test negative input and an unfitted function give 0 W"""
        assert function.value(-1.0) == 0.0
        assert GroupingFunction().value(10.0) == 0.0


class TestNeuralNetFunction:
    """Test the multi-parameter accelerator network"""

    @pytest.fixture
    def network(self):
        inputs = [{"util": u, "clock": 300.0 + 12.0 * u} for u in (0.0, 25.0, 50.0, 75.0, 100.0)]
        outputs = [50.0 + u for u in (0.0, 25.0, 50.0, 75.0, 100.0)]
        return NeuralNetFunction.fit(inputs, outputs)

    def test_inputs_ordered_by_name(self, network):
        """Test the input columns are the sorted metric names"""
        assert network.header == ["clock", "util"]

    def test_reproduces_calibration(self, network):
        """Test the network lands close to the calibration curve"""
        assert network.value({"util": 50.0, "clock": 900.0}) == pytest.approx(100.0, abs=10.0)

    def test_needs_two_points(self):
        """Test a single calibration point cannot be fitted"""
        with pytest.raises(InsufficientCalibrationDataError):
            NeuralNetFunction.fit([{"util": 1.0}], [10.0])


class TestNoFit:
    """Test the no-fit sentinel"""

    def test_too_few_points_gives_sentinel(self):
        """Test fitting with too few points degrades to the sentinel"""
        predictor = build_predictor_function(PolynomialFunction, [0.0, 1.0], [10.0, 20.0])
        assert not predictor.is_fitted
        assert predictor.root_mean_square_error == NO_FIT_ERROR
        assert predictor.value(0.5) == 0.0

    def test_sentinel_ranks_below_any_fit(self):
        """Test the sentinel error is larger than any real error"""
        assert PredictorFunction.no_fit().root_mean_square_error > 1e300

    def test_errors_of_empty_data(self):
        """Test no observations give sentinel errors"""
        assert fit_errors(LinearFunction(), [], []) == (NO_FIT_ERROR, NO_FIT_ERROR)

    def test_rmse_is_root_of_mean_square(self):
        """Test RMSE divides the SSE by the number of points"""
        sse, rmse = fit_errors(LinearFunction(0.0, 0.0), [0.0, 1.0], [3.0, 4.0])
        assert sse == pytest.approx(25.0)
        assert rmse == pytest.approx((25.0 / 2) ** 0.5)


class TestModelCache:
    """Test the bounded model cache"""

    def test_get_or_create_fits_once(self):
        """Test the factory is only called on a miss"""
        cache = ModelCache(max_size=2)
        calls = []
        cache.get_or_create("node1", lambda: calls.append(1) or "model")
        assert cache.get_or_create("node1", lambda: calls.append(1) or "other") == "model"
        assert len(calls) == 1

    def test_least_recently_used_evicted(self):
        """Test the oldest untouched entry is evicted when full"""
        cache = ModelCache(max_size=2)
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")
        cache.put("c", 3)
        assert "a" in cache
        assert "b" not in cache
        assert len(cache) == 2

    def test_invalidate_matches_tuple_owner(self):
        """Test invalidation removes plain and tuple keys for an owner"""
        cache = ModelCache()
        cache.put("node1", 1)
        cache.put(("node1", "gpu"), 2)
        cache.put(("node2", "gpu"), 3)
        assert cache.invalidate("node1") == 2
        assert len(cache) == 1

    def test_invalid_size(self):
        """Test a cache must hold at least one entry"""
        with pytest.raises(ValueError):
            ModelCache(max_size=0)

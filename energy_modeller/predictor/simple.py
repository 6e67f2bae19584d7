"""
Predictors that do not fit a model

The average power predictor projects the host's recent stored power
forward; the dummy predictor always forecasts zero.
"""

import logging
from typing import Optional

from ..datastore import EnergyStore
from ..types import EnergyUsagePrediction, Host, TimePeriod
from .base import AbstractEnergyPredictor, default_forecast_period
from .functions import NO_FIT_ERROR

logger = logging.getLogger(__name__)


class AveragePowerEnergyPredictor(AbstractEnergyPredictor):
    """Mean of the host's stored power over the last AVERAGE_POWER_OBSERVE_MINUTES."""

    name = "average_power"

    def __init__(self, settings, workload_estimator=None, share_rule=None,
                 store: Optional[EnergyStore] = None):
        super().__init__(settings, workload_estimator, share_rule)
        self.store = store
        self.observation_seconds = settings.AVERAGE_POWER_OBSERVE_MINUTES * 60

    def predict_power_used(self, host: Host, cpu_usage: Optional[float] = None) -> float:
        if self.store is None:
            logger.warning("Average power predictor has no energy store, predicting 0 W")
            return 0.0
        records = self.store.get_host_history_data(host, TimePeriod.last(self.observation_seconds))
        if not records:
            return 0.0
        return sum(record.power for record in records) / len(records)

    def host_predicted_energy(self, host, workload=None, period=None) -> EnergyUsagePrediction:
        period = period or default_forecast_period()
        return self.predict_total_energy(host, None, period)

    def sum_of_square_error(self, host: Host) -> float:
        return NO_FIT_ERROR

    def root_mean_square_error(self, host: Host) -> float:
        return NO_FIT_ERROR


class DummyEnergyPredictor(AbstractEnergyPredictor):
    name = "dummy"

    def predict_power_used(self, host: Host, cpu_usage: Optional[float] = None) -> float:
        return 0.0

    def host_predicted_energy(self, host, workload=None, period=None) -> EnergyUsagePrediction:
        period = period or default_forecast_period()
        return self.predict_total_energy(host, None, period)

    def general_host_predicted_energy(self, period: Optional[TimePeriod] = None) -> EnergyUsagePrediction:
        return EnergyUsagePrediction(duration=period)

    def sum_of_square_error(self, host: Host) -> float:
        return NO_FIT_ERROR

    def root_mean_square_error(self, host: Host) -> float:
        return NO_FIT_ERROR

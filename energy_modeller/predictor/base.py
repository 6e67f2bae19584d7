"""
Energy predictor base

An energy predictor forecasts the power and energy a host will use over a
time period and apportions that forecast among the VMs or applications
expected to run on it.
"""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from ..config import Settings
from ..division import EnergyShareRule, DefaultEnergyShareRule
from ..types import (
    ApplicationOnHost,
    EnergyUsagePrediction,
    EnergyUsageSource,
    Host,
    TimePeriod,
    VM,
)
from .workload import WorkloadEstimator

logger = logging.getLogger(__name__)

# Length of a forecast when the caller gives no period.
DEFAULT_FORECAST_SECONDS = 3600

# DEFAULT_CPU_LOAD / DEFAULT_ACCELERATOR_LOAD value meaning "use measured usage".
MEASURED_LOAD = -1


def default_forecast_period() -> TimePeriod:
    return TimePeriod.from_now(DEFAULT_FORECAST_SECONDS)


class AbstractEnergyPredictor(ABC):
    """
    Shared forecast logic

    Subclasses supply the host power model through ``predict_power_used``
    and report its goodness of fit; everything else (assumed or measured
    CPU load, apportioning to energy users, the general purpose node
    overhead) is handled here.
    """

    name = ""

    def __init__(
        self,
        settings: Settings,
        workload_estimator: Optional[WorkloadEstimator] = None,
        share_rule: Optional[EnergyShareRule] = None,
    ):
        self.settings = settings
        self.workload_estimator = workload_estimator
        self.share_rule = share_rule or DefaultEnergyShareRule()
        self.default_cpu_load = settings.DEFAULT_CPU_LOAD
        self.default_accelerator_load = settings.DEFAULT_ACCELERATOR_LOAD
        self.consider_idle_energy = settings.CONSIDER_IDLE_ENERGY
        self.overhead_per_host = settings.OVERHEAD_PER_HOST_WATTS

    # Host power model

    @abstractmethod
    def predict_power_used(self, host: Host, cpu_usage: Optional[float] = None) -> float:
        """
        Predicted power of ``host`` in watts

        Args:
            host: Host to predict for
            cpu_usage: CPU load fraction; the assumed or estimated load
                is used when omitted
        """
        ...

    @abstractmethod
    def sum_of_square_error(self, host: Host) -> float:
        ...

    @abstractmethod
    def root_mean_square_error(self, host: Host) -> float:
        ...

    def invalidate(self, host: Host):
        """Drops any model fitted for ``host``."""
        pass

    # Forecasts

    def cpu_usage(self, host: Host, workload: Optional[Iterable[EnergyUsageSource]] = None) -> float:
        if self.default_cpu_load != MEASURED_LOAD:
            return self.default_cpu_load
        if self.workload_estimator is None:
            logger.warning(f"No workload estimator configured, assuming idle CPU on {host.name}")
            return 0.0
        workload = list(workload) if workload is not None else None
        return self.workload_estimator.cpu_utilisation(host, workload)

    @property
    def uses_measured_accelerator_load(self) -> bool:
        return self.default_accelerator_load == MEASURED_LOAD

    def predict_total_energy(self, host: Host, cpu_usage: float, period: TimePeriod) -> EnergyUsagePrediction:
        power = self.predict_power_used(host, cpu_usage)
        return EnergyUsagePrediction(
            energy_users={host},
            avg_power_used=power,
            total_energy_used=power * period.duration_hours,
            duration=period,
        )

    def host_predicted_energy(
        self,
        host: Host,
        workload: Optional[Iterable[EnergyUsageSource]] = None,
        period: Optional[TimePeriod] = None,
    ) -> EnergyUsagePrediction:
        period = period or default_forecast_period()
        return self.predict_total_energy(host, self.cpu_usage(host, workload), period)

    def vm_predicted_energy(
        self,
        vm: VM,
        vms: Iterable[VM],
        host: Host,
        period: Optional[TimePeriod] = None,
    ) -> EnergyUsagePrediction:
        return self.predicted_share(vm, list(vms), host, period)

    def application_predicted_energy(
        self,
        app: ApplicationOnHost,
        apps: Iterable[ApplicationOnHost],
        host: Host,
        period: Optional[TimePeriod] = None,
    ) -> EnergyUsagePrediction:
        return self.predicted_share(app, list(apps), host, period)

    def predicted_share(
        self,
        subject: EnergyUsageSource,
        co_resident: List[EnergyUsageSource],
        host: Host,
        period: Optional[TimePeriod] = None,
    ) -> EnergyUsagePrediction:
        """
        Forecast for one energy user out of those expected on ``host``

        The user's share of the host forecast plus an even share of the
        general purpose node overhead. Average power is derived from the
        apportioned energy and the period length.
        """
        period = period or default_forecast_period()
        if subject not in co_resident:
            co_resident = co_resident + [subject]
        division = self.share_rule.energy_usage(host, co_resident)
        division.consider_idle_energy = self.consider_idle_energy

        host_answer = self.host_predicted_energy(host, co_resident, period)
        hours = period.duration_hours
        host_power = host_answer.total_energy_used / hours if hours > 0 else host_answer.avg_power_used

        general = self.general_host_predicted_energy(period)
        count = len(co_resident)
        return EnergyUsagePrediction(
            energy_users={subject},
            avg_power_used=division.share_of(host_power, subject) + general.avg_power_used / count,
            total_energy_used=division.share_of(host_answer.total_energy_used, subject)
            + general.total_energy_used / count,
            duration=period,
        )

    def general_host_predicted_energy(self, period: Optional[TimePeriod] = None) -> EnergyUsagePrediction:
        """Fixed per host overhead from general purpose nodes over ``period`` (1 hour when omitted)."""
        hours = period.duration_hours if period is not None else DEFAULT_FORECAST_SECONDS / 3600.0
        return EnergyUsagePrediction(
            avg_power_used=self.overhead_per_host,
            total_energy_used=self.overhead_per_host * hours,
            duration=period,
        )

    def __str__(self):
        return self.name

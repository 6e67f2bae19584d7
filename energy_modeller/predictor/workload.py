"""
Workload estimation

When the energy predictors are configured to use measured rather than
assumed CPU load (DEFAULT_CPU_LOAD = -1) they ask a workload estimator for
the CPU utilisation to expect on a host. Estimators either look at the
host's recent utilisation or at the stored history of VMs similar to the
ones that will run on it.
"""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
from statsmodels.tsa.statespace.sarimax import SARIMAX
from statsmodels.tsa.stattools import adfuller

from ..config import Settings
from ..datastore import EnergyStore
from ..exceptions import ConfigurationError
from ..telemetry import TelemetrySource
from ..types import (
    Accelerator,
    EnergyUsageSource,
    Host,
    LoadHistoryBootRecord,
    LoadHistoryRecord,
    LoadHistoryWeekRecord,
    VM,
    VmDeployed,
)

logger = logging.getLogger(__name__)


class WorkloadEstimator(ABC):
    """Estimates the CPU utilisation (0-1) to expect on a host."""

    name = ""
    requires_workload = False

    def __init__(self, settings: Settings, telemetry: Optional[TelemetrySource] = None,
                 store: Optional[EnergyStore] = None):
        self.settings = settings
        self.telemetry = telemetry
        self.store = store

    @abstractmethod
    def cpu_utilisation(self, host: Host, workload: Optional[Iterable[EnergyUsageSource]] = None) -> float:
        ...


class CpuRecentHistoryWorkloadEstimator(WorkloadEstimator):
    """Average utilisation of the host over the recent observation window."""

    name = "cpu_recent_history"

    def cpu_utilisation(self, host: Host, workload=None) -> float:
        if self.telemetry is None:
            raise ConfigurationError(f"{self.name} workload estimator needs a telemetry source")
        return self.telemetry.cpu_utilisation(host, self.settings.cpu_observe_window_seconds)


class VmHistoryWorkloadEstimator(WorkloadEstimator):
    """
    Base for estimators that average the stored history of similar VMs

    Only VMs carrying the profile data a subclass keys on (application tags
    or disk images) take part; the host estimate is the mean of their
    individual estimates, or 0 when there are none.
    """

    requires_workload = True

    def cpu_utilisation(self, host: Host, workload=None) -> float:
        if self.store is None:
            raise ConfigurationError(f"{self.name} workload estimator needs an energy store")
        vms = [vm for vm in (workload or []) if isinstance(vm, VM) and self.has_profile(vm)]
        if not vms:
            return 0.0
        return sum(self.vm_utilisation(vm).utilisation for vm in vms) / len(vms)

    def has_profile(self, vm: VM) -> bool:
        return bool(vm.application_tags)

    @abstractmethod
    def vm_utilisation(self, vm: VM) -> LoadHistoryRecord:
        ...


def _combine(records: List[LoadHistoryRecord]) -> Tuple[float, float]:
    """Mean utilisation and largest standard deviation of ``records``."""
    if not records:
        return 0.0, 0.0
    utilisation = sum(r.utilisation for r in records) / len(records)
    return utilisation, max(r.std_dev for r in records)


class BasicAverageWorkloadEstimator(VmHistoryWorkloadEstimator):
    """Average historic utilisation of VMs sharing an application tag."""

    name = "basic_average"

    def vm_utilisation(self, vm: VM) -> LoadHistoryRecord:
        records = [self.store.average_cpu_utilisation_tag(tag) for tag in sorted(vm.application_tags)]
        return LoadHistoryRecord(*_combine(records))


class DayOfWeekWorkloadEstimator(VmHistoryWorkloadEstimator):
    """
    Historic utilisation of tagged VMs at the current day of week and hour

    Falls back to the mean of the whole week trace when the current slot
    has no history. Days are numbered from Monday = 0, in UTC.
    """

    name = "day_of_week"

    def __init__(self, settings, telemetry=None, store=None, clock=time.time):
        super().__init__(settings, telemetry, store)
        self.clock = clock

    def current_slot(self) -> Tuple[int, int]:
        now = datetime.fromtimestamp(self.clock(), tz=timezone.utc)
        return now.weekday(), now.hour

    def slot_utilisation(self, trace: List[LoadHistoryWeekRecord]) -> LoadHistoryRecord:
        day, hour = self.current_slot()
        for record in trace:
            if record.day_of_week == day and record.hour_of_day == hour:
                return record
        return LoadHistoryRecord(*_combine(trace))

    def vm_utilisation(self, vm: VM) -> LoadHistoryRecord:
        records = []
        for tag in sorted(vm.application_tags):
            if isinstance(vm, VmDeployed):
                trace = self.store.average_cpu_utilisation_week_trace_for_tag(tag)
                records.append(self.slot_utilisation(trace))
            else:
                records.append(self.store.average_cpu_utilisation_tag(tag))
        day, hour = self.current_slot()
        utilisation, std_dev = _combine(records)
        return LoadHistoryWeekRecord(utilisation, std_dev, day_of_week=day, hour_of_day=hour)


class BootAverageDiskWorkloadEstimator(VmHistoryWorkloadEstimator):
    """
    Historic utilisation of VMs booted from the same disk image, at the
    same time since boot

    A deployed VM's age selects the bucket of the boot trace; when that
    bucket is missing the mean of the whole trace is used. VMs that are
    not yet deployed use the image's overall average.
    """

    name = "boot_average_disk"

    def __init__(self, settings, telemetry=None, store=None, clock=time.time):
        super().__init__(settings, telemetry, store)
        self.clock = clock

    @property
    def bucket_size(self) -> int:
        return self.settings.BOOT_HISTORY_BUCKET_SIZE

    def has_profile(self, vm: VM) -> bool:
        return bool(vm.disk_images)

    def boot_index(self, vm: VmDeployed) -> int:
        if vm.created is None:
            return 0
        return max(0, int((self.clock() - vm.created) // self.bucket_size))

    def bucket_utilisation(self, trace: List[LoadHistoryBootRecord], index: int) -> LoadHistoryRecord:
        for record in trace:
            if record.index == index:
                return record
        return LoadHistoryRecord(*_combine(trace))

    def vm_utilisation(self, vm: VM) -> LoadHistoryRecord:
        records = []
        index = 0
        for disk in sorted(vm.disk_images):
            if isinstance(vm, VmDeployed):
                index = self.boot_index(vm)
                trace = self.store.average_cpu_utilisation_boot_trace_for_disk(disk, self.bucket_size)
                records.append(self.bucket_utilisation(trace, index))
            else:
                records.append(self.store.average_cpu_utilisation_disk(disk))
        utilisation, std_dev = _combine(records)
        return LoadHistoryBootRecord(utilisation, std_dev, index=index)


class ArimaWorkloadEstimator(WorkloadEstimator):
    """
    ARIMA forecast of a host's CPU utilisation

    An ARIMA model is fitted over the host's recent utilisation history,
    with its order picked by AIC, and the mean of the forecast horizon is
    returned. Short or degenerate histories fall back to a moving average
    of the latest samples.
    """

    name = "arima"
    MIN_POINTS = 10
    MOVING_AVERAGE_POINTS = 3

    def cpu_utilisation(self, host: Host, workload=None) -> float:
        if self.telemetry is None:
            raise ConfigurationError(f"{self.name} workload estimator needs a telemetry source")
        window = self.settings.ARIMA_HISTORY_MINUTES * 60
        history = self.telemetry.cpu_utilisation_history(host, window)
        if not history:
            logger.warning(f"No CPU history for {host.name}, using recent utilisation")
            return self.telemetry.cpu_utilisation(host, self.settings.cpu_observe_window_seconds)
        if len(history) < self.MIN_POINTS:
            return self._moving_average(history)
        try:
            forecast = self._arima_forecast(np.array(history, dtype=float), self.settings.ARIMA_HORIZON_STEPS)
        except (ValueError, np.linalg.LinAlgError) as e:
            logger.error(f"ARIMA fitting failed for {host.name}: {e}")
            return self._moving_average(history)
        return float(np.clip(np.mean(forecast), 0.0, 1.0))

    def _moving_average(self, history: List[float]) -> float:
        value = float(np.mean(history[-self.MOVING_AVERAGE_POINTS:]))
        logger.info(f"Using simple moving average prediction: {value:.3f}")
        return value

    def _arima_forecast(self, data: np.ndarray, steps: int) -> np.ndarray:
        is_stationary = adfuller(data)[1] < 0.05
        order = self._auto_select_order(data, is_stationary)
        model = SARIMAX(
            data,
            order=order,
            enforce_stationarity=False,
            enforce_invertibility=False,
        )
        fitted = model.fit(disp=False)
        return fitted.forecast(steps=steps)

    def _auto_select_order(self, data: np.ndarray, is_stationary: bool) -> Tuple[int, int, int]:
        best_aic = np.inf
        best_order = (1, 0, 1) if is_stationary else (1, 1, 1)
        d = 0 if is_stationary else 1
        for p in range(0, 3):
            for q in range(0, 3):
                try:
                    fitted = SARIMAX(
                        data,
                        order=(p, d, q),
                        enforce_stationarity=False,
                        enforce_invertibility=False,
                    ).fit(disp=False)
                except (ValueError, np.linalg.LinAlgError):
                    continue
                if fitted.aic < best_aic:
                    best_aic = fitted.aic
                    best_order = (p, d, q)
        logger.info(f"Auto-selected ARIMA order: {best_order}, AIC: {best_aic:.2f}")
        return best_order


WORKLOAD_ESTIMATORS = {
    estimator.name: estimator
    for estimator in (
        CpuRecentHistoryWorkloadEstimator,
        BasicAverageWorkloadEstimator,
        DayOfWeekWorkloadEstimator,
        BootAverageDiskWorkloadEstimator,
        ArimaWorkloadEstimator,
    )
}


def create_workload_estimator(settings: Settings, telemetry: Optional[TelemetrySource] = None,
                              store: Optional[EnergyStore] = None) -> WorkloadEstimator:
    name = settings.WORKLOAD_ESTIMATOR
    try:
        factory = WORKLOAD_ESTIMATORS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown workload estimator '{name}', expected one of {sorted(WORKLOAD_ESTIMATORS)}"
        ) from None
    return factory(settings, telemetry, store)


def accelerator_utilisation(telemetry: TelemetrySource, host: Host) -> Dict[Accelerator, Dict[str, float]]:
    """
    Latest accelerator metrics of ``host``, per accelerator

    Each accelerator gets the host measurement's values for the metrics
    named in its calibration data.
    """
    answer: Dict[Accelerator, Dict[str, float]] = {}
    if not host.has_accelerator:
        return answer
    measurement = telemetry.host_measurement(host)
    for accelerator in host.accelerators:
        if measurement is None:
            answer[accelerator] = {}
        else:
            answer[accelerator] = measurement.filter_metrics(accelerator.metrics_in_calibration_data())
    return answer

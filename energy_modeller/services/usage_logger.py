"""
Disk loggers for apportioned power

The data gatherer hands each (host measurement, load fraction sample) pair
to a logger's queue; a daemon thread divides the host's power among the
sample's energy users and appends one ``<tag> power <value>`` line per user.
"""

import logging
import math
import queue
import threading
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from ..division import EnergyShareRule, LoadFractionShareRule
from ..types import ApplicationOnHost, EnergyUsageSource, Host, LoadFractionSample, Measurement, VmDeployed

logger = logging.getLogger(__name__)

_STOP = object()


def round_half_up(value: float, places: int = 1) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def apportion(
    measurement: Measurement,
    sample: LoadFractionSample,
    rule: EnergyShareRule,
    consider_idle_energy: bool = True,
) -> Iterator[Tuple[EnergyUsageSource, float]]:
    """
    Each energy user's share of the measured host power plus the sample's
    host power offset. Host power is rounded half up to one decimal place
    first. Shares that are NaN or not positive are skipped.
    """
    users = sample.sources
    if isinstance(rule, LoadFractionShareRule):
        rule.set_fractions(sample.fractions)
    division = rule.energy_usage(sample.host, users)
    division.consider_idle_energy = consider_idle_energy
    host_power = round_half_up(measurement.power, 1)
    for user in users:
        value = division.share_of(host_power, user) + sample.host_power_offset
        if not math.isnan(value) and value > 0:
            yield user, value


class EnergyUsageLogger:
    """Queue fed, thread backed writer of apportioned power lines."""

    def __init__(
        self,
        path: Union[str, Path],
        rule: Optional[EnergyShareRule] = None,
        consider_idle_energy: bool = True,
        overwrite: bool = True,
    ):
        self.path = Path(path)
        self.rule = rule or LoadFractionShareRule()
        self.consider_idle_energy = consider_idle_energy
        self.overwrite = overwrite
        self._queue: "queue.Queue" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    def tag(self, user: EnergyUsageSource, host: Host) -> Optional[str]:
        raise NotImplementedError

    def lines(self, measurement: Measurement, sample: LoadFractionSample) -> List[str]:
        answer = []
        for user, value in apportion(measurement, sample, self.rule, self.consider_idle_energy):
            tag = self.tag(user, sample.host)
            if tag is not None:
                answer.append(f"{tag} power {value}")
        return answer

    def log(self, measurement: Measurement, sample: LoadFractionSample):
        self._queue.put((measurement, sample))

    def start(self):
        if self._thread is not None:
            return
        if self.overwrite:
            self.path.write_text("")
        self._thread = threading.Thread(target=self._run, name=type(self).__name__, daemon=True)
        self._thread.start()
        logger.info(f"{type(self).__name__} writing to {self.path}")

    def stop(self, timeout: float = 5.0):
        """Writes out everything queued so far, then stops the writer thread."""
        if self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout)
        self._thread = None

    def _run(self):
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            measurement, sample = item
            try:
                self._write(self.lines(measurement, sample))
            except (OSError, ValueError) as e:
                logger.error(f"{type(self).__name__} failed to write to {self.path}: {e}", exc_info=True)

    def _write(self, lines: List[str]):
        if not lines:
            return
        with self.path.open("a") as handle:
            for line in lines:
                handle.write(line + "\n")


class VmEnergyUsageLogger(EnergyUsageLogger):

    def tag(self, user, host):
        if not isinstance(user, VmDeployed):
            return None
        return f"VM:{user.name}:{host.name}"


class ApplicationEnergyUsageLogger(EnergyUsageLogger):

    def tag(self, user, host):
        if not isinstance(user, ApplicationOnHost):
            return None
        if user.allocated_to is None:
            user.allocated_to = host
        return f"APP:{user.name}:{user.id}:{user.allocated_to.name}"

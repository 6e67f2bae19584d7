"""
Historic energy division

The data gatherer writes host power records and load fraction samples from
two independent paths, so the two series may differ in length and timing.
Before integrating, the series are aligned by exact timestamp; samples
without a partner are dropped rather than interpolated. Energy between each
pair of aligned samples is found with the trapezoidal rule and apportioned
by the average load fraction of the two samples.
"""

import logging
from operator import attrgetter
from typing import Iterable, List, Optional, Set, Tuple

from ..types import EnergyUsageSource, Host, HostEnergyRecord, LoadFractionSample

logger = logging.getLogger(__name__)


def clean_data(
    load_fractions: Iterable[LoadFractionSample],
    energy_records: Iterable[HostEnergyRecord],
) -> Tuple[List[LoadFractionSample], List[HostEnergyRecord]]:
    """
    Align load fraction samples with host energy records

    Both inputs are sorted by time, then the heads are compared repeatedly:
    equal timestamps form a pair and both sides advance, otherwise only the
    side with the earlier head advances and that sample is discarded.

    Args:
        load_fractions: Load fraction samples for one host
        energy_records: Host energy records for the same host

    Returns:
        Tuple of (matched load fractions, matched energy records), equal in
        length and index-aligned.
    """
    fractions = sorted(load_fractions, key=attrgetter("time"))
    records = sorted(energy_records, key=attrgetter("time"))
    matched_fractions: List[LoadFractionSample] = []
    matched_records: List[HostEnergyRecord] = []
    i = j = 0
    while i < len(fractions) and j < len(records):
        if fractions[i].time == records[j].time:
            matched_fractions.append(fractions[i])
            matched_records.append(records[j])
            i += 1
            j += 1
        elif fractions[i].time < records[j].time:
            i += 1
        else:
            j += 1
    dropped = (len(fractions) - len(matched_fractions)) + (len(records) - len(matched_records))
    if dropped:
        logger.debug(f"Dropped {dropped} unmatched historic samples while aligning")
    return matched_fractions, matched_records


class HistoricLoadBasedDivision:
    """
    Base class for dividing a host's historic energy among its energy users

    Set the host's energy records and load fraction samples, then query
    ``energy_usage(user)`` for the energy in Wh attributed to a user.
    """

    def __init__(self, host: Host):
        self.host = host
        self.energy_users: Set[EnergyUsageSource] = set()
        self._energy_records: List[HostEnergyRecord] = []
        self._load_fractions: List[LoadFractionSample] = []
        self._aligned: Optional[Tuple[List[LoadFractionSample], List[HostEnergyRecord]]] = None

    def add_energy_users(self, users: Iterable[EnergyUsageSource]):
        self.energy_users.update(users)

    def set_energy_usage(self, records: Iterable[HostEnergyRecord]):
        self._energy_records = sorted(records, key=attrgetter("time"))
        self._aligned = None

    def set_load_fraction(self, samples: Iterable[LoadFractionSample]):
        self._load_fractions = sorted(samples, key=attrgetter("time"))
        self._aligned = None

    def aligned_data(self) -> Tuple[List[LoadFractionSample], List[HostEnergyRecord]]:
        if self._aligned is None:
            self._aligned = clean_data(self._load_fractions, self._energy_records)
        return self._aligned

    def duration(self) -> float:
        """Seconds between the first and last host energy record."""
        if not self._energy_records:
            return 0
        return self._energy_records[-1].time - self._energy_records[0].time

    def duration_of(self, user: EnergyUsageSource) -> float:
        """Seconds between the first and last load sample that include ``user``."""
        present = [sample.time for sample in self._load_fractions if user in sample.fractions]
        if not present:
            return 0
        return present[-1] - present[0]

    @property
    def start(self) -> Optional[int]:
        if not self._energy_records:
            return None
        return self._energy_records[0].time

    @property
    def end(self) -> Optional[int]:
        if not self._energy_records:
            return None
        return self._energy_records[-1].time

    def _pairs(self, user: EnergyUsageSource):
        """Adjacent aligned samples where ``user`` is present at both ends."""
        fractions, records = self.aligned_data()
        for i in range(len(records) - 1):
            load1, load2 = fractions[i], fractions[i + 1]
            if user in load1.fractions and user in load2.fractions:
                yield records[i], records[i + 1], load1, load2

    @staticmethod
    def _delta_energy(record1: HostEnergyRecord, record2: HostEnergyRecord,
                      load1: LoadFractionSample, load2: LoadFractionSample) -> float:
        hours = (record2.time - record1.time) / 3600.0
        power1 = record1.power + load1.host_power_offset
        power2 = record2.power + load2.host_power_offset
        return abs(hours * (power1 + power2) * 0.5)

    def energy_usage(self, user: EnergyUsageSource) -> float:
        raise NotImplementedError


class LoadBasedDivision(HistoricLoadBasedDivision):
    """Apportions all historic energy by average load fraction."""

    def energy_usage(self, user: EnergyUsageSource) -> float:
        total = 0.0
        for record1, record2, load1, load2 in self._pairs(user):
            delta_energy = self._delta_energy(record1, record2, load1, load2)
            avg_fraction = (load1.fraction(user) + load2.fraction(user)) / 2.0
            total += delta_energy * avg_fraction
        return total


class LoadBasedDivisionWithIdleEnergy(HistoricLoadBasedDivision):
    """
    Gives every energy user an even share of idle energy first

    The idle power is split by the average number of users present in the
    two samples; the remaining active energy is apportioned by average load
    fraction.
    """

    def energy_usage(self, user: EnergyUsageSource) -> float:
        idle_power = self.host.idle_power_consumption
        total = 0.0
        for record1, record2, load1, load2 in self._pairs(user):
            hours = (record2.time - record1.time) / 3600.0
            user_count = (len(load1.fractions) + len(load2.fractions)) / 2.0
            idle_user_energy = idle_power / user_count * hours
            active_energy = self._delta_energy(record1, record2, load1, load2) - idle_power * hours
            avg_fraction = (load1.fraction(user) + load2.fraction(user)) / 2.0
            total += idle_user_energy + active_energy * avg_fraction
        return total

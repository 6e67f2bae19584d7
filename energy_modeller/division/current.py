"""
Instantaneous energy division

Apportions a single power or energy value measured (or predicted) for a
host among the energy users resident on it. A share rule decides the weight
of each user; the resulting EnergyDivision answers per-user share queries.
"""

import logging
import math
from typing import Dict, Iterable, List, Optional

from ..types import EnergyUsageSource, Host, LoadFractionSample, Measurement, VM

logger = logging.getLogger(__name__)


class EnergyDivision:
    """
    Weighted split of a host's power or energy among its energy users

    With ``consider_idle_energy`` enabled each user first receives an even
    share of the host's idle power, and only the remainder is split by
    weight. Otherwise the whole value is split by weight.
    """

    def __init__(self, host: Host, consider_idle_energy: bool = True):
        self.host = host
        self.consider_idle_energy = consider_idle_energy
        self._weights: Dict[EnergyUsageSource, float] = {}

    def add_weight(self, source: EnergyUsageSource, weight: float):
        if weight is None or math.isnan(weight) or weight < 0:
            raise ValueError(f"Invalid weight {weight} for energy user {source}")
        self._weights[source] = weight

    def remove(self, source: EnergyUsageSource):
        self._weights.pop(source, None)

    @property
    def energy_users(self) -> List[EnergyUsageSource]:
        return list(self._weights.keys())

    @property
    def total_weight(self) -> float:
        return sum(self._weights.values())

    def share_of(self, total: float, target: EnergyUsageSource) -> float:
        """
        Share of ``total`` attributed to ``target``

        Args:
            total: Host power (W) or energy (Wh) to divide
            target: Energy user to query

        Returns:
            The target's share, 0 when the target is not part of this
            division. When the weights sum to zero only the idle share is
            given, or 0 with idle energy ignored.
        """
        weight = self._weights.get(target)
        if weight is None:
            return 0.0
        total_weight = self.total_weight
        if not self.consider_idle_energy:
            return weight / total_weight * total if total_weight else 0.0
        idle = self.host.idle_power_consumption
        idle_share = idle / len(self._weights)
        if total_weight == 0:
            return idle_share
        active = max(total - idle, 0.0)
        return idle_share + weight / total_weight * active


class EnergyShareRule:
    """Decides the weight each energy user gets in an EnergyDivision."""

    def energy_usage(self, host: Host, energy_users: Iterable[EnergyUsageSource]) -> EnergyDivision:
        raise NotImplementedError


class DefaultEnergyShareRule(EnergyShareRule):
    """Every energy user gets the same weight."""

    def energy_usage(self, host: Host, energy_users: Iterable[EnergyUsageSource]) -> EnergyDivision:
        division = EnergyDivision(host)
        for user in energy_users:
            division.add_weight(user, 1.0)
        return division


class LoadFractionShareRule(EnergyShareRule):
    """Weights energy users by their most recently observed load fraction."""

    def __init__(self, fractions: Optional[Dict[EnergyUsageSource, float]] = None):
        self.fractions: Dict[EnergyUsageSource, float] = dict(fractions or {})

    def set_fractions(self, fractions: Dict[EnergyUsageSource, float]):
        self.fractions = dict(fractions)

    def set_measurements(self, measurements: List[Measurement]):
        self.fractions = LoadFractionSample.fractions_from_measurements(measurements)

    def energy_usage(self, host: Host, energy_users: Iterable[EnergyUsageSource]) -> EnergyDivision:
        division = EnergyDivision(host)
        for user in energy_users:
            fraction = self.fractions.get(user)
            if fraction is None:
                logger.debug(f"No load fraction for {user}, giving it no share")
                fraction = 0.0
            division.add_weight(user, fraction)
        return division


class LoadFractionAndCoreCountShareRule(LoadFractionShareRule):
    """Load fractions scaled by each VM's core count."""

    def set_measurements(self, measurements: List[Measurement]):
        self.fractions = LoadFractionSample.fractions_from_measurements(
            measurements, consider_core_count=True
        )


class VmCpuCountEnergyShareRule(EnergyShareRule):
    """Weights VMs by their CPU count; other energy users are ignored."""

    def energy_usage(self, host: Host, energy_users: Iterable[EnergyUsageSource]) -> EnergyDivision:
        division = EnergyDivision(host)
        for user in energy_users:
            if isinstance(user, VM):
                division.add_weight(user, float(user.cpus))
        return division

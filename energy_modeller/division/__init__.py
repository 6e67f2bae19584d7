"""
Energy division: apportioning host power and energy among energy users
"""

from typing import Callable, Dict

from ..exceptions import ConfigurationError
from ..types import Host
from .current import (
    DefaultEnergyShareRule,
    EnergyDivision,
    EnergyShareRule,
    LoadFractionAndCoreCountShareRule,
    LoadFractionShareRule,
    VmCpuCountEnergyShareRule,
)
from .historic import (
    HistoricLoadBasedDivision,
    LoadBasedDivision,
    LoadBasedDivisionWithIdleEnergy,
    clean_data,
)

SHARE_RULES: Dict[str, Callable[[], EnergyShareRule]] = {
    "default": DefaultEnergyShareRule,
    "load_fraction": LoadFractionShareRule,
    "load_fraction_core_count": LoadFractionAndCoreCountShareRule,
    "vm_cpu_count": VmCpuCountEnergyShareRule,
}

HISTORIC_DIVISIONS: Dict[str, Callable[[Host], HistoricLoadBasedDivision]] = {
    "load_based": LoadBasedDivision,
    "load_based_with_idle": LoadBasedDivisionWithIdleEnergy,
}


def create_share_rule(name: str) -> EnergyShareRule:
    """Build the share rule registered under ``name``."""
    try:
        return SHARE_RULES[name]()
    except KeyError:
        raise ConfigurationError(
            f"Unknown share rule '{name}', expected one of {sorted(SHARE_RULES)}"
        ) from None


def create_historic_division(name: str, host: Host) -> HistoricLoadBasedDivision:
    """Build the historic division registered under ``name`` for ``host``."""
    try:
        factory = HISTORIC_DIVISIONS[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown historic division rule '{name}', expected one of {sorted(HISTORIC_DIVISIONS)}"
        ) from None
    return factory(host)


__all__ = [
    "DefaultEnergyShareRule",
    "EnergyDivision",
    "EnergyShareRule",
    "HISTORIC_DIVISIONS",
    "HistoricLoadBasedDivision",
    "LoadBasedDivision",
    "LoadBasedDivisionWithIdleEnergy",
    "LoadFractionAndCoreCountShareRule",
    "LoadFractionShareRule",
    "SHARE_RULES",
    "VmCpuCountEnergyShareRule",
    "clean_data",
    "create_historic_division",
    "create_share_rule",
]

"""
Tests for current and historic energy division
"""
import pytest

from energy_modeller.division import (
    DefaultEnergyShareRule,
    EnergyDivision,
    LoadBasedDivision,
    LoadBasedDivisionWithIdleEnergy,
    LoadFractionShareRule,
    VmCpuCountEnergyShareRule,
    clean_data,
    create_historic_division,
    create_share_rule,
)
from energy_modeller.exceptions import ConfigurationError
from energy_modeller.types import HostEnergyRecord, LoadFractionSample, VmDeployed


@pytest.fixture
def vms(host):
    return (
        VmDeployed(name="vm1", cpus=3, allocated_to=host),
        VmDeployed(name="vm2", cpus=1, allocated_to=host),
    )


class TestEnergyDivision:
    """Test weighted splitting of a single power value"""

    def test_split_by_weight_without_idle(self, host, vms):
        """Test shares are proportional to weight when idle energy is ignored"""
        vm1, vm2 = vms
        division = EnergyDivision(host, consider_idle_energy=False)
        division.add_weight(vm1, 3.0)
        division.add_weight(vm2, 1.0)
        assert division.share_of(150.0, vm1) == pytest.approx(112.5)
        assert division.share_of(150.0, vm2) == pytest.approx(37.5)

    def test_idle_power_shared_evenly_first(self, host, vms):
        """Test idle power is split evenly and only the rest by weight"""
        vm1, vm2 = vms
        division = EnergyDivision(host, consider_idle_energy=True)
        division.add_weight(vm1, 3.0)
        division.add_weight(vm2, 1.0)
        # 50 W idle -> 25 W each, 100 W active split 3:1
        assert division.share_of(150.0, vm1) == pytest.approx(100.0)
        assert division.share_of(150.0, vm2) == pytest.approx(50.0)

    def test_shares_sum_to_total(self, host, vms):
        """Test the shares of all users add back up to the divided value"""
        division = EnergyDivision(host, consider_idle_energy=True)
        for vm, weight in zip(vms, (0.3, 0.9)):
            division.add_weight(vm, weight)
        assert sum(division.share_of(200.0, vm) for vm in vms) == pytest.approx(200.0)

    def test_unknown_user_and_zero_weights_get_nothing(self, host, vms):
        """Test absent users and all-zero weights give a share of 0"""
        vm1, vm2 = vms
        division = EnergyDivision(host, consider_idle_energy=False)
        division.add_weight(vm1, 0.0)
        assert division.share_of(100.0, vm1) == 0.0
        assert division.share_of(100.0, vm2) == 0.0

    def test_zero_weights_still_share_idle_power(self, host, vms):
        """Test users with no load still get an even share of idle power"""
        vm1, vm2 = vms
        rule = LoadFractionShareRule({vm1: 0.0, vm2: 0.0})
        division = rule.energy_usage(host, vms)
        assert division.share_of(120.0, vm1) == pytest.approx(25.0)
        assert division.share_of(120.0, vm2) == pytest.approx(25.0)

    def test_negative_weight_rejected(self, host, vms):
        """Test a negative weight raises ValueError"""
        with pytest.raises(ValueError):
            EnergyDivision(host).add_weight(vms[0], -1.0)


class TestShareRules:
    """Test the weights each share rule assigns"""

    def test_default_rule_is_even(self, host, vms):
        """Test the default rule gives every user the same share"""
        division = DefaultEnergyShareRule().energy_usage(host, vms)
        division.consider_idle_energy = False
        assert division.share_of(100.0, vms[0]) == pytest.approx(50.0)

    def test_load_fraction_rule_uses_fractions(self, host, vms):
        """Test the load fraction rule weights by the last fractions set"""
        vm1, vm2 = vms
        rule = LoadFractionShareRule()
        rule.set_fractions({vm1: 0.8, vm2: 0.2})
        division = rule.energy_usage(host, vms)
        division.consider_idle_energy = False
        assert division.share_of(100.0, vm1) == pytest.approx(80.0)

    def test_load_fraction_rule_missing_user_gets_zero(self, host, vms):
        """Test a user with no known fraction receives nothing"""
        vm1, vm2 = vms
        rule = LoadFractionShareRule({vm1: 1.0})
        division = rule.energy_usage(host, vms)
        division.consider_idle_energy = False
        assert division.share_of(100.0, vm2) == 0.0

    def test_cpu_count_rule(self, host, vms):
        """Test the CPU count rule weights VMs by their cores"""
        vm1, vm2 = vms
        division = VmCpuCountEnergyShareRule().energy_usage(host, vms)
        division.consider_idle_energy = False
        assert division.share_of(100.0, vm1) == pytest.approx(75.0)

    def test_registry_lookup(self):
        """Test share rules and historic divisions are built by name"""
        assert isinstance(create_share_rule("load_fraction"), LoadFractionShareRule)

    def test_unknown_rule_raises(self, host):
        """Test unknown names raise ConfigurationError"""
        with pytest.raises(ConfigurationError):
            create_share_rule("nope")
        with pytest.raises(ConfigurationError):
            create_historic_division("nope", host)


class TestCleanData:
    """Test alignment of load samples with host energy records"""

    def test_only_exact_timestamps_kept(self, host, vms):
        """Test unmatched samples on either side are dropped"""
        fractions = [LoadFractionSample(host, t, {vms[0]: 1.0}) for t in (20, 0, 10)]
        records = [HostEnergyRecord(host, t, 100.0) for t in (0, 5, 20)]
        matched_fractions, matched_records = clean_data(fractions, records)
        assert [f.time for f in matched_fractions] == [0, 20]
        assert [r.time for r in matched_records] == [0, 20]

    def test_empty_input(self):
        """Test empty inputs align to empty outputs"""
        assert clean_data([], []) == ([], [])


class TestHistoricDivision:
    """Test integration of historic host energy among VMs"""

    @pytest.fixture
    def history(self, host, vms):
        vm1, vm2 = vms
        records = [HostEnergyRecord(host, 0, 100.0), HostEnergyRecord(host, 3600, 100.0)]
        samples = [
            LoadFractionSample(host, 0, {vm1: 0.75, vm2: 0.25}),
            LoadFractionSample(host, 3600, {vm1: 0.75, vm2: 0.25}),
        ]
        return records, samples

    def test_load_based_division(self, host, vms, history):
        """Test one hour at 100 W with a 75% load fraction gives 75 Wh"""
        records, samples = history
        division = LoadBasedDivision(host)
        division.add_energy_users(vms)
        division.set_energy_usage(records)
        division.set_load_fraction(samples)
        assert division.energy_usage(vms[0]) == pytest.approx(75.0)
        assert division.energy_usage(vms[1]) == pytest.approx(25.0)
        assert division.duration() == 3600
        assert (division.start, division.end) == (0, 3600)

    def test_division_with_idle_energy(self, host, vms, history):
        """Test idle energy is split by head count before load fractions apply"""
        records, samples = history
        division = LoadBasedDivisionWithIdleEnergy(host)
        division.set_energy_usage(records)
        division.set_load_fraction(samples)
        # 25 Wh idle share plus 75% of the 50 Wh active energy
        assert division.energy_usage(vms[0]) == pytest.approx(62.5)

    def test_host_power_offset_included(self, host, vms):
        """Test the general purpose overhead adds to the host power"""
        vm1 = vms[0]
        division = LoadBasedDivision(host)
        division.set_energy_usage([HostEnergyRecord(host, 0, 90.0), HostEnergyRecord(host, 3600, 90.0)])
        division.set_load_fraction([
            LoadFractionSample(host, 0, {vm1: 1.0}, host_power_offset=10.0),
            LoadFractionSample(host, 3600, {vm1: 1.0}, host_power_offset=10.0),
        ])
        assert division.energy_usage(vm1) == pytest.approx(100.0)

    def test_user_absent_from_one_end_gets_nothing(self, host, vms):
        """Test intervals where the user is missing at either end are skipped"""
        vm1, vm2 = vms
        division = LoadBasedDivision(host)
        division.set_energy_usage([HostEnergyRecord(host, 0, 100.0), HostEnergyRecord(host, 3600, 100.0)])
        division.set_load_fraction([
            LoadFractionSample(host, 0, {vm1: 1.0}),
            LoadFractionSample(host, 3600, {vm1: 0.5, vm2: 0.5}),
        ])
        assert division.energy_usage(vm2) == 0.0
        assert division.duration_of(vm2) == 0

    def test_no_records(self, host, vms):
        """Test an empty history gives no energy and no bounds"""
        division = LoadBasedDivision(host)
        assert division.energy_usage(vms[0]) == 0.0
        assert division.duration() == 0
        assert division.start is None


class TestHistoricEndpoints:
    """Test integration when power and fractions change between samples"""

    def test_rising_power_half_load(self, host, vms):
        """Test 100 W rising to 200 W over an hour at half load gives 75 Wh"""
        vm1 = vms[0]
        division = LoadBasedDivision(host)
        division.set_energy_usage([HostEnergyRecord(host, 0, 100.0), HostEnergyRecord(host, 3600, 200.0)])
        division.set_load_fraction([
            LoadFractionSample(host, 0, {vm1: 0.5}),
            LoadFractionSample(host, 3600, {vm1: 0.5}),
        ])
        assert division.energy_usage(vm1) == pytest.approx(75.0)

    def test_fractions_averaged_across_interval(self, host, vms):
        """Test the two end fractions are averaged along with the two powers"""
        vm1, vm2 = vms
        division = LoadBasedDivision(host)
        division.set_energy_usage([HostEnergyRecord(host, 0, 100.0), HostEnergyRecord(host, 3600, 200.0)])
        division.set_load_fraction([
            LoadFractionSample(host, 0, {vm1: 0.2, vm2: 0.8}),
            LoadFractionSample(host, 3600, {vm1: 0.6, vm2: 0.4}),
        ])
        # 150 Wh in the interval, average fractions 0.4 and 0.6
        assert division.energy_usage(vm1) == pytest.approx(60.0)
        assert division.energy_usage(vm2) == pytest.approx(90.0)

    def test_unsorted_input_is_ordered(self, host, vms):
        """Test records and samples given out of order integrate by time"""
        vm1 = vms[0]
        division = LoadBasedDivision(host)
        division.set_energy_usage([
            HostEnergyRecord(host, 7200, 200.0),
            HostEnergyRecord(host, 0, 100.0),
            HostEnergyRecord(host, 3600, 200.0),
        ])
        division.set_load_fraction([LoadFractionSample(host, t, {vm1: 0.5}) for t in (3600, 7200, 0)])
        # 75 Wh for the first hour, 100 Wh for the second
        assert division.energy_usage(vm1) == pytest.approx(175.0)
        assert (division.start, division.end) == (0, 7200)

    def test_idle_split_by_average_user_count(self, host, vms):
        """Test idle energy is divided by the mean head count of the two samples"""
        vm1, vm2 = vms
        division = LoadBasedDivisionWithIdleEnergy(host)
        division.set_energy_usage([HostEnergyRecord(host, 0, 150.0), HostEnergyRecord(host, 3600, 150.0)])
        division.set_load_fraction([
            LoadFractionSample(host, 0, {vm1: 1.0}),
            LoadFractionSample(host, 3600, {vm1: 0.5, vm2: 0.5}),
        ])
        # 50 Wh idle over 1.5 users, then 75% of the 100 Wh active energy
        assert division.energy_usage(vm1) == pytest.approx(50.0 / 1.5 + 75.0)
        assert division.energy_usage(vm2) == 0.0

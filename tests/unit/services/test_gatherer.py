"""
Unit tests for the data gatherer

Tests the DataGatherer including:
- Fault counting and the cooldown pause
- Host history written only when telemetry moves on
- Load fraction samples for resident VMs
- Metric write back, auto calibration and VM host resolution
"""
import pytest
from unittest.mock import Mock

from energy_modeller.config import Settings
from energy_modeller.exceptions import TelemetryError
from energy_modeller.services.gatherer import DataGatherer
from energy_modeller.types import GeneralPurposeNode, Host, Measurement, VmDeployed, metrics


@pytest.fixture
def gatherer(test_settings, telemetry, store, mock_sleep):
    return DataGatherer(telemetry, store, test_settings, sleep=mock_sleep)


@pytest.fixture
def two_vms(host, telemetry):
    """Two VMs on the host, each at 50% CPU"""
    vm1 = VmDeployed(name="vm1", allocated_to=host)
    vm2 = VmDeployed(name="vm2", allocated_to=host)
    for vm in (vm1, vm2):
        telemetry.add_vm(vm)
        telemetry.set_measurement(vm, {metrics.CPU_SPOT_USAGE_PERCENT: 50.0}, clock=10)
    return vm1, vm2


class TestFaultHandling:
    """Test the fault counter and cooldown"""

    def test_cooldown_after_threshold(self, store, mock_sleep):
        """Test exceeding the fault threshold pauses and resets the count"""
        settings = Settings(FAULT_THRESHOLD=2, FAULT_COOLDOWN_SECONDS=300.0, POLL_INTERVAL_SECONDS=1.0)
        telemetry = Mock()
        telemetry.list_hosts.side_effect = TelemetryError("prometheus down")
        gatherer = DataGatherer(telemetry, store, settings, sleep=mock_sleep)

        gatherer.run_once()
        gatherer.run_once()
        assert gatherer.fault_count == 2
        assert gatherer.cooldown_count == 0
        mock_sleep.assert_called_with(1.0)

        gatherer.run_once()
        assert gatherer.fault_count == 0
        assert gatherer.cooldown_count == 1
        mock_sleep.assert_called_with(300.0)

    def test_fault_storm_pauses_once(self, store, mock_sleep):
        """Test 101 failed ticks with the default threshold cause exactly one pause"""
        settings = Settings(FAULT_THRESHOLD=100, FAULT_COOLDOWN_SECONDS=300.0)
        telemetry = Mock()
        telemetry.list_hosts.side_effect = TelemetryError("prometheus down")
        gatherer = DataGatherer(telemetry, store, settings, sleep=mock_sleep)
        for _ in range(101):
            gatherer.run_once()
        assert gatherer.cooldown_count == 1
        assert gatherer.fault_count == 0
        assert [c.args[0] for c in mock_sleep.call_args_list].count(300.0) == 1

    def test_successful_tick_lowers_fault_count(self, gatherer):
        """Test a good tick takes one off the fault count"""
        gatherer.fault_count = 3
        gatherer.run_once()
        assert gatherer.fault_count == 2
        gatherer.sleep.assert_called_once_with(1.0)


class TestHostHistory:
    """Test host records written by the gatherer"""

    def test_written_only_when_clock_advances(self, gatherer, telemetry, store, host):
        """Test a repeated measurement is not stored twice"""
        telemetry.add_host(host)
        telemetry.set_measurement(host, {metrics.POWER: 100.0, metrics.ENERGY: 2.0}, clock=10)
        gatherer.tick()
        gatherer.tick()
        telemetry.set_measurement(host, {metrics.POWER: 110.0}, clock=20)
        gatherer.tick()
        records = store.get_host_history_data(host)
        assert [(r.time, r.power, r.energy) for r in records] == [(10, 100.0, 2.0), (20, 110.0, 0.0)]

    def test_missing_power_not_stored(self, gatherer, telemetry, store, host):
        """Test a measurement without a power reading is skipped"""
        telemetry.add_host(host)
        telemetry.set_measurement(host, {metrics.CPU_SPOT_USAGE_PERCENT: 10.0}, clock=10)
        gatherer.tick()
        assert store.get_host_history_data(host) == []

    def test_discovered_hosts_registered(self, gatherer, telemetry, store, host):
        """Test new hosts are kept and passed to the store"""
        telemetry.add_host(host)
        gatherer.tick()
        assert gatherer.host("node1") is host
        assert store.get_hosts() == [host]

    def test_read_only_instance_writes_nothing(self, telemetry, store, host, mock_sleep):
        """Test no history is written when data gathering is off"""
        settings = Settings(PERFORM_DATA_GATHERING=False)
        telemetry.add_host(host)
        telemetry.set_measurement(host, {metrics.POWER: 100.0}, clock=10)
        DataGatherer(telemetry, store, settings, sleep=mock_sleep).tick()
        assert store.get_host_history_data(host) == []


class TestLoadFractions:
    """Test load fraction samples and write back"""

    def test_sample_for_resident_vms(self, gatherer, telemetry, store, host, two_vms):
        """Test each VM's share of the host load is stored"""
        vm1, vm2 = two_vms
        telemetry.add_host(host)
        telemetry.set_measurement(host, {metrics.POWER: 100.0}, clock=10)
        gatherer.tick()
        samples = store.get_host_load_fraction_history(host)
        assert len(samples) == 1
        assert samples[0].fraction(vm1) == pytest.approx(0.5)
        assert samples[0].fraction(vm2) == pytest.approx(0.5)

    def test_write_back_vm_power(self, telemetry, store, host, two_vms, mock_sleep):
        """Test apportioned VM power is published when enabled"""
        settings = Settings(WRITE_BACK_TO_TELEMETRY=True, LOGGER_CONSIDER_IDLE_ENERGY=False)
        telemetry.add_host(host)
        telemetry.set_measurement(host, {metrics.POWER: 100.0}, clock=10)
        DataGatherer(telemetry, store, settings, sleep=mock_sleep).tick()
        written = {(entity.name, key): value for entity, key, value in telemetry.written_metrics}
        assert written == {("vm1", metrics.VM_POWER): 50.0, ("vm2", metrics.VM_POWER): 50.0}

    def test_no_write_back_by_default(self, gatherer, telemetry, host, two_vms):
        """Test nothing is published unless write back is enabled"""
        telemetry.add_host(host)
        telemetry.set_measurement(host, {metrics.POWER: 100.0}, clock=10)
        gatherer.tick()
        assert telemetry.written_metrics == []

    def test_general_purpose_power_spread_over_hosts(self, gatherer, host):
        """Test shared node power is split evenly between the known hosts"""
        gatherer.refresh_hosts([host, Host(id=2, name="node2")])
        node = GeneralPurposeNode(id=9, name="storage1")
        offset = gatherer.host_power_offset([Measurement(node, 10, {metrics.POWER: 40.0})])
        assert offset == pytest.approx(20.0)


class TestRegistries:
    """Test host calibration and VM placement"""

    def test_auto_calibration_from_observed_power(self, telemetry, store, mock_sleep):
        """Test an uncalibrated host gets a two point curve from observed power"""
        settings = Settings(AUTO_CALIBRATE_FROM_OBSERVED_POWER=True)
        bare = Host(id=2, name="node2")
        for clock, power in ((1, 80.0), (2, 200.0), (3, 120.0)):
            telemetry.set_measurement(bare, {metrics.POWER: power}, clock=clock)
        DataGatherer(telemetry, store, settings, sleep=mock_sleep).refresh_hosts([bare])
        assert bare.idle_power_consumption == 80.0
        assert bare.max_power_consumption == 200.0
        assert store.get_host_calibration_data(bare) == bare.calibration_data

    def test_stored_calibration_preferred(self, gatherer, store, linear_calibration):
        """Test calibration data already in the store is used for new hosts"""
        bare = Host(id=2, name="node2")
        store.set_host_calibration_data(bare, linear_calibration)
        gatherer.refresh_hosts([bare])
        assert gatherer.host("node2").calibration_data == linear_calibration

    def test_vm_host_resolved_from_name(self, gatherer, telemetry, host):
        """Test a VM named <prefix>_<host> is placed on that host"""
        gatherer.refresh_hosts([host])
        telemetry.add_vm(VmDeployed(name="instance_node1"))
        assert gatherer.vm("instance_node1").allocated_to is host

    def test_vms_on_host_only_active(self, gatherer, telemetry, host, two_vms):
        """Test VMs no longer reported by telemetry are left out"""
        vm1, vm2 = two_vms
        gatherer.refresh_vms(telemetry.list_vms())
        telemetry.remove_vm("vm2")
        assert gatherer.vms_on_host(host) == [vm1]

"""
Unit tests for the energy modeller facade

Tests the EnergyModeller including:
- Historic host and VM energy from stored records
- Current power shares for VMs and applications
- Forecasts for hosts, VMs and VM transfers
- Wiring from settings
"""
import pytest

from energy_modeller.config import Settings
from energy_modeller.datastore import ReadOnlyEnergyStore
from energy_modeller.modeller import build_energy_modeller
from energy_modeller.services import VmEnergyUsageLogger
from energy_modeller.types import (
    ApplicationOnHost,
    CalibrationPoint,
    GeneralPurposeNode,
    Host,
    LoadFractionSample,
    TimePeriod,
    VmDeployed,
    metrics,
)


@pytest.fixture
def modeller(test_settings, telemetry, store):
    return build_energy_modeller(test_settings, telemetry, store)


@pytest.fixture
def vm2(host):
    return VmDeployed(name="vm2", allocated_to=host)


@pytest.fixture
def running_host(modeller, telemetry, host, vm, vm2):
    """A host drawing 150 W with two VMs, already seen by the gatherer"""
    telemetry.add_host(host)
    for resident, usage in ((vm, 75.0), (vm2, 25.0)):
        telemetry.add_vm(resident)
        telemetry.set_measurement(resident, {metrics.CPU_SPOT_USAGE_PERCENT: usage}, clock=100)
    telemetry.set_measurement(host, {metrics.POWER: 150.0}, clock=100)
    modeller.gatherer.tick()
    return host


class TestHostHistory:
    """Test historic host energy"""

    def test_trapezoid_over_records(self, modeller, store, host):
        """Test energy integrates the stored power curve"""
        for time, power in ((0, 100.0), (3600, 200.0), (7200, 100.0)):
            store.write_host_historic_data(host, time, power, 0.0)
        record = modeller.energy_record_for_host(host)
        assert record.total_energy_used == pytest.approx(300.0)
        assert record.avg_power_used == pytest.approx(150.0)
        assert record.duration == TimePeriod(0, 7200)

    def test_single_record(self, modeller, store, host):
        """Test one record gives its power and no energy"""
        store.write_host_historic_data(host, 10, 120.0, 0.0)
        record = modeller.energy_record_for_host(host)
        assert record.avg_power_used == 120.0
        assert record.total_energy_used == 0.0

    def test_no_records(self, modeller, host):
        """Test a host without history reports nothing used"""
        record = modeller.energy_record_for_host(host, TimePeriod(0, 100))
        assert record.total_energy_used == 0.0
        assert record.duration == TimePeriod(0, 100)

    def test_invalid_period(self, modeller, host, vm):
        """Test a period ending before it starts gives no answer"""
        period = TimePeriod(100, 10)
        assert modeller.energy_record_for_host(host, period) is None
        assert modeller.energy_record_for_vm(vm, period) is None
        assert modeller.energy_record_for_hosts([host], period) is None
        assert modeller.host_predicted_energy(host, period=period) is None


class TestVmHistory:
    """Test historic VM energy"""

    def test_load_based_share(self, modeller, store, host, vm, vm2):
        """Test a VM gets its load share of the host's energy"""
        for time in (0, 3600):
            store.write_host_historic_data(host, time, 100.0, 0.0)
            store.write_host_load_fraction(host, time, LoadFractionSample(host, time, {vm: 0.75, vm2: 0.25}))
        record = modeller.energy_record_for_vm(vm)
        assert record.total_energy_used == pytest.approx(75.0)
        assert record.avg_power_used == pytest.approx(75.0)
        assert record.duration == TimePeriod(0, 3600)

    def test_unplaced_vm(self, modeller):
        """Test a VM without a host has no energy"""
        record = modeller.energy_record_for_vm(VmDeployed(name="floating"))
        assert record.total_energy_used == 0.0

    def test_deployment(self, modeller, telemetry, host):
        """Test records are returned for each VM of a deployment"""
        telemetry.add_host(host)
        telemetry.add_vm(VmDeployed(name="a", allocated_to=host, deployment_id="d1"))
        telemetry.add_vm(VmDeployed(name="b", allocated_to=host, deployment_id="d2"))
        modeller.gatherer.tick()
        records = modeller.energy_record_for_deployment("d1")
        assert [r.energy_user.name for r in records] == ["a"]


class TestCurrentPower:
    """Test current power shares"""

    def test_vm_even_share_with_idle(self, modeller, running_host, vm):
        """Test idle power is split evenly and the rest by equal weight"""
        record = modeller.current_energy_for_vm(vm)
        # 50 W idle over two VMs, then half of the remaining 100 W
        assert record.power == pytest.approx(75.0)
        assert record.time == 100

    def test_vm_load_fraction_share(self, telemetry, store, running_host, vm):
        """Test the load fraction rule follows measured VM load"""
        settings = Settings(TELEMETRY_SOURCE="emulated", CURRENT_DIVISION_RULE="load_fraction",
                            CONSIDER_IDLE_ENERGY_CURRENT=False)
        modeller = build_energy_modeller(settings, telemetry, store)
        modeller.gatherer.tick()
        assert modeller.current_energy_for_vm(vm).power == pytest.approx(112.5)

    def test_vm_without_host(self, modeller):
        """Test an unplaced VM draws no power"""
        assert modeller.current_energy_for_vm(VmDeployed(name="floating")).power == 0.0

    def test_application(self, modeller, telemetry, running_host):
        """Test a lone application gets all of the host's power"""
        app = ApplicationOnHost(id=1, name="job", allocated_to=running_host)
        telemetry.add_application(app)
        assert modeller.current_energy_for_application(app).power == pytest.approx(150.0)

    def test_totals_and_ratio(self, modeller, running_host):
        """Test VM power accounts for all of the host's power"""
        assert modeller.hosts_total_current_power() == pytest.approx(150.0)
        assert modeller.vm_total_current_power() == pytest.approx(150.0)
        assert modeller.vm_to_host_power_ratio() == pytest.approx(1.0)
        assert modeller.host_power_unallocated_to_vms() == pytest.approx(0.0)

    def test_ratio_without_hosts(self, modeller):
        """Test the ratio is 0 when no host draws power"""
        assert modeller.vm_to_host_power_ratio() == 0.0

    def test_general_purpose_overhead(self, modeller, telemetry):
        """Test the overhead is the power of the general purpose nodes"""
        node = GeneralPurposeNode(id=9, name="storage1")
        telemetry.add_general_purpose_node(node)
        telemetry.set_measurement(node, {metrics.POWER: 40.0}, clock=100)
        modeller.gatherer.tick()
        record = modeller.current_general_power_consumer_overhead()
        assert record.power == 40.0
        assert record.energy_users == {node}


class TestForecasts:
    """Test forecasts through the facade"""

    def test_vm_transfer_sums_both_hosts(self, modeller, host, vm, linear_calibration):
        """Test the transfer forecast adds origin and destination forecasts"""
        destination = Host(id=2, name="node2", calibration_data=list(linear_calibration))
        prediction = modeller.predicted_energy_for_vm_transfer(vm, destination, TimePeriod(0, 3600))
        # 100 W at the assumed half load on each host
        assert prediction.avg_power_used == pytest.approx(200.0)
        assert prediction.total_energy_used == pytest.approx(200.0)

    def test_vm_transfer_needs_origin(self, modeller, host):
        """Test an unplaced VM cannot be transferred"""
        assert modeller.predicted_energy_for_vm_transfer(VmDeployed(name="floating"), host) is None

    def test_set_calibration_invalidates_models(self, modeller, store, host):
        """Test new calibration data is stored and used straight away"""
        assert modeller.host_predicted_energy(host, period=TimePeriod(0, 3600)).avg_power_used == pytest.approx(100.0)
        points = [CalibrationPoint(0.0, 0.0, 100.0), CalibrationPoint(1.0, 0.0, 300.0)]
        modeller.set_calibration_data(host, points)
        assert store.get_host_calibration_data(host) == points
        assert modeller.host_predicted_energy(host, period=TimePeriod(0, 3600)).avg_power_used == pytest.approx(200.0)


class TestBuild:
    """Test wiring from settings"""

    def test_read_only_store_without_gathering(self, telemetry, store):
        """Test the store is wrapped read-only when another instance gathers"""
        settings = Settings(TELEMETRY_SOURCE="emulated", PERFORM_DATA_GATHERING=False)
        modeller = build_energy_modeller(settings, telemetry, store)
        assert isinstance(modeller.store, ReadOnlyEnergyStore)

    def test_disk_logger_configured(self, tmp_path, telemetry, store):
        """Test the VM disk logger is created when enabled"""
        settings = Settings(TELEMETRY_SOURCE="emulated", LOG_VMS_TO_DISK=True,
                            VM_LOG_FILENAME=str(tmp_path / "vms.txt"))
        modeller = build_energy_modeller(settings, telemetry, store)
        assert isinstance(modeller.gatherer.vm_logger, VmEnergyUsageLogger)
        assert modeller.gatherer.app_logger is None

    def test_host_list_sorted_by_name(self, modeller, telemetry):
        """Test hosts are listed in name order"""
        for index, name in enumerate(("zeta", "alpha")):
            telemetry.add_host(Host(id=index, name=name))
        modeller.gatherer.tick()
        assert [h.name for h in modeller.host_list()] == ["alpha", "zeta"]

"""
Unit tests for the energy API endpoints

The modeller dependency is overridden, so the application lifespan (and the
data gatherer thread it starts) never runs.
"""
import pytest
from fastapi.testclient import TestClient

from energy_modeller.deps import get_modeller
from energy_modeller.main import app
from energy_modeller.modeller import build_energy_modeller
from energy_modeller.types import ApplicationOnHost, Host, VmDeployed, metrics


@pytest.fixture
def modeller(test_settings, telemetry, store, host, vm):
    """A modeller that has seen one host drawing 150 W with two VMs"""
    vm2 = VmDeployed(name="vm2", allocated_to=host)
    telemetry.add_host(host)
    for resident in (vm, vm2):
        telemetry.add_vm(resident)
        telemetry.set_measurement(resident, {metrics.CPU_SPOT_USAGE_PERCENT: 50.0}, clock=100)
    telemetry.set_measurement(host, {metrics.POWER: 150.0}, clock=100)
    modeller = build_energy_modeller(test_settings, telemetry, store)
    modeller.gatherer.tick()
    return modeller


@pytest.fixture
def client(modeller):
    app.dependency_overrides[get_modeller] = lambda: modeller
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:
    """Test the health endpoint"""

    def test_health_check(self, client, modeller):
        """Test health reports telemetry, gathering and predictor"""
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["telemetry"] == {"status": "connected", "source": "emulated"}
        assert data["gathering"] is False
        assert data["predictor"] == str(modeller.predictor)


class TestHosts:
    """Test host listing and host energy endpoints"""

    def test_list_hosts(self, client):
        """Test known hosts are listed with their calibration summary"""
        response = client.get("/api/v1/hosts")
        assert response.status_code == 200
        hosts = response.json()
        assert [h["name"] for h in hosts] == ["node1"]
        assert hosts[0]["calibrated"] is True
        assert hosts[0]["idle_power_watts"] == 50.0

    def test_unknown_host(self, client):
        """Test an unknown host gives 404"""
        response = client.get("/api/v1/hosts/missing")
        assert response.status_code == 404

    def test_host_vms(self, client):
        """Test the VMs running on a host are listed"""
        response = client.get("/api/v1/hosts/node1/vms")
        assert response.status_code == 200
        assert sorted(vm["name"] for vm in response.json()) == ["vm1", "vm2"]

    def test_current_energy(self, client):
        """Test the host's latest power is returned"""
        response = client.get("/api/v1/hosts/node1/energy/current")
        assert response.status_code == 200
        assert response.json()["power_watts"] == 150.0

    def test_current_energy_without_measurement(self, client, telemetry, modeller):
        """Test a host with no power reading gives 503"""
        telemetry.add_host(Host(id=2, name="node2"))
        modeller.gatherer.tick()
        response = client.get("/api/v1/hosts/node2/energy/current")
        assert response.status_code == 503

    def test_historic_energy(self, client, store, host):
        """Test historic energy integrates stored power records"""
        store.write_host_historic_data(host, 200, 100.0, 0.0)
        store.write_host_historic_data(host, 3800, 100.0, 0.0)
        response = client.get("/api/v1/hosts/node1/energy/historic", params={"start": 200, "end": 3800})
        assert response.status_code == 200
        data = response.json()
        assert data["total_energy_wh"] == pytest.approx(100.0)
        assert data["period"] == {"start": 200.0, "end": 3800.0}

    def test_historic_energy_invalid_period(self, client):
        """Test a period ending before it starts gives 422"""
        response = client.get("/api/v1/hosts/node1/energy/historic", params={"start": 100, "end": 10})
        assert response.status_code == 422

    def test_predicted_energy(self, client, modeller):
        """Test the host forecast over the requested duration"""
        response = client.get("/api/v1/hosts/node1/energy/predicted", params={"duration": 7200})
        assert response.status_code == 200
        data = response.json()
        assert data["avg_power_watts"] == pytest.approx(100.0)
        assert data["total_energy_wh"] == pytest.approx(200.0)
        assert data["predictor"] == str(modeller.predictor)

    def test_predicted_energy_rejects_zero_duration(self, client):
        """Test the forecast duration must be positive"""
        response = client.get("/api/v1/hosts/node1/energy/predicted", params={"duration": 0})
        assert response.status_code == 422


class TestCalibration:
    """Test replacing host calibration data"""

    def test_put_calibration(self, client, store, host):
        """Test new points are stored and summarised"""
        body = {"points": [{"cpu": 0.0, "watts": 100.0}, {"cpu": 1.0, "memory": 0.5, "watts": 300.0}]}
        response = client.put("/api/v1/hosts/node1/calibration", json=body)
        assert response.status_code == 200
        data = response.json()
        assert data["points"] == 2
        assert data["idle_power_watts"] == 100.0
        assert data["max_power_watts"] == 300.0
        assert len(store.get_host_calibration_data(host)) == 2

    def test_put_calibration_invalid_load(self, client):
        """Test a CPU load outside [0, 1] is rejected"""
        response = client.put("/api/v1/hosts/node1/calibration", json={"points": [{"cpu": 1.5, "watts": 10.0}]})
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_put_calibration_requires_points(self, client):
        """Test an empty point list is rejected"""
        response = client.put("/api/v1/hosts/node1/calibration", json={"points": []})
        assert response.status_code == 422


class TestVms:
    """Test VM energy endpoints"""

    def test_vm_current_energy(self, client):
        """Test a VM's share of its host's power"""
        response = client.get("/api/v1/vms/vm1/energy/current")
        assert response.status_code == 200
        assert response.json()["power_watts"] == pytest.approx(75.0)

    def test_unknown_vm(self, client):
        """Test an unknown VM gives 404"""
        response = client.get("/api/v1/vms/missing/energy/current")
        assert response.status_code == 404

    def test_vm_predicted_energy(self, client):
        """Test a VM's share of the host forecast"""
        response = client.get("/api/v1/vms/vm1/energy/predicted")
        assert response.status_code == 200
        assert response.json()["avg_power_watts"] == pytest.approx(50.0)

    def test_unplaced_vm_cannot_be_predicted(self, client, telemetry):
        """Test a VM with no host gives 409"""
        telemetry.add_vm(VmDeployed(name="lonely"))
        response = client.get("/api/v1/vms/lonely/energy/predicted")
        assert response.status_code == 409


class TestApplications:
    """Test application and general purpose endpoints"""

    def test_application_current_energy(self, client, telemetry, host):
        """Test each running instance of an application is reported"""
        telemetry.add_application(ApplicationOnHost(id=3, name="job", allocated_to=host))
        response = client.get("/api/v1/applications/job/energy/current")
        assert response.status_code == 200
        data = response.json()
        assert len(data) == 1
        assert data[0]["power_watts"] == pytest.approx(150.0)

    def test_unknown_application(self, client):
        """Test an application with no instances gives 404"""
        response = client.get("/api/v1/applications/missing/energy/current")
        assert response.status_code == 404

    def test_general_purpose_overhead(self, client):
        """Test the overhead is 0 with no general purpose nodes"""
        response = client.get("/api/v1/general-purpose/overhead")
        assert response.status_code == 200
        assert response.json()["power_watts"] == 0.0

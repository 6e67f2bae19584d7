"""
Pytest configuration and fixtures for all tests
"""
import pytest
from unittest.mock import Mock

from energy_modeller.config import Settings
from energy_modeller.datastore import InMemoryEnergyStore
from energy_modeller.telemetry import EmulatedTelemetrySource
from energy_modeller.types import CalibrationPoint, Host, VmDeployed


@pytest.fixture
def test_settings():
    """Settings with a deterministic predictor and no background side effects"""
    return Settings(
        TELEMETRY_SOURCE="emulated",
        ENERGY_PREDICTOR="cpu_only_linear",
        DEFAULT_CPU_LOAD=0.5,
        CONSIDER_IDLE_ENERGY=False,
        PERFORM_DATA_GATHERING=True,
        POLL_INTERVAL_SECONDS=1.0,
        FAULT_COOLDOWN_SECONDS=300.0,
        PROMETHEUS_URL="http://test-prometheus:9090",
    )


@pytest.fixture
def linear_calibration():
    """A host power curve rising from 50 W idle to 150 W at full load"""
    return [
        CalibrationPoint(cpu=0.0, memory=0.0, watts=50.0),
        CalibrationPoint(cpu=0.5, memory=0.0, watts=100.0),
        CalibrationPoint(cpu=1.0, memory=0.0, watts=150.0),
    ]


@pytest.fixture
def host(linear_calibration):
    return Host(id=1, name="node1", cores=8, ram_mb=16384, disk_gb=100.0,
                calibration_data=list(linear_calibration))


@pytest.fixture
def vm(host):
    return VmDeployed(name="vm1", id=101, cpus=2, allocated_to=host, state="running")


@pytest.fixture
def telemetry():
    return EmulatedTelemetrySource()


@pytest.fixture
def store():
    return InMemoryEnergyStore()


@pytest.fixture
def mock_sleep():
    """Stand-in for time.sleep so gatherer backoff never blocks"""
    return Mock()

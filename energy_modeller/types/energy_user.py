"""
Energy users: the entities power and energy can be attributed to

Hosts, deployed VMs, applications running on a host and general purpose
(shared infrastructure) nodes all share the ``EnergyUsageSource`` identity
contract: two sources are equal when they are the same kind of entity with
the same name, so they can be used as dictionary keys across poll cycles.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .calibration import AcceleratorCalibrationPoint, CalibrationPoint, HostProfileData

logger = logging.getLogger(__name__)


class EnergyUsageSource:
    """Something to which power or energy can be apportioned."""

    @property
    def identity(self) -> Tuple:
        raise NotImplementedError

    def __eq__(self, other):
        if not isinstance(other, EnergyUsageSource):
            return NotImplemented
        return type(self) is type(other) and self.identity == other.identity

    def __hash__(self):
        return hash((type(self).__name__, self.identity))


class AcceleratorType(str, Enum):
    GPU = "GPU"
    MIC = "MIC"
    FPGA = "FPGA"


@dataclass(eq=False)
class Accelerator:
    """An accelerator card (or a set of identical cards) fitted to a host."""
    name: str
    type: AcceleratorType = AcceleratorType.GPU
    count: int = 1
    calibration_data: List[AcceleratorCalibrationPoint] = field(default_factory=list)

    @property
    def is_calibrated(self) -> bool:
        return len(self.calibration_data) > 0

    def metrics_in_calibration_data(self) -> Set[str]:
        """Names of every parameter seen in this accelerator's calibration data."""
        names: Set[str] = set()
        for point in self.calibration_data:
            names.update(point.parameters.keys())
        return names

    def __eq__(self, other):
        if not isinstance(other, Accelerator):
            return NotImplemented
        return self.name == other.name

    def __hash__(self):
        return hash(self.name)


@dataclass(eq=False)
class Host(EnergyUsageSource):
    """
    A physical host that has its power measured directly

    Idle power is taken to be the lowest power observed during calibration,
    or 0 when the host has not been calibrated.
    """
    id: int
    name: str
    available: bool = True
    state: str = ""
    cores: int = 0
    ram_mb: int = 0
    disk_gb: float = 0.0
    accelerators: List[Accelerator] = field(default_factory=list)
    calibration_data: List[CalibrationPoint] = field(default_factory=list)
    profile_data: List[HostProfileData] = field(default_factory=list)

    def __post_init__(self):
        if not self.name:
            raise ValueError("A host must have a name")
        for label, value in (("cores", self.cores), ("ram", self.ram_mb), ("disk", self.disk_gb)):
            if value < 0:
                raise ValueError(f"Host {self.name} cannot have negative {label}: {value}")

    @property
    def identity(self) -> Tuple:
        return (self.name,)

    @property
    def is_calibrated(self) -> bool:
        return len(self.calibration_data) > 0

    @property
    def has_accelerator(self) -> bool:
        return len(self.accelerators) > 0

    @property
    def is_accelerators_calibrated(self) -> bool:
        return self.has_accelerator and all(acc.is_calibrated for acc in self.accelerators)

    @property
    def idle_power_consumption(self) -> float:
        if not self.calibration_data:
            return 0.0
        return min(point.watts for point in self.calibration_data)

    @property
    def max_power_consumption(self) -> float:
        if not self.calibration_data:
            return 0.0
        return max(point.watts for point in self.calibration_data)

    def accelerator(self, name: str) -> Optional[Accelerator]:
        for accelerator in self.accelerators:
            if accelerator.name == name:
                return accelerator
        return None


@dataclass(eq=False)
class GeneralPurposeNode(Host):
    """A host providing shared infrastructure, e.g. distributed storage."""
    pass


@dataclass(eq=False)
class VM(EnergyUsageSource):
    """
    A virtual machine description, possibly not yet placed on a host

    Used for forecasts where only the shape of the workload is known.
    """
    cpus: int = 1
    ram_mb: int = 0
    disk_gb: float = 0.0
    name: str = ""
    application_tags: Set[str] = field(default_factory=set)
    disk_images: Set[str] = field(default_factory=set)

    @property
    def identity(self) -> Tuple:
        return (self.name,) if self.name else (id(self),)


@dataclass(eq=False)
class VmDeployed(VM):
    """A VM that has been deployed and (usually) allocated to a host."""
    id: int = 0
    ip_address: str = ""
    state: str = ""
    created: Optional[float] = None
    allocated_to: Optional[Host] = None
    deployment_id: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("A deployed VM must have a name")


class JobStatus(str, Enum):
    BOOT_FAIL = "BOOT_FAIL"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    CONFIGURING = "CONFIGURING"
    COMPLETING = "COMPLETING"
    FAILED = "FAILED"
    NODE_FAIL = "NODE_FAIL"
    PENDING = "PENDING"
    PREEMPTED = "PREEMPTED"
    RUNNING = "RUNNING"
    SUSPENDED = "SUSPENDED"
    TIMEOUT = "TIMEOUT"


@dataclass(eq=False)
class ApplicationOnHost(EnergyUsageSource):
    """An application (job, pod or process group) running on a host."""
    id: int
    name: str
    allocated_to: Optional[Host] = None
    status: JobStatus = JobStatus.RUNNING
    deployment_id: Optional[str] = None
    created: Optional[float] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("An application must have a name")

    @property
    def identity(self) -> Tuple:
        return (self.name, self.id)

    @staticmethod
    def filter_by_host(apps: Iterable["ApplicationOnHost"], host: Host) -> List["ApplicationOnHost"]:
        return [app for app in apps if app.allocated_to == host]

    @staticmethod
    def filter_by_status(apps: Iterable["ApplicationOnHost"], status: JobStatus) -> List["ApplicationOnHost"]:
        return [app for app in apps if app.status == status]


def hosts_by_name(hosts: Iterable[Host]) -> Dict[str, Host]:
    return {host.name: host for host in hosts}

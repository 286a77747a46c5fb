from enum import Enum
from typing import Optional, Union

from attr import dataclass, field
from pulumi_azure_native import compute as az_compute, network as az_network

from vmbuilder.resource_ref import LinkedResource, ResourceId

OS = az_compute.OperatingSystemTypes
WINDOWS = OS("Windows")
LINUX = OS("Linux")

DiskType = az_compute.StorageAccountTypes
STANDARD_LRS = DiskType.STANDARD_LRS
STANDARD_SSD_LRS = DiskType("StandardSSD_LRS")
PREMIUM_LRS = DiskType.PREMIUM_LRS
ULTRA_SSD_LRS = DiskType("UltraSSD_LRS")

EvictionPolicy = az_compute.VirtualMachineEvictionPolicyTypes
DEALLOCATE = EvictionPolicy("Deallocate")
DELETE = EvictionPolicy("Delete")

PriorityType = az_compute.VirtualMachinePriorityTypes

AllocationMethod = az_network.IPAllocationMethod
DYNAMIC = AllocationMethod("Dynamic")
STATIC = AllocationMethod("Static")


class FeatureFlag(Enum):
    ENABLED = "Enabled"
    DISABLED = "Disabled"

    @classmethod
    def of_bool(cls, value: bool) -> "FeatureFlag":
        return cls.ENABLED if value else cls.DISABLED

    def as_bool(self) -> bool:
        return self is FeatureFlag.ENABLED


@dataclass(frozen=True)
class ImageDefinition:
    os: OS
    publisher: str
    offer: str
    sku: str
    version: str = "latest"


WINDOWS_SERVER_2012_DATACENTER = ImageDefinition(
    WINDOWS, "MicrosoftWindowsServer", "WindowsServer", "2012-Datacenter"
)
WINDOWS_SERVER_2016_DATACENTER = ImageDefinition(
    WINDOWS, "MicrosoftWindowsServer", "WindowsServer", "2016-Datacenter"
)
WINDOWS_SERVER_2019_DATACENTER = ImageDefinition(
    WINDOWS, "MicrosoftWindowsServer", "WindowsServer", "2019-Datacenter"
)
WINDOWS_SERVER_2022_DATACENTER = ImageDefinition(
    WINDOWS, "MicrosoftWindowsServer", "WindowsServer", "2022-datacenter"
)
UBUNTU_SERVER_1804_LTS = ImageDefinition(
    LINUX, "Canonical", "UbuntuServer", "18.04-LTS"
)
UBUNTU_SERVER_2004_LTS = ImageDefinition(
    LINUX, "Canonical", "0001-com-ubuntu-server-focal", "20_04-lts-gen2"
)
UBUNTU_SERVER_2204_LTS = ImageDefinition(
    LINUX, "Canonical", "0001-com-ubuntu-server-jammy", "22_04-lts-gen2"
)
DEBIAN_11 = ImageDefinition(LINUX, "Debian", "debian-11", "11-gen2")

COMMON_IMAGES: dict[str, ImageDefinition] = {
    "windows-server-2012": WINDOWS_SERVER_2012_DATACENTER,
    "windows-server-2016": WINDOWS_SERVER_2016_DATACENTER,
    "windows-server-2019": WINDOWS_SERVER_2019_DATACENTER,
    "windows-server-2022": WINDOWS_SERVER_2022_DATACENTER,
    "ubuntu-18.04": UBUNTU_SERVER_1804_LTS,
    "ubuntu-20.04": UBUNTU_SERVER_2004_LTS,
    "ubuntu-22.04": UBUNTU_SERVER_2204_LTS,
    "debian-11": DEBIAN_11,
}


@dataclass(frozen=True)
class DiskInfo:
    size: int
    disk_type: DiskType


@dataclass(frozen=True)
class FromImage:
    """
    OS disk provisioned from a marketplace image.
    """

    image: ImageDefinition
    disk: DiskInfo

    @property
    def os(self) -> OS:
        return self.image.os


@dataclass(frozen=True)
class AttachOsDisk:
    """
    OS disk attached from an existing managed disk. Its size and type are
    those of the attached disk.
    """

    os: OS
    disk: LinkedResource


OsDisk = Union[FromImage, AttachOsDisk]


@dataclass(frozen=True)
class EmptyDataDisk:
    disk: DiskInfo


@dataclass(frozen=True)
class AttachDataDisk:
    disk: LinkedResource


@dataclass(frozen=True)
class AttachUltraDisk:
    disk: LinkedResource


DataDisk = Union[EmptyDataDisk, AttachDataDisk, AttachUltraDisk]


@dataclass(frozen=True)
class Priority:
    """
    Scheduling priority of a virtual machine. Spot priority also carries an
    eviction policy and a maximum price, where -1 means "up to the
    pay-as-you-go price".
    """

    type: PriorityType
    eviction_policy: Optional[EvictionPolicy] = None
    max_price: Optional[float] = None

    @classmethod
    def regular(cls) -> "Priority":
        return cls(PriorityType("Regular"))

    @classmethod
    def low(cls) -> "Priority":
        return cls(PriorityType("Low"))

    @classmethod
    def spot(
        cls, eviction_policy: EvictionPolicy = DEALLOCATE, max_price: float = -1
    ) -> "Priority":
        return cls(PriorityType("Spot"), EvictionPolicy(eviction_policy), max_price)

    def __str__(self) -> str:
        if self.eviction_policy is None:
            return self.type.value
        return f"{self.type.value} ({self.eviction_policy.value}, {self.max_price})"


@dataclass(frozen=True)
class ManagedIdentity:
    system_assigned: FeatureFlag = FeatureFlag.DISABLED
    user_assigned: tuple = field(factory=tuple)

    @property
    def identity_type(self) -> Optional[str]:
        kinds = []
        if self.system_assigned.as_bool():
            kinds.append("SystemAssigned")
        if self.user_assigned:
            kinds.append("UserAssigned")
        return ", ".join(kinds) or None

    def with_system_assigned(self) -> "ManagedIdentity":
        return ManagedIdentity(FeatureFlag.ENABLED, self.user_assigned)

    def with_user_assigned(self, identity_id: ResourceId) -> "ManagedIdentity":
        if identity_id in self.user_assigned:
            return self
        return ManagedIdentity(
            self.system_assigned, (*self.user_assigned, identity_id)
        )


@dataclass(frozen=True)
class PrivateIpAllocation:
    method: AllocationMethod
    address: Optional[str] = None

    @classmethod
    def dynamic(cls) -> "PrivateIpAllocation":
        return cls(DYNAMIC)

    @classmethod
    def static(cls, address: str) -> "PrivateIpAllocation":
        return cls(STATIC, address)


@dataclass(frozen=True)
class IpConfiguration:
    """
    One IP configuration of a network interface.

    Args:
        subnet_name (str, optional): Subnet the configuration lives in.
            Unset means the virtual machine's own subnet.
        public_ip (LinkedResource, optional): Public IP bound to it.
        load_balancer_backend_address_pools (list[LinkedResource]): Backend
            pools the configuration joins.
        private_ip_allocation (PrivateIpAllocation, optional): Defaults to
            dynamic allocation when deployed.
        primary (bool, optional): Only set when a NIC has several
            configurations.
    """

    subnet_name: Optional[str] = None
    public_ip: Optional[LinkedResource] = None
    load_balancer_backend_address_pools: list[LinkedResource] = field(
        factory=list
    )
    private_ip_allocation: Optional[PrivateIpAllocation] = None
    primary: Optional[bool] = None

import base64
from typing import Optional

from attr import dataclass, field

from vmbuilder.resource_ref import ResourceId, ResourceType
from vmbuilder.storage import STORAGE_ACCOUNTS
from vmbuilder.vm_dataclasses import (
    AttachDataDisk,
    AttachOsDisk,
    AttachUltraDisk,
    DataDisk,
    ManagedIdentity,
    OS,
    OsDisk,
    Priority,
    WINDOWS,
)

VIRTUAL_MACHINES = ResourceType("Microsoft.Compute/virtualMachines")
EXTENSIONS = ResourceType("Microsoft.Compute/virtualMachines/extensions")
DISKS = ResourceType("Microsoft.Compute/disks")
USER_ASSIGNED_IDENTITIES = ResourceType(
    "Microsoft.ManagedIdentity/userAssignedIdentities"
)


@dataclass(frozen=True)
class Credentials:
    username: str
    password_parameter: str


@dataclass(frozen=True)
class NicReference:
    resource_id: ResourceId
    primary: Optional[bool] = None


@dataclass(frozen=True)
class VirtualMachine:
    """
    The virtual machine resource itself. Disks, NICs and the diagnostics
    storage account are referenced by id.
    """

    name: str
    location: str
    size: str
    credentials: Credentials
    os_disk: OsDisk
    network_interfaces: list[NicReference]
    availability_zone: Optional[str] = None
    diagnostics_enabled: Optional[bool] = None
    storage_account: Optional[str] = None
    priority: Optional[Priority] = None
    custom_data: Optional[str] = None
    disable_password_authentication: Optional[bool] = None
    public_keys: Optional[list[tuple[str, str]]] = None
    identity: ManagedIdentity = ManagedIdentity()
    data_disks: list[DataDisk] = field(factory=list)
    tags: dict[str, str] = field(factory=dict)

    @property
    def resource_id(self) -> ResourceId:
        return VIRTUAL_MACHINES.resource_id(self.name)

    @property
    def ultra_ssd_enabled(self) -> bool:
        return any(isinstance(disk, AttachUltraDisk) for disk in self.data_disks)

    @property
    def dependencies(self) -> list[ResourceId]:
        deps = [nic.resource_id for nic in self.network_interfaces]
        if self.storage_account:
            deps.append(STORAGE_ACCOUNTS.resource_id(self.storage_account))
        disks = [self.os_disk] if isinstance(self.os_disk, AttachOsDisk) else []
        disks += [
            disk
            for disk in self.data_disks
            if isinstance(disk, (AttachDataDisk, AttachUltraDisk))
        ]
        deps += [disk.disk.dependency for disk in disks if disk.disk.managed]
        deps += list(self.identity.user_assigned)
        return deps


@dataclass(frozen=True)
class CustomScriptExtension:
    """
    Runs an inline bootstrap script after provisioning. `file_uris` are
    downloaded next to the script but only the script is executed.
    """

    name: str
    location: str
    virtual_machine: str
    os: OS
    script_contents: str
    file_uris: list[str] = field(factory=list)
    tags: dict[str, str] = field(factory=dict)

    @property
    def resource_id(self) -> ResourceId:
        return EXTENSIONS.resource_id(self.virtual_machine, self.name)

    @property
    def dependencies(self) -> list[ResourceId]:
        return [VIRTUAL_MACHINES.resource_id(self.virtual_machine)]

    @property
    def publisher(self) -> str:
        if self.os == WINDOWS:
            return "Microsoft.Compute"
        return "Microsoft.Azure.Extensions"

    @property
    def extension_type(self) -> str:
        if self.os == WINDOWS:
            return "CustomScriptExtension"
        return "CustomScript"

    @property
    def type_handler_version(self) -> str:
        if self.os == WINDOWS:
            return "1.10"
        return "2.1"

    @property
    def settings(self) -> dict:
        if self.os == WINDOWS:
            return {
                "fileUris": self.file_uris,
                "commandToExecute": self.script_contents,
            }
        return {
            "fileUris": self.file_uris,
            "script": base64.b64encode(
                self.script_contents.encode("utf-8")
            ).decode("ascii"),
        }


@dataclass(frozen=True)
class AadSshLoginExtension:
    location: str
    virtual_machine: str
    tags: dict[str, str] = field(factory=dict)

    name = "AADSSHLoginForLinux"
    publisher = "Microsoft.Azure.ActiveDirectory"
    extension_type = "AADSSHLoginForLinux"
    type_handler_version = "1.0"

    @property
    def resource_id(self) -> ResourceId:
        return EXTENSIONS.resource_id(self.virtual_machine, self.name)

    @property
    def dependencies(self) -> list[ResourceId]:
        return [VIRTUAL_MACHINES.resource_id(self.virtual_machine)]

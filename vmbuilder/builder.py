from typing import Any, Optional, Union

from attr import evolve

from vmbuilder import vm_sizes
from vmbuilder.compute import DISKS, USER_ASSIGNED_IDENTITIES
from vmbuilder.errors import VmConfigError
from vmbuilder.network import (
    BACKEND_ADDRESS_POOLS,
    NETWORK_SECURITY_GROUPS,
    PUBLIC_IP_ADDRESSES,
    SUBNETS,
    VIRTUAL_NETWORKS,
)
from vmbuilder.resource_ref import (
    LinkedResource,
    ResourceId,
    ResourceRef,
    ResourceType,
)
from vmbuilder.storage import STORAGE_ACCOUNTS
from vmbuilder.vm import (
    VmConfig,
    derive_public_ip_id,
    derive_storage_account_id,
    derive_subnet_id,
    derive_vnet_id,
)
from vmbuilder.vm_dataclasses import (
    AllocationMethod,
    AttachDataDisk,
    AttachOsDisk,
    AttachUltraDisk,
    DEALLOCATE,
    DiskInfo,
    DiskType,
    EmptyDataDisk,
    EvictionPolicy,
    FeatureFlag,
    FromImage,
    ImageDefinition,
    IpConfiguration,
    OS,
    Priority,
    PrivateIpAllocation,
    STANDARD_LRS,
    STANDARD_SSD_LRS,
    ULTRA_SSD_LRS,
    WINDOWS_SERVER_2012_DATACENTER,
)

DEFAULT_VM_SIZE = vm_sizes.BASIC_A0
DEFAULT_IMAGE = WINDOWS_SERVER_2012_DATACENTER
DEFAULT_OS_DISK = DiskInfo(size=128, disk_type=STANDARD_LRS)
DEFAULT_DATA_DISK = DiskInfo(size=1024, disk_type=STANDARD_LRS)
DEFAULT_ADDRESS_PREFIX = "10.0.0.0/16"
DEFAULT_SUBNET_PREFIX = "10.0.0.0/24"


class Automatic:
    """
    Marker for `public_ip`: let the builder create and name the public IP.
    """

    def __repr__(self) -> str:
        return "AUTOMATIC"


AUTOMATIC = Automatic()
AUTOMATIC_PUBLIC_IP = ResourceRef.derived(derive_public_ip_id)

ResourceLike = Union[str, ResourceId, Any]


def _resource_id(value: ResourceLike, resource_type: ResourceType) -> ResourceId:
    """
    Accepts a name, a ResourceId or anything exposing a `resource_id`.
    """
    if isinstance(value, ResourceId):
        return value
    if isinstance(value, str):
        return resource_type.resource_id(value)
    if isinstance(getattr(value, "resource_id", None), ResourceId):
        return value.resource_id
    raise TypeError(
        f"Expected a name or resource id for {resource_type.type}, got {value!r}"  # noqa: E501
    )


def _flag(value: Union[bool, FeatureFlag]) -> FeatureFlag:
    if isinstance(value, FeatureFlag):
        return value
    return FeatureFlag.of_bool(value)


def _preview(script: str) -> str:
    return script[:10] + "..." if len(script) > 10 else script


def default_config(name: str = "") -> VmConfig:
    return VmConfig(
        name=name,
        size=DEFAULT_VM_SIZE,
        os_disk=FromImage(DEFAULT_IMAGE, DEFAULT_OS_DISK),
        vnet=ResourceRef.derived(derive_vnet_id),
        subnet=ResourceRef.derived(derive_subnet_id),
        address_prefix=DEFAULT_ADDRESS_PREFIX,
        subnet_prefix=DEFAULT_SUBNET_PREFIX,
        public_ip=AUTOMATIC_PUBLIC_IP,
    )


class VirtualMachineBuilder:
    """
    Immutable, chainable builder for `VmConfig`. Every option returns a new
    builder and leaves the current one untouched.

        config = (
            VirtualMachineBuilder("web1")
            .username("admin")
            .operating_system(UBUNTU_SERVER_2204_LTS)
            .build()
        )
        resources = config.build_resources("westeurope")
    """

    def __init__(self, name: str = "", state: Optional[VmConfig] = None):
        self.state = state if state is not None else default_config(name)

    def _update(self, **changes) -> "VirtualMachineBuilder":
        return VirtualMachineBuilder(state=evolve(self.state, **changes))

    def build(self) -> VmConfig:
        """
        Finalizes the configuration.

        Raises:
            VmConfigError: If accelerated networking is enabled for a size
                that does not support it.
        """
        state = self.state
        if (
            state.accelerated_networking == FeatureFlag.ENABLED
            and not vm_sizes.supports_accelerated_networking(state.size)
        ):
            raise VmConfigError(
                f"Accelerated networking unsupported for specified VM size '{state.size}'."  # noqa: E501
            )
        if state.data_disks is not None and len(state.data_disks) == 0:
            state = evolve(state, data_disks=[EmptyDataDisk(DEFAULT_DATA_DISK)])
        return state

    def name(self, name: str) -> "VirtualMachineBuilder":
        return self._update(name=name)

    def add_availability_zone(self, zone: str) -> "VirtualMachineBuilder":
        return self._update(availability_zone=zone)

    def diagnostics_support(self) -> "VirtualMachineBuilder":
        """
        Turns on boot diagnostics using a storage account created with the VM.
        """
        return self._update(
            diagnostics_enabled=True,
            diagnostics_storage_account=ResourceRef.derived(
                derive_storage_account_id
            ),
        )

    def diagnostics_support_external(
        self, storage_account: Union[ResourceLike, LinkedResource]
    ) -> "VirtualMachineBuilder":
        """
        Turns on boot diagnostics using a storage account that already exists.
        """
        if not isinstance(storage_account, LinkedResource):
            storage_account = LinkedResource.of_unmanaged(
                _resource_id(storage_account, STORAGE_ACCOUNTS)
            )
        return self._update(
            diagnostics_enabled=True,
            diagnostics_storage_account=ResourceRef.linked(storage_account),
        )

    def diagnostics_support_managed(self) -> "VirtualMachineBuilder":
        """
        Turns on boot diagnostics using an Azure managed storage account.
        """
        return self._update(
            diagnostics_enabled=True, diagnostics_storage_account=None
        )

    def vm_size(self, size: str) -> "VirtualMachineBuilder":
        return self._update(size=size)

    def username(self, username: str) -> "VirtualMachineBuilder":
        return self._update(username=username)

    def password_parameter(self, name: str) -> "VirtualMachineBuilder":
        """
        Name of the secret holding the admin password. Defaults to
        `password-for-<vm name>`.
        """
        return self._update(password_parameter=name)

    def operating_system(
        self,
        image: Union[ImageDefinition, OS, str],
        offer: Optional[str] = None,
        publisher: Optional[str] = None,
        sku: Optional[str] = None,
    ) -> "VirtualMachineBuilder":
        """
        Sets the image of the VM, either as an `ImageDefinition` or as
        `(os, offer, publisher, sku)`.
        """
        if not isinstance(image, ImageDefinition):
            if not all((offer, publisher, sku)):
                raise VmConfigError(
                    f"Operating system {image} needs an offer, publisher and sku, or an ImageDefinition"  # noqa: E501
                )
            image = ImageDefinition(
                os=OS(image), publisher=publisher, offer=offer, sku=sku
            )
        os_disk = self.state.os_disk
        if isinstance(os_disk, AttachOsDisk):
            raise VmConfigError("Operating system from attached disk will be used")
        return self._update(os_disk=FromImage(image, os_disk.disk))

    def os_disk(
        self, size: int, disk_type: Union[DiskType, str]
    ) -> "VirtualMachineBuilder":
        """
        Sets the size and type of an image based OS disk. Attached OS disks
        keep their own size and type.
        """
        disk_type = DiskType(disk_type)
        if disk_type == ULTRA_SSD_LRS:
            raise VmConfigError(
                "UltraSSD_LRS can only be used for a data disk, not an OS disk."
            )
        os_disk = self.state.os_disk
        if isinstance(os_disk, AttachOsDisk):
            return self
        return self._update(
            os_disk=FromImage(os_disk.image, DiskInfo(size=size, disk_type=disk_type))
        )

    def attach_os_disk(
        self, os: Union[OS, str], disk: ResourceLike
    ) -> "VirtualMachineBuilder":
        """
        Boots from a managed disk deployed alongside the VM.
        """
        return self._update(
            os_disk=AttachOsDisk(
                OS(os), LinkedResource.of_managed(_resource_id(disk, DISKS))
            )
        )

    def attach_existing_os_disk(
        self, os: Union[OS, str], disk: ResourceLike
    ) -> "VirtualMachineBuilder":
        """
        Boots from a managed disk that already exists.
        """
        return self._update(
            os_disk=AttachOsDisk(
                OS(os), LinkedResource.of_unmanaged(_resource_id(disk, DISKS))
            )
        )

    def _attach(
        self, disk: LinkedResource, ultra: bool
    ) -> "VirtualMachineBuilder":
        attached = AttachUltraDisk(disk) if ultra else AttachDataDisk(disk)
        return self._update(data_disks=[*(self.state.data_disks or []), attached])

    def attach_data_disk(
        self, disk: ResourceLike, ultra: bool = False
    ) -> "VirtualMachineBuilder":
        return self._attach(
            LinkedResource.of_managed(_resource_id(disk, DISKS)), ultra
        )

    def attach_existing_data_disk(
        self, disk: ResourceLike, ultra: bool = False
    ) -> "VirtualMachineBuilder":
        return self._attach(
            LinkedResource.of_unmanaged(_resource_id(disk, DISKS)), ultra
        )

    def add_disk(
        self, size: int, disk_type: Union[DiskType, str]
    ) -> "VirtualMachineBuilder":
        """
        Adds an empty data disk. Disks added later come first.
        """
        disk = EmptyDataDisk(DiskInfo(size=size, disk_type=DiskType(disk_type)))
        return self._update(data_disks=[disk, *(self.state.data_disks or [])])

    def add_ssd_disk(self, size: int) -> "VirtualMachineBuilder":
        return self.add_disk(size, STANDARD_SSD_LRS)

    def add_slow_disk(self, size: int) -> "VirtualMachineBuilder":
        return self.add_disk(size, STANDARD_LRS)

    def no_data_disk(self) -> "VirtualMachineBuilder":
        return self._update(data_disks=None)

    def _set_priority(self, priority: Priority) -> "VirtualMachineBuilder":
        if self.state.priority is not None:
            raise VmConfigError(
                f"Priority is already set to {self.state.priority}. Only one priority or spot_instance setting per VM is allowed"  # noqa: E501
            )
        return self._update(priority=priority)

    def priority(self, priority: Priority) -> "VirtualMachineBuilder":
        return self._set_priority(priority)

    def spot_instance(
        self,
        eviction_policy: Union[EvictionPolicy, str] = DEALLOCATE,
        max_price: float = -1,
    ) -> "VirtualMachineBuilder":
        return self._set_priority(Priority.spot(eviction_policy, max_price))

    def domain_name_prefix(self, prefix: Optional[str]) -> "VirtualMachineBuilder":
        return self._update(domain_name_prefix=prefix)

    def address_prefix(self, prefix: str) -> "VirtualMachineBuilder":
        return self._update(address_prefix=prefix)

    def subnet_prefix(self, prefix: str) -> "VirtualMachineBuilder":
        return self._update(subnet_prefix=prefix)

    def subnet_name(self, name: str) -> "VirtualMachineBuilder":
        return self._update(
            subnet=ResourceRef.named(SUBNETS.resource_id(name))
        )

    def accelerated_networking(
        self, flag: Union[bool, FeatureFlag]
    ) -> "VirtualMachineBuilder":
        return self._update(accelerated_networking=_flag(flag))

    def ip_forwarding(
        self, flag: Union[bool, FeatureFlag]
    ) -> "VirtualMachineBuilder":
        """
        Enables or disables IP forwarding on the primary network interface.
        """
        return self._update(ip_forwarding=_flag(flag))

    def link_to_vnet(self, vnet: ResourceLike) -> "VirtualMachineBuilder":
        """
        Uses a virtual network deployed alongside the VM instead of creating one.
        """
        return self._update(
            vnet=ResourceRef.linked(
                LinkedResource.of_managed(_resource_id(vnet, VIRTUAL_NETWORKS))
            )
        )

    def link_to_unmanaged_vnet(self, vnet: ResourceLike) -> "VirtualMachineBuilder":
        """
        Uses a virtual network that already exists.
        """
        return self._update(
            vnet=ResourceRef.linked(
                LinkedResource.of_unmanaged(_resource_id(vnet, VIRTUAL_NETWORKS))
            )
        )

    def link_to_backend_address_pool(
        self, pool: ResourceLike
    ) -> "VirtualMachineBuilder":
        pool_link = LinkedResource.of_managed(
            _resource_id(pool, BACKEND_ADDRESS_POOLS)
        )
        return self._update(
            load_balancer_backend_address_pools=[
                pool_link,
                *self.state.load_balancer_backend_address_pools,
            ]
        )

    def link_to_unmanaged_backend_address_pool(
        self, pool: ResourceLike
    ) -> "VirtualMachineBuilder":
        pool_link = LinkedResource.of_unmanaged(
            _resource_id(pool, BACKEND_ADDRESS_POOLS)
        )
        return self._update(
            load_balancer_backend_address_pools=[
                pool_link,
                *self.state.load_balancer_backend_address_pools,
            ]
        )

    def custom_script(self, script: str) -> "VirtualMachineBuilder":
        if self.state.custom_script is not None:
            raise VmConfigError(
                f"Only single custom_script execution is supported. You have to merge your scripts. You have defined multiple custom_script: {_preview(script)} and {_preview(self.state.custom_script)}"  # noqa: E501
            )
        return self._update(custom_script=script)

    def custom_script_files(self, uris: list[str]) -> "VirtualMachineBuilder":
        return self._update(custom_script_files=list(uris))

    def custom_data(self, custom_data: str) -> "VirtualMachineBuilder":
        return self._update(custom_data=custom_data)

    def disable_password_authentication(
        self, disable: bool = True
    ) -> "VirtualMachineBuilder":
        return self._update(disable_password_authentication=disable)

    def add_authorized_keys(
        self, keys: list[tuple[str, str]]
    ) -> "VirtualMachineBuilder":
        """
        Sets the `(path, public key)` pairs authorized for SSH login.
        """
        return self._update(
            ssh_path_and_public_keys=[(path, key) for path, key in keys]
        )

    def add_authorized_key(self, path: str, key_data: str) -> "VirtualMachineBuilder":
        return self.add_authorized_keys([(path, key_data)])

    def aad_ssh_login(
        self, flag: Union[bool, FeatureFlag]
    ) -> "VirtualMachineBuilder":
        return self._update(aad_ssh_login=_flag(flag))

    def public_ip(
        self, ref: Union[ResourceRef, LinkedResource, Automatic, None]
    ) -> "VirtualMachineBuilder":
        """
        Sets the public IP of the VM. Pass None for no public IP at all,
        AUTOMATIC for one created and named after the VM.
        """
        if isinstance(ref, Automatic):
            ref = AUTOMATIC_PUBLIC_IP
        elif isinstance(ref, LinkedResource):
            ref = ResourceRef.linked(ref)
        return self._update(public_ip=ref)

    def ip_allocation(
        self, method: Union[AllocationMethod, str, None]
    ) -> "VirtualMachineBuilder":
        return self._update(
            ip_allocation=None if method is None else AllocationMethod(method)
        )

    def private_ip_allocation(
        self, allocation: Optional[PrivateIpAllocation]
    ) -> "VirtualMachineBuilder":
        return self._update(private_ip_allocation=allocation)

    def add_ip_configurations(
        self, ip_configs: list[IpConfiguration]
    ) -> "VirtualMachineBuilder":
        return self._update(ip_configs=[*self.state.ip_configs, *ip_configs])

    def network_security_group(self, nsg: ResourceLike) -> "VirtualMachineBuilder":
        return self._update(
            network_security_group=LinkedResource.of_managed(
                _resource_id(nsg, NETWORK_SECURITY_GROUPS)
            )
        )

    def link_to_network_security_group(
        self, nsg: ResourceLike
    ) -> "VirtualMachineBuilder":
        return self._update(
            network_security_group=LinkedResource.of_unmanaged(
                _resource_id(nsg, NETWORK_SECURITY_GROUPS)
            )
        )

    def add_tags(self, tags: dict[str, str]) -> "VirtualMachineBuilder":
        return self._update(tags={**self.state.tags, **tags})

    def add_tag(self, key: str, value: str) -> "VirtualMachineBuilder":
        return self.add_tags({key: value})

    def system_identity(self) -> "VirtualMachineBuilder":
        return self._update(identity=self.state.identity.with_system_assigned())

    def add_identity(self, identity: ResourceLike) -> "VirtualMachineBuilder":
        return self._update(
            identity=self.state.identity.with_user_assigned(
                _resource_id(identity, USER_ASSIGNED_IDENTITIES)
            )
        )


class IpConfigBuilder:
    """
    Builds an additional `IpConfiguration` for `add_ip_configurations`.
    """

    def __init__(self, state: Optional[IpConfiguration] = None):
        self.state = state if state is not None else IpConfiguration()

    def _update(self, **changes) -> "IpConfigBuilder":
        return IpConfigBuilder(evolve(self.state, **changes))

    def build(self) -> IpConfiguration:
        return self.state

    def subnet_name(self, name: str) -> "IpConfigBuilder":
        return self._update(subnet_name=name)

    def public_ip(self, ip: Union[ResourceLike, LinkedResource]) -> "IpConfigBuilder":
        if not isinstance(ip, LinkedResource):
            ip = LinkedResource.of_managed(_resource_id(ip, PUBLIC_IP_ADDRESSES))
        return self._update(public_ip=ip)

    def link_to_backend_address_pool(self, pool: ResourceLike) -> "IpConfigBuilder":
        pool_link = LinkedResource.of_managed(
            _resource_id(pool, BACKEND_ADDRESS_POOLS)
        )
        return self._update(
            load_balancer_backend_address_pools=[
                pool_link,
                *self.state.load_balancer_backend_address_pools,
            ]
        )

    def link_to_unmanaged_backend_address_pool(
        self, pool: ResourceLike
    ) -> "IpConfigBuilder":
        pool_link = LinkedResource.of_unmanaged(
            _resource_id(pool, BACKEND_ADDRESS_POOLS)
        )
        return self._update(
            load_balancer_backend_address_pools=[
                pool_link,
                *self.state.load_balancer_backend_address_pools,
            ]
        )

    def private_ip_allocation(
        self, allocation: Optional[PrivateIpAllocation]
    ) -> "IpConfigBuilder":
        return self._update(private_ip_allocation=allocation)

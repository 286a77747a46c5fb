import os
from typing import Optional, Union

from attr import dataclass, evolve, field
from pulumi import log

from vmbuilder.compute import (
    AadSshLoginExtension,
    Credentials,
    CustomScriptExtension,
    NicReference,
    VIRTUAL_MACHINES,
    VirtualMachine,
)
from vmbuilder.errors import VmConfigError
from vmbuilder.network import (
    BASIC_SKU,
    NETWORK_INTERFACES,
    PUBLIC_IP_ADDRESSES,
    STANDARD_SKU,
    SUBNETS,
    NetworkInterface,
    PublicIpAddress,
    Subnet,
    VIRTUAL_NETWORKS,
    VirtualNetwork,
)
from vmbuilder.resource_ref import (
    LinkedResource,
    ResourceId,
    ResourceRef,
    ResourceType,
)
from vmbuilder.storage import (
    STORAGE_ACCOUNTS,
    StorageAccount,
    StorageAccountName,
    sanitise_storage,
)
from vmbuilder.vm_dataclasses import (
    AllocationMethod,
    DataDisk,
    DYNAMIC,
    FeatureFlag,
    FromImage,
    IpConfiguration,
    LINUX,
    ManagedIdentity,
    OsDisk,
    Priority,
    PrivateIpAllocation,
    STATIC,
    WINDOWS,
)

DEBUG = os.getenv("DEBUG")

Resource = Union[
    VirtualMachine,
    NetworkInterface,
    VirtualNetwork,
    PublicIpAddress,
    StorageAccount,
    CustomScriptExtension,
    AadSshLoginExtension,
]


def make_name(vm_name: str, element_type: str) -> str:
    return f"{vm_name}-{element_type}"


def derive_vnet_id(config: "VmConfig") -> ResourceId:
    return config.derive_resource_id(VIRTUAL_NETWORKS, "vnet")


def derive_subnet_id(config: "VmConfig") -> ResourceId:
    return config.derive_resource_id(SUBNETS, "subnet")


def derive_public_ip_id(config: "VmConfig") -> ResourceId:
    return config.derive_resource_id(PUBLIC_IP_ADDRESSES, "ip")


def derive_storage_account_id(config: "VmConfig") -> ResourceId:
    return STORAGE_ACCOUNTS.resource_id(sanitise_storage(f"{config.name}storage"))


@dataclass(frozen=True)
class VmConfig:
    """
    Everything needed to describe a virtual machine and the resources
    created with it. Build it with `VirtualMachineBuilder`, then call
    `build_resources` to get the resource descriptions.
    """

    name: str
    size: str
    os_disk: OsDisk
    vnet: ResourceRef
    subnet: ResourceRef
    address_prefix: str
    subnet_prefix: str
    availability_zone: Optional[str] = None
    diagnostics_enabled: Optional[bool] = None
    diagnostics_storage_account: Optional[ResourceRef] = None
    priority: Optional[Priority] = None
    username: Optional[str] = None
    password_parameter: Optional[str] = None
    data_disks: Optional[list[DataDisk]] = field(factory=list)
    custom_script: Optional[str] = None
    custom_script_files: list[str] = field(factory=list)
    domain_name_prefix: Optional[str] = None
    custom_data: Optional[str] = None
    disable_password_authentication: Optional[bool] = None
    ssh_path_and_public_keys: Optional[list[tuple[str, str]]] = None
    aad_ssh_login: FeatureFlag = FeatureFlag.DISABLED
    public_ip: Optional[ResourceRef] = None
    ip_allocation: Optional[AllocationMethod] = None
    accelerated_networking: Optional[FeatureFlag] = None
    ip_forwarding: Optional[FeatureFlag] = None
    ip_configs: list[IpConfiguration] = field(factory=list)
    private_ip_allocation: Optional[PrivateIpAllocation] = None
    load_balancer_backend_address_pools: list[LinkedResource] = field(
        factory=list
    )
    identity: ManagedIdentity = ManagedIdentity()
    network_security_group: Optional[LinkedResource] = None
    tags: dict[str, str] = field(factory=dict)

    def derive_resource_id(
        self, resource_type: ResourceType, element_type: str
    ) -> ResourceId:
        return resource_type.resource_id(make_name(self.name, element_type))

    @property
    def resource_id(self) -> ResourceId:
        return VIRTUAL_MACHINES.resource_id(self.name)

    @property
    def nic_name(self) -> str:
        return self.derive_resource_id(NETWORK_INTERFACES, "nic").name

    @property
    def subnet_name(self) -> str:
        return self.subnet.resource_id(self).name

    @property
    def public_ip_id(self) -> Optional[ResourceId]:
        if self.public_ip is None:
            return None
        return self.public_ip.resource_id(self)

    @property
    def public_ip_address(self) -> Optional[str]:
        if self.public_ip_id is None:
            return None
        return f"reference({self.public_ip_id.arm_expression}).ipAddress"

    @property
    def hostname(self) -> Optional[str]:
        if self.public_ip_id is None:
            return None
        return f"reference({self.public_ip_id.arm_expression}).dnsSettings.fqdn"

    @property
    def system_identity(self) -> str:
        return (
            f"reference({self.resource_id.arm_expression}, "
            "'2019-07-01', 'full').identity.principalId"
        )

    @property
    def password_parameter_arm(self) -> str:
        return self.password_parameter or f"password-for-{self.name}"

    def build_ip_configs(self) -> list[IpConfiguration]:
        """
        The virtual machine's own IP configuration followed by the added
        ones, all pointing at a subnet. Only marks the first one primary
        when there are several.
        """
        subnet_name = self.subnet_name
        implicit = IpConfiguration(
            subnet_name=subnet_name,
            public_ip=(
                self.public_ip.to_linked_resource(self)
                if self.public_ip
                else None
            ),
            load_balancer_backend_address_pools=self.load_balancer_backend_address_pools,
            private_ip_allocation=self.private_ip_allocation,
            primary=True if self.ip_configs else None,
        )
        return [
            evolve(ip_config, subnet_name=ip_config.subnet_name or subnet_name)
            for ip_config in [implicit, *self.ip_configs]
        ]

    def build_nics(
        self,
        location: str,
        network_security_group: Optional[LinkedResource] = None,
    ) -> list[NetworkInterface]:
        """
        One NIC per distinct subnet, in the order the subnets first appear.
        """
        by_subnet: dict[str, list[IpConfiguration]] = {}
        for ip_config in self.build_ip_configs():
            by_subnet.setdefault(ip_config.subnet_name, []).append(ip_config)
        vm_subnet = self.subnet_name
        vnet = self.vnet.to_linked_resource(self)
        nics = []
        for subnet_name, subnet_ip_configs in by_subnet.items():
            is_primary = subnet_name == vm_subnet
            nics.append(
                NetworkInterface(
                    name=(
                        self.nic_name
                        if is_primary
                        else f"{self.nic_name}-{subnet_name}"
                    ),
                    location=location,
                    ip_configs=subnet_ip_configs,
                    virtual_network=vnet,
                    network_security_group=network_security_group,
                    enable_accelerated_networking=(
                        self.accelerated_networking.as_bool()
                        if is_primary and self.accelerated_networking
                        else None
                    ),
                    enable_ip_forwarding=(
                        self.ip_forwarding.as_bool()
                        if is_primary and self.ip_forwarding
                        else None
                    ),
                    primary=is_primary if len(by_subnet) > 1 else None,
                    tags=self.tags,
                )
            )
        return nics

    def _credentials(self) -> Credentials:
        if self.username is None:
            raise VmConfigError(
                f"You must specify a username for virtual machine {self.name}"
            )
        return Credentials(self.username, self.password_parameter_arm)

    def _public_keys(self) -> Optional[list[tuple[str, str]]]:
        if self.os_disk.os == WINDOWS and (
            self.disable_password_authentication or self.ssh_path_and_public_keys
        ):
            raise VmConfigError(
                f"SSH keys and disabling password authentication are only supported for Linux Virtual Machines, not for {self.name}"  # noqa: E501
            )
        if self.disable_password_authentication and not self.ssh_path_and_public_keys:
            raise VmConfigError(
                "You must include at least one ssh key when Password Authentication is disabled"  # noqa: E501
            )
        return self.ssh_path_and_public_keys

    def _custom_script(self, location: str) -> Optional[CustomScriptExtension]:
        if self.custom_script is None:
            if self.custom_script_files:
                raise VmConfigError(
                    f"You have supplied custom script files {self.custom_script_files} but no script. Custom script files are not automatically executed; you must provide an inline script which acts as a bootstrapper using custom_script."  # noqa: E501
                )
            return None
        if not isinstance(self.os_disk, FromImage):
            raise VmConfigError(
                "Unable to determine OS for custom script when attaching an existing disk"  # noqa: E501
            )
        return CustomScriptExtension(
            name=f"{self.name}-custom-script",
            location=location,
            virtual_machine=self.name,
            os=self.os_disk.os,
            script_contents=self.custom_script,
            file_uris=self.custom_script_files,
            tags=self.tags,
        )

    def _aad_ssh_login(self, location: str) -> Optional[AadSshLoginExtension]:
        if not self.aad_ssh_login.as_bool():
            return None
        # Attached disks are trusted to carry a Linux image.
        if isinstance(self.os_disk, FromImage):
            if self.os_disk.os == WINDOWS:
                raise VmConfigError(
                    "AAD SSH login is only supported for Linux Virtual Machines"
                )
            if (
                self.os_disk.os == LINUX
                and not self.identity.system_assigned.as_bool()
            ):
                raise VmConfigError(
                    "AAD SSH login requires that system assigned identity be enabled on the virtual machine."  # noqa: E501
                )
        return AadSshLoginExtension(
            location=location, virtual_machine=self.name, tags=self.tags
        )

    def _public_ip_address(self, location: str) -> Optional[PublicIpAddress]:
        if self.public_ip is None:
            return None
        if self.ip_allocation is not None:
            allocation = self.ip_allocation
        elif self.availability_zone is not None:
            allocation = STATIC
        else:
            allocation = DYNAMIC
        return PublicIpAddress(
            name=self.public_ip.resource_id(self).name,
            location=location,
            allocation_method=allocation,
            sku=STANDARD_SKU if self.availability_zone else BASIC_SKU,
            domain_name_label=self.domain_name_prefix,
            availability_zone=self.availability_zone,
            tags=self.tags,
        )

    def _virtual_network(self, location: str) -> Optional[VirtualNetwork]:
        if not self.vnet.is_deployable:
            return None
        return VirtualNetwork(
            name=self.vnet.resource_id(self).name,
            location=location,
            address_space_prefixes=[self.address_prefix],
            subnets=[
                Subnet(
                    name=self.subnet_name,
                    prefix=self.subnet_prefix,
                    network_security_group=self.network_security_group,
                )
            ],
            tags=self.tags,
        )

    def _storage_account(self, location: str) -> Optional[StorageAccount]:
        ref = self.diagnostics_storage_account
        if ref is None or not ref.is_deployable:
            return None
        return StorageAccount(
            name=StorageAccountName.create(ref.resource_id(self).name),
            location=location,
            tags=self.tags,
        )

    def build_resources(self, location: str) -> list[Resource]:
        """
        Validates the configuration and returns the resources to deploy:
        the virtual machine, its NICs, then whichever of the virtual
        network, public IP, storage account, custom script and AAD SSH
        login extension apply.

        Args:
            location (str): Azure region to deploy into.

        Raises:
            VmConfigError: When the configuration is incomplete or
                contradictory. No resources are returned in that case.
        """
        nics = self.build_nics(location, self.network_security_group)

        virtual_machine = VirtualMachine(
            name=self.name,
            location=location,
            size=self.size,
            credentials=self._credentials(),
            os_disk=self.os_disk,
            network_interfaces=[
                NicReference(nic.resource_id, nic.primary) for nic in nics
            ],
            availability_zone=self.availability_zone,
            diagnostics_enabled=self.diagnostics_enabled,
            storage_account=(
                self.diagnostics_storage_account.resource_id(self).name
                if self.diagnostics_storage_account
                else None
            ),
            priority=self.priority,
            custom_data=self.custom_data,
            disable_password_authentication=self.disable_password_authentication,
            public_keys=self._public_keys(),
            identity=self.identity,
            data_disks=self.data_disks or [],
            tags=self.tags,
        )

        optional_resources = [
            self._virtual_network(location),
            self._public_ip_address(location),
            self._storage_account(location),
            self._custom_script(location),
            self._aad_ssh_login(location),
        ]
        resources = [
            virtual_machine,
            *nics,
            *[r for r in optional_resources if r is not None],
        ]

        if DEBUG:
            log.info(
                f"Built {len(resources)} resources for virtual machine {self.name}: "  # noqa: E501
                f"{', '.join(type(r).__name__ for r in resources)}"
            )
        return resources

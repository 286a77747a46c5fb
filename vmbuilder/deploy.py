import base64
import os
from typing import Optional, Union

from attr import dataclass
from pulumi import ComponentResource, Resource, ResourceOptions, log
from pulumi_azure_native import (
    compute as az_compute,
    network as az_network,
    storage as az_storage,
)
from pulumi_random import RandomPassword

from vmbuilder.compute import (
    AadSshLoginExtension,
    CustomScriptExtension,
    VirtualMachine,
)
from vmbuilder.network import NetworkInterface, PublicIpAddress, VirtualNetwork
from vmbuilder.resource_ref import ResourceId
from vmbuilder.storage import StorageAccount, StorageAccountDefaults, blob_endpoint
from vmbuilder.vm import Resource as ResourceDescription
from vmbuilder.vm_dataclasses import DYNAMIC, EmptyDataDisk, FromImage, LINUX

DEBUG = os.getenv("DEBUG")


@dataclass(frozen=True)
class DeploymentScope:
    """
    Where the resources go. Ids in resource descriptions are resolved to
    full Azure resource paths within this subscription and resource group.
    """

    subscription_id: str
    resource_group_name: str

    def id_of(self, resource_id: ResourceId) -> str:
        return resource_id.path(self.subscription_id, self.resource_group_name)


def dependency_order(
    resources: list[ResourceDescription],
) -> list[ResourceDescription]:
    """
    Orders descriptions so each comes after the ones it depends on.
    Dependencies outside of `resources` are assumed to exist already.
    Otherwise the given order is kept.
    """
    known = {resource.resource_id for resource in resources}
    created: set[ResourceId] = set()
    pending = list(resources)
    ordered = []
    while pending:
        ready = [
            resource
            for resource in pending
            if all(
                dep in created or dep not in known
                for dep in resource.dependencies
            )
        ]
        if not ready:
            raise ValueError(
                f"Circular dependency between {', '.join(r.resource_id.name for r in pending)}"  # noqa: E501
            )
        for resource in ready:
            ordered.append(resource)
            created.add(resource.resource_id)
            pending.remove(resource)
    return ordered


class VirtualMachineDeployment(ComponentResource):
    """
    Registers the resources built for a virtual machine with Pulumi.
    """

    def __init__(
        self,
        name: str,
        resources: list[ResourceDescription],
        scope: DeploymentScope,
        opts: Optional[ResourceOptions] = None,
        password_version: str = "1",
    ):
        super().__init__("vmbuilder:compute:VirtualMachineDeployment", name, None, opts)

        self.opts = ResourceOptions.merge(
            opts or ResourceOptions(), ResourceOptions(parent=self)
        )
        self.scope = scope
        self.password_version = password_version
        self.passwords: dict[str, RandomPassword] = {}
        self.resources: dict[ResourceId, Resource] = {}

        for description in dependency_order(resources):
            depends_on = [
                self.resources[dep]
                for dep in description.dependencies
                if dep in self.resources
            ]
            opts = ResourceOptions.merge(
                self.opts, ResourceOptions(depends_on=depends_on)
            )
            if DEBUG:
                log.info(
                    f"Registering {type(description).__name__} {description.resource_id.name}"  # noqa: E501
                )
            self.resources[description.resource_id] = self.__create(
                description, opts
            )

        self.register_outputs({})

    def __create(self, description: ResourceDescription, opts: ResourceOptions):
        if isinstance(description, VirtualMachine):
            return self.__create_virtual_machine(description, opts)
        if isinstance(description, NetworkInterface):
            return self.__create_network_interface(description, opts)
        if isinstance(description, VirtualNetwork):
            return self.__create_virtual_network(description, opts)
        if isinstance(description, PublicIpAddress):
            return self.__create_public_ip(description, opts)
        if isinstance(description, StorageAccount):
            return self.__create_storage_account(description, opts)
        if isinstance(description, (CustomScriptExtension, AadSshLoginExtension)):
            return self.__create_extension(description, opts)
        raise ValueError(
            f"Unsupported resource description: {type(description).__name__}"
        )

    def __create_virtual_machine(
        self, vm: VirtualMachine, opts: ResourceOptions
    ) -> az_compute.VirtualMachine:
        """
        Creates the virtual machine. The admin password is generated and
        only rotates when `password_version` changes.
        """
        self.passwords[vm.name] = RandomPassword(
            vm.credentials.password_parameter,
            length=14,
            keepers={"version": self.password_version},
            lower=True,
            upper=True,
            special=True,
            override_special="!#%^*_+=-./?~",
            numeric=True,
            opts=self.opts,
        )

        os_profile = None
        image_reference = None
        if isinstance(vm.os_disk, FromImage):
            image = vm.os_disk.image
            image_reference = az_compute.ImageReferenceArgs(
                publisher=image.publisher,
                offer=image.offer,
                sku=image.sku,
                version=image.version,
            )
            os_disk = az_compute.OSDiskArgs(
                name=f"{vm.name}-os-disk",
                caching=az_compute.CachingTypes.READ_WRITE,
                create_option=az_compute.DiskCreateOption.FROM_IMAGE,
                disk_size_gb=vm.os_disk.disk.size,
                managed_disk=az_compute.ManagedDiskParametersArgs(
                    storage_account_type=vm.os_disk.disk.disk_type,
                ),
            )
            os_profile = az_compute.OSProfileArgs(
                computer_name=vm.name,
                admin_username=vm.credentials.username,
                admin_password=self.passwords[vm.name].result,
                custom_data=(
                    base64.b64encode(vm.custom_data.encode("utf-8")).decode("ascii")
                    if vm.custom_data
                    else None
                ),
                linux_configuration=self.__linux_configuration(vm),
            )
        else:
            os_disk = az_compute.OSDiskArgs(
                create_option=az_compute.DiskCreateOption.ATTACH,
                os_type=vm.os_disk.os,
                managed_disk=az_compute.ManagedDiskParametersArgs(
                    id=self.scope.id_of(vm.os_disk.disk.resource_id),
                ),
            )

        data_disks = []
        for lun, disk in enumerate(vm.data_disks):
            if isinstance(disk, EmptyDataDisk):
                data_disks.append(
                    az_compute.DataDiskArgs(
                        lun=lun,
                        name=f"{vm.name}-datadisk-{lun}",
                        create_option=az_compute.DiskCreateOption.EMPTY,
                        disk_size_gb=disk.disk.size,
                        managed_disk=az_compute.ManagedDiskParametersArgs(
                            storage_account_type=disk.disk.disk_type,
                        ),
                    )
                )
            else:
                data_disks.append(
                    az_compute.DataDiskArgs(
                        lun=lun,
                        create_option=az_compute.DiskCreateOption.ATTACH,
                        managed_disk=az_compute.ManagedDiskParametersArgs(
                            id=self.scope.id_of(disk.disk.resource_id),
                        ),
                    )
                )

        diagnostics_profile = None
        if vm.diagnostics_enabled:
            diagnostics_profile = az_compute.DiagnosticsProfileArgs(
                boot_diagnostics=az_compute.BootDiagnosticsArgs(
                    enabled=True,
                    storage_uri=(
                        blob_endpoint(vm.storage_account)
                        if vm.storage_account
                        else None
                    ),
                )
            )

        identity = None
        if vm.identity.identity_type:
            identity = az_compute.VirtualMachineIdentityArgs(
                type=az_compute.ResourceIdentityType(vm.identity.identity_type),
                user_assigned_identities=[
                    self.scope.id_of(identity_id)
                    for identity_id in vm.identity.user_assigned
                ]
                or None,
            )

        priority = vm.priority
        return az_compute.VirtualMachine(
            vm.name,
            vm_name=vm.name,
            resource_group_name=self.scope.resource_group_name,
            location=vm.location,
            zones=[vm.availability_zone] if vm.availability_zone else None,
            hardware_profile=az_compute.HardwareProfileArgs(
                vm_size=vm.size,
            ),
            network_profile=az_compute.NetworkProfileArgs(
                network_interfaces=[
                    az_compute.NetworkInterfaceReferenceArgs(
                        id=self.scope.id_of(nic.resource_id),
                        primary=nic.primary,
                    )
                    for nic in vm.network_interfaces
                ]
            ),
            os_profile=os_profile,
            storage_profile=az_compute.StorageProfileArgs(
                image_reference=image_reference,
                os_disk=os_disk,
                data_disks=data_disks,
            ),
            additional_capabilities=(
                az_compute.AdditionalCapabilitiesArgs(ultra_ssd_enabled=True)
                if vm.ultra_ssd_enabled
                else None
            ),
            diagnostics_profile=diagnostics_profile,
            priority=priority.type if priority else None,
            eviction_policy=priority.eviction_policy if priority else None,
            billing_profile=(
                az_compute.BillingProfileArgs(max_price=priority.max_price)
                if priority and priority.max_price is not None
                else None
            ),
            identity=identity,
            tags=vm.tags,
            opts=opts,
        )

    def __linux_configuration(
        self, vm: VirtualMachine
    ) -> Optional[az_compute.LinuxConfigurationArgs]:
        if vm.os_disk.os != LINUX:
            return None
        if vm.disable_password_authentication is None and not vm.public_keys:
            return None
        return az_compute.LinuxConfigurationArgs(
            disable_password_authentication=vm.disable_password_authentication,
            ssh=(
                az_compute.SshConfigurationArgs(
                    public_keys=[
                        az_compute.SshPublicKeyArgs(path=path, key_data=key)
                        for path, key in vm.public_keys
                    ]
                )
                if vm.public_keys
                else None
            ),
        )

    def __create_network_interface(
        self, nic: NetworkInterface, opts: ResourceOptions
    ) -> az_network.NetworkInterface:
        ip_configurations = []
        for index, ip_config in enumerate(nic.ip_configs):
            allocation = ip_config.private_ip_allocation
            ip_configurations.append(
                az_network.NetworkInterfaceIPConfigurationArgs(
                    name=f"ipconfig{index + 1}",
                    subnet=az_network.SubnetArgs(
                        id=self.scope.id_of(nic.subnet_id(ip_config)),
                    ),
                    public_ip_address=(
                        az_network.PublicIPAddressArgs(
                            id=self.scope.id_of(ip_config.public_ip.resource_id),
                        )
                        if ip_config.public_ip
                        else None
                    ),
                    private_ip_allocation_method=(
                        allocation.method if allocation else DYNAMIC
                    ),
                    private_ip_address=allocation.address if allocation else None,
                    load_balancer_backend_address_pools=[
                        az_network.BackendAddressPoolArgs(
                            id=self.scope.id_of(pool.resource_id),
                        )
                        for pool in ip_config.load_balancer_backend_address_pools
                    ],
                    primary=ip_config.primary,
                )
            )

        return az_network.NetworkInterface(
            nic.name,
            network_interface_name=nic.name,
            resource_group_name=self.scope.resource_group_name,
            location=nic.location,
            ip_configurations=ip_configurations,
            enable_accelerated_networking=nic.enable_accelerated_networking,
            enable_ip_forwarding=nic.enable_ip_forwarding,
            network_security_group=(
                az_network.NetworkSecurityGroupArgs(
                    id=self.scope.id_of(nic.network_security_group.resource_id),
                )
                if nic.network_security_group
                else None
            ),
            tags=nic.tags,
            opts=opts,
        )

    def __create_virtual_network(
        self, vnet: VirtualNetwork, opts: ResourceOptions
    ) -> az_network.VirtualNetwork:
        return az_network.VirtualNetwork(
            vnet.name,
            virtual_network_name=vnet.name,
            resource_group_name=self.scope.resource_group_name,
            location=vnet.location,
            address_space=az_network.AddressSpaceArgs(
                address_prefixes=vnet.address_space_prefixes,
            ),
            subnets=[
                az_network.SubnetArgs(
                    name=subnet.name,
                    address_prefix=subnet.prefix,
                    network_security_group=(
                        az_network.NetworkSecurityGroupArgs(
                            id=self.scope.id_of(
                                subnet.network_security_group.resource_id
                            ),
                        )
                        if subnet.network_security_group
                        else None
                    ),
                )
                for subnet in vnet.subnets
            ],
            tags=vnet.tags,
            opts=opts,
        )

    def __create_public_ip(
        self, ip: PublicIpAddress, opts: ResourceOptions
    ) -> az_network.PublicIPAddress:
        return az_network.PublicIPAddress(
            ip.name,
            public_ip_address_name=ip.name,
            resource_group_name=self.scope.resource_group_name,
            location=ip.location,
            public_ip_allocation_method=ip.allocation_method,
            sku=az_network.PublicIPAddressSkuArgs(name=ip.sku),
            dns_settings=(
                az_network.PublicIPAddressDnsSettingsArgs(
                    domain_name_label=ip.domain_name_label,
                )
                if ip.domain_name_label
                else None
            ),
            zones=[ip.availability_zone] if ip.availability_zone else None,
            tags=ip.tags,
            opts=opts,
        )

    def __create_storage_account(
        self, account: StorageAccount, opts: ResourceOptions
    ) -> az_storage.StorageAccount:
        return az_storage.StorageAccount(
            account.name.value,
            account_name=account.name.value,
            resource_group_name=self.scope.resource_group_name,
            location=account.location,
            kind=account.kind,
            sku=az_storage.SkuArgs(name=account.sku),
            minimum_tls_version=StorageAccountDefaults.minimum_tls_version,
            allow_blob_public_access=StorageAccountDefaults.allow_blob_public_access,
            tags=account.tags,
            opts=opts,
        )

    def __create_extension(
        self,
        extension: Union[CustomScriptExtension, AadSshLoginExtension],
        opts: ResourceOptions,
    ) -> az_compute.VirtualMachineExtension:
        settings = (
            extension.settings
            if isinstance(extension, CustomScriptExtension)
            else None
        )
        return az_compute.VirtualMachineExtension(
            f"{extension.virtual_machine}-{extension.name}",
            vm_name=extension.virtual_machine,
            vm_extension_name=extension.name,
            resource_group_name=self.scope.resource_group_name,
            location=extension.location,
            publisher=extension.publisher,
            type=extension.extension_type,
            type_handler_version=extension.type_handler_version,
            auto_upgrade_minor_version=True,
            settings=settings,
            tags=extension.tags,
            opts=opts,
        )

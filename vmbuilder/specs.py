import re
from typing import Optional

from attr import dataclass, field

from vmbuilder.builder import DEFAULT_VM_SIZE, IpConfigBuilder, VirtualMachineBuilder
from vmbuilder.network import VIRTUAL_NETWORKS
from vmbuilder.resource_ref import ResourceId
from vmbuilder.vm_dataclasses import COMMON_IMAGES, ImageDefinition, OS


@dataclass
class VMSpecs:
    """
    A virtual machine as described in the stack configuration under
    `vm_specs`. Either `image` names one of the common images, or
    `publisher`, `offer` and `sku` describe a marketplace image.
    """

    server_name: str
    admin_username: str
    admin_password_version: str = "1"
    size: str = DEFAULT_VM_SIZE
    os_type: str = "Windows"
    image: Optional[str] = None
    publisher: Optional[str] = None
    offer: Optional[str] = None
    sku: Optional[str] = None
    version: str = "latest"
    disk_size_gb: Optional[int] = None
    disk_type: str = "Standard_LRS"
    data_disk_sizes_gb: list[int] = field(factory=list)
    no_data_disk: bool = False
    availability_zone: Optional[str] = None
    public_ip: bool = True
    domain_name_prefix: Optional[str] = None
    subnet_name: Optional[str] = None
    existing_vnet: Optional[str] = None
    existing_vnet_resource_group: Optional[str] = None
    additional_subnets: list[str] = field(factory=list)
    accelerated_networking: Optional[bool] = None
    ip_forwarding: Optional[bool] = None
    diagnostics: bool = False
    ssh_public_keys: list[str] = field(factory=list)
    disable_password_authentication: bool = False
    aad_ssh_login: bool = False
    system_identity: bool = False
    spot_instance: bool = False
    custom_script: Optional[str] = None
    custom_script_files: list[str] = field(factory=list)
    tags: dict[str, str] = field(factory=dict)

    def __attrs_post_init__(self):
        if not re.match(r"^[A-Za-z0-9\-]+$", self.server_name):
            raise ValueError(
                f"server_name '{self.server_name}' contains invalid characters. Only letters, numbers, and hyphens are allowed."  # noqa: E501
            )
        if self.image is not None and self.image not in COMMON_IMAGES:
            raise ValueError(
                f"Unknown image '{self.image}' for VM {self.server_name}. Choose one of: {', '.join(COMMON_IMAGES)}"  # noqa: E501
            )
        if self.image is None and any((self.publisher, self.offer, self.sku)):
            if not all((self.publisher, self.offer, self.sku)):
                raise ValueError(
                    f"VM {self.server_name} needs publisher, offer and sku together to describe an image"  # noqa: E501
                )
        if self.additional_subnets and not self.existing_vnet:
            raise ValueError(
                f"VM {self.server_name} uses additional_subnets {self.additional_subnets}, which must already exist in the virtual network named by existing_vnet"  # noqa: E501
            )
        if self.existing_vnet_resource_group and not self.existing_vnet:
            raise ValueError(
                f"VM {self.server_name} sets existing_vnet_resource_group without existing_vnet"  # noqa: E501
            )

    @property
    def image_definition(self) -> Optional[ImageDefinition]:
        if self.image is not None:
            return COMMON_IMAGES[self.image]
        if self.publisher:
            return ImageDefinition(
                os=OS(self.os_type.capitalize()),
                publisher=self.publisher,
                offer=self.offer,
                sku=self.sku,
                version=self.version,
            )
        return None

    def to_builder(self) -> VirtualMachineBuilder:
        """
        Maps this definition onto builder options. Settings left at their
        defaults are not applied, so the builder defaults stay in effect.
        """
        vm = (
            VirtualMachineBuilder(self.server_name)
            .username(self.admin_username)
            .vm_size(self.size)
            .add_tags(self.tags)
        )
        if self.image_definition is not None:
            vm = vm.operating_system(self.image_definition)
        if self.disk_size_gb is not None:
            vm = vm.os_disk(self.disk_size_gb, self.disk_type)
        if self.no_data_disk:
            vm = vm.no_data_disk()
        for size in self.data_disk_sizes_gb:
            vm = vm.add_disk(size, self.disk_type)
        if self.availability_zone:
            vm = vm.add_availability_zone(self.availability_zone)
        if not self.public_ip:
            vm = vm.public_ip(None)
        if self.domain_name_prefix:
            vm = vm.domain_name_prefix(self.domain_name_prefix)
        if self.subnet_name:
            vm = vm.subnet_name(self.subnet_name)
        if self.existing_vnet:
            vm = vm.link_to_unmanaged_vnet(
                ResourceId(
                    type=VIRTUAL_NETWORKS,
                    name=self.existing_vnet,
                    resource_group=self.existing_vnet_resource_group,
                )
            )
        if self.additional_subnets:
            vm = vm.add_ip_configurations(
                [
                    IpConfigBuilder().subnet_name(subnet).build()
                    for subnet in self.additional_subnets
                ]
            )
        if self.accelerated_networking is not None:
            vm = vm.accelerated_networking(self.accelerated_networking)
        if self.ip_forwarding is not None:
            vm = vm.ip_forwarding(self.ip_forwarding)
        if self.diagnostics:
            vm = vm.diagnostics_support()
        if self.ssh_public_keys:
            vm = vm.add_authorized_keys(
                [
                    (f"/home/{self.admin_username}/.ssh/authorized_keys", key)
                    for key in self.ssh_public_keys
                ]
            )
        if self.disable_password_authentication:
            vm = vm.disable_password_authentication(True)
        if self.system_identity:
            vm = vm.system_identity()
        if self.aad_ssh_login:
            vm = vm.aad_ssh_login(True)
        if self.spot_instance:
            vm = vm.spot_instance()
        if self.custom_script is not None:
            vm = vm.custom_script(self.custom_script)
        if self.custom_script_files:
            vm = vm.custom_script_files(self.custom_script_files)
        return vm

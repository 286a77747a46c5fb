from typing import Optional

from attr import dataclass, evolve, field
from pulumi_azure_native import network as az_network

from vmbuilder.resource_ref import LinkedResource, ResourceId, ResourceType
from vmbuilder.vm_dataclasses import AllocationMethod, IpConfiguration

NETWORK_INTERFACES = ResourceType("Microsoft.Network/networkInterfaces")
VIRTUAL_NETWORKS = ResourceType("Microsoft.Network/virtualNetworks")
SUBNETS = ResourceType("Microsoft.Network/virtualNetworks/subnets")
PUBLIC_IP_ADDRESSES = ResourceType("Microsoft.Network/publicIPAddresses")
NETWORK_SECURITY_GROUPS = ResourceType(
    "Microsoft.Network/networkSecurityGroups"
)
BACKEND_ADDRESS_POOLS = ResourceType(
    "Microsoft.Network/loadBalancers/backendAddressPools"
)

PublicIpSku = az_network.PublicIPAddressSkuName
BASIC_SKU = PublicIpSku("Basic")
STANDARD_SKU = PublicIpSku("Standard")


def _managed(links: list[Optional[LinkedResource]]) -> list[ResourceId]:
    return [link.dependency for link in links if link and link.managed]


@dataclass(frozen=True)
class NetworkInterface:
    """
    A NIC with one IP configuration per address it exposes on a subnet.

    `primary` is only set when a virtual machine has more than one NIC.
    Accelerated networking and IP forwarding are only ever set on the
    virtual machine's primary NIC.
    """

    name: str
    location: str
    ip_configs: list[IpConfiguration]
    virtual_network: LinkedResource
    network_security_group: Optional[LinkedResource] = None
    enable_accelerated_networking: Optional[bool] = None
    enable_ip_forwarding: Optional[bool] = None
    primary: Optional[bool] = None
    tags: dict[str, str] = field(factory=dict)

    @property
    def resource_id(self) -> ResourceId:
        return NETWORK_INTERFACES.resource_id(self.name)

    def subnet_id(self, ip_config: IpConfiguration) -> ResourceId:
        """
        Subnet inside the NIC's virtual network, keeping any resource group
        or subscription pinned on the network.
        """
        return evolve(
            self.virtual_network.resource_id,
            type=SUBNETS,
            segments=(ip_config.subnet_name,),
        )

    @property
    def dependencies(self) -> list[ResourceId]:
        links = [self.virtual_network, self.network_security_group]
        for ip_config in self.ip_configs:
            links.append(ip_config.public_ip)
            links.extend(ip_config.load_balancer_backend_address_pools)
        deps = []
        for dep in _managed(links):
            if dep not in deps:
                deps.append(dep)
        return deps


@dataclass(frozen=True)
class Subnet:
    name: str
    prefix: str
    network_security_group: Optional[LinkedResource] = None


@dataclass(frozen=True)
class VirtualNetwork:
    name: str
    location: str
    address_space_prefixes: list[str]
    subnets: list[Subnet]
    tags: dict[str, str] = field(factory=dict)

    @property
    def resource_id(self) -> ResourceId:
        return VIRTUAL_NETWORKS.resource_id(self.name)

    @property
    def dependencies(self) -> list[ResourceId]:
        return _managed([subnet.network_security_group for subnet in self.subnets])


@dataclass(frozen=True)
class PublicIpAddress:
    name: str
    location: str
    allocation_method: AllocationMethod
    sku: PublicIpSku
    domain_name_label: Optional[str] = None
    availability_zone: Optional[str] = None
    tags: dict[str, str] = field(factory=dict)

    @property
    def resource_id(self) -> ResourceId:
        return PUBLIC_IP_ADDRESSES.resource_id(self.name)

    @property
    def dependencies(self) -> list[ResourceId]:
        return []

import pulumi


class DeploymentMocks(pulumi.runtime.Mocks):
    def new_resource(self, args: pulumi.runtime.MockResourceArgs):
        return [f"{args.name}_id", args.inputs]

    def call(self, args: pulumi.runtime.MockCallArgs):
        return {}


pulumi.runtime.set_mocks(DeploymentMocks(), preview=False)

from pulumi_azure_native import compute as az_compute  # noqa: E402
from pulumi_azure_native import network as az_network  # noqa: E402
from pulumi_azure_native import storage as az_storage  # noqa: E402

from vmbuilder.builder import VirtualMachineBuilder  # noqa: E402
from vmbuilder.compute import EXTENSIONS, VIRTUAL_MACHINES  # noqa: E402
from vmbuilder.deploy import (  # noqa: E402
    DeploymentScope,
    VirtualMachineDeployment,
    dependency_order,
)
from vmbuilder.network import (  # noqa: E402
    NETWORK_INTERFACES,
    PUBLIC_IP_ADDRESSES,
    VIRTUAL_NETWORKS,
)
from vmbuilder.resource_ref import ResourceId  # noqa: E402
from vmbuilder.storage import STORAGE_ACCOUNTS  # noqa: E402
from vmbuilder.vm_dataclasses import UBUNTU_SERVER_2204_LTS  # noqa: E402

LOCATION = "westeurope"
SCOPE = DeploymentScope(subscription_id="sub-id", resource_group_name="rg")


def resources_for(builder=None):
    builder = builder or VirtualMachineBuilder("web1").username("admin")
    return builder.build().build_resources(LOCATION)


class TestDeploymentScope:
    def test_id_of_resolves_full_path(self):
        assert SCOPE.id_of(NETWORK_INTERFACES.resource_id("web1-nic")) == (
            "/subscriptions/sub-id/resourceGroups/rg/providers"
            "/Microsoft.Network/networkInterfaces/web1-nic"
        )

    def test_subnet_keeps_linked_vnet_resource_group(self):
        shared = ResourceId(
            type=VIRTUAL_NETWORKS, name="shared-vnet", resource_group="network-rg"
        )
        nic = (
            VirtualMachineBuilder("web1")
            .link_to_unmanaged_vnet(shared)
            .build()
            .build_nics(LOCATION)[0]
        )

        assert SCOPE.id_of(nic.subnet_id(nic.ip_configs[0])) == (
            "/subscriptions/sub-id/resourceGroups/network-rg/providers"
            "/Microsoft.Network/virtualNetworks/shared-vnet/subnets/web1-subnet"
        )


class TestDependencyOrder:
    def test_dependencies_come_first(self):
        resources = resources_for()

        ordered = [r.resource_id.name for r in dependency_order(resources)]

        assert ordered.index("web1-vnet") < ordered.index("web1-nic")
        assert ordered.index("web1-ip") < ordered.index("web1-nic")
        assert ordered.index("web1-nic") < ordered.index("web1")

    def test_extensions_after_virtual_machine(self):
        resources = resources_for(
            VirtualMachineBuilder("web1")
            .username("admin")
            .custom_script("echo hello")
            .diagnostics_support()
        )

        ordered = [r.resource_id for r in dependency_order(resources)]

        assert ordered[-1] == EXTENSIONS.resource_id("web1", "web1-custom-script")
        assert ordered.index(STORAGE_ACCOUNTS.resource_id("web1storage")) < (
            ordered.index(VIRTUAL_MACHINES.resource_id("web1"))
        )

    def test_order_kept_when_independent(self):
        resources = resources_for()
        independent = [r for r in resources if not r.dependencies]

        assert dependency_order(independent) == independent

    def test_external_dependencies_ignored(self):
        resources = resources_for(
            VirtualMachineBuilder("web1")
            .username("admin")
            .link_to_vnet("shared-vnet")
        )

        ordered = dependency_order(resources)

        assert len(ordered) == len(resources)
        assert VIRTUAL_NETWORKS.resource_id("shared-vnet") not in {
            r.resource_id for r in ordered
        }


class TestVirtualMachineDeployment:
    @pulumi.runtime.test
    def test_registers_every_resource(self):
        deployment = VirtualMachineDeployment(
            "web1", resources=resources_for(), scope=SCOPE
        )

        assert isinstance(
            deployment.resources[VIRTUAL_MACHINES.resource_id("web1")],
            az_compute.VirtualMachine,
        )
        assert isinstance(
            deployment.resources[NETWORK_INTERFACES.resource_id("web1-nic")],
            az_network.NetworkInterface,
        )
        assert isinstance(
            deployment.resources[VIRTUAL_NETWORKS.resource_id("web1-vnet")],
            az_network.VirtualNetwork,
        )
        assert isinstance(
            deployment.resources[PUBLIC_IP_ADDRESSES.resource_id("web1-ip")],
            az_network.PublicIPAddress,
        )
        assert list(deployment.passwords) == ["web1"]

    @pulumi.runtime.test
    def test_storage_and_extensions_registered(self):
        resources = resources_for(
            VirtualMachineBuilder("web2")
            .username("admin")
            .operating_system(UBUNTU_SERVER_2204_LTS)
            .system_identity()
            .aad_ssh_login(True)
            .custom_script("echo hello")
            .diagnostics_support()
        )

        deployment = VirtualMachineDeployment("web2", resources=resources, scope=SCOPE)

        assert isinstance(
            deployment.resources[STORAGE_ACCOUNTS.resource_id("web2storage")],
            az_storage.StorageAccount,
        )
        extensions = [
            r
            for r in deployment.resources.values()
            if isinstance(r, az_compute.VirtualMachineExtension)
        ]
        assert len(extensions) == 2

    @pulumi.runtime.test
    def test_virtual_machine_urn(self):
        resources = resources_for(VirtualMachineBuilder("web3").username("admin"))
        deployment = VirtualMachineDeployment("web3", resources=resources, scope=SCOPE)
        vm = deployment.resources[VIRTUAL_MACHINES.resource_id("web3")]

        def check_urn(urn):
            assert "azure-native:compute:VirtualMachine" in urn
            assert urn.endswith("::web3")

        return vm.urn.apply(check_urn)

import pytest

from vmbuilder.builder import VirtualMachineBuilder
from vmbuilder.network import SUBNETS, VIRTUAL_NETWORKS
from vmbuilder.resource_ref import LinkedResource, RefKind, ResourceId, ResourceRef
from vmbuilder.vm import derive_vnet_id


class TestResourceId:
    def test_arm_expression_for_child_resource(self):
        subnet = SUBNETS.resource_id("web1-vnet", "web1-subnet")

        assert subnet.arm_expression == (
            "resourceId('Microsoft.Network/virtualNetworks/subnets', "
            "'web1-vnet', 'web1-subnet')"
        )

    def test_arm_expression_includes_pinned_resource_group(self):
        vnet = ResourceId(
            type=VIRTUAL_NETWORKS, name="shared", resource_group="network-rg"
        )

        assert vnet.arm_expression == (
            "resourceId('network-rg', 'Microsoft.Network/virtualNetworks', 'shared')"
        )

    def test_path_interleaves_types_and_names(self):
        subnet = SUBNETS.resource_id("web1-vnet", "web1-subnet")

        assert subnet.path("sub-id", "rg") == (
            "/subscriptions/sub-id/resourceGroups/rg/providers/Microsoft.Network"
            "/virtualNetworks/web1-vnet/subnets/web1-subnet"
        )

    def test_path_prefers_pinned_scope(self):
        vnet = ResourceId(
            type=VIRTUAL_NETWORKS,
            name="shared",
            resource_group="network-rg",
            subscription_id="other-sub",
        )

        assert vnet.path("sub-id", "rg") == (
            "/subscriptions/other-sub/resourceGroups/network-rg/providers"
            "/Microsoft.Network/virtualNetworks/shared"
        )

    def test_resource_ids_are_hashable_and_compare_by_value(self):
        first = VIRTUAL_NETWORKS.resource_id("web1-vnet")
        second = VIRTUAL_NETWORKS.resource_id("web1-vnet")

        assert first == second
        assert len({first, second}) == 1


class TestResourceRef:
    config = VirtualMachineBuilder("web1").build()

    def test_derived_reference_uses_owning_config(self):
        ref = ResourceRef.derived(derive_vnet_id)

        assert ref.kind == RefKind.DERIVED
        assert ref.is_deployable
        assert ref.resource_id(self.config) == VIRTUAL_NETWORKS.resource_id(
            "web1-vnet"
        )

    def test_named_reference_returns_override(self):
        ref = ResourceRef.named(VIRTUAL_NETWORKS.resource_id("custom"))

        assert ref.is_deployable
        assert ref.resource_id(self.config).name == "custom"

    def test_linked_reference_returns_external_id_unchanged(self):
        external = VIRTUAL_NETWORKS.resource_id("shared")
        ref = ResourceRef.linked(LinkedResource.of_unmanaged(external))

        assert not ref.is_deployable
        assert ref.resource_id(self.config) is external

    @pytest.mark.parametrize(
        "ref, managed",
        [
            (ResourceRef.derived(derive_vnet_id), True),
            (ResourceRef.named(VIRTUAL_NETWORKS.resource_id("custom")), True),
            (
                ResourceRef.linked(
                    LinkedResource.of_unmanaged(VIRTUAL_NETWORKS.resource_id("x"))
                ),
                False,
            ),
        ],
    )
    def test_to_linked_resource(self, ref, managed):
        linked = ref.to_linked_resource(self.config)

        assert linked.managed is managed
        assert (linked.dependency is not None) is managed


class TestTemplateExpressions:
    def test_public_ip_address_and_hostname(self):
        config = VirtualMachineBuilder("web1").build()
        ip = "resourceId('Microsoft.Network/publicIPAddresses', 'web1-ip')"

        assert config.public_ip_address == f"reference({ip}).ipAddress"
        assert config.hostname == f"reference({ip}).dnsSettings.fqdn"

    def test_no_public_ip_means_no_address(self):
        config = VirtualMachineBuilder("web1").public_ip(None).build()

        assert config.public_ip_address is None
        assert config.hostname is None

    def test_system_identity_principal(self):
        config = VirtualMachineBuilder("web1").build()

        assert config.system_identity == (
            "reference(resourceId('Microsoft.Compute/virtualMachines', 'web1'), "
            "'2019-07-01', 'full').identity.principalId"
        )

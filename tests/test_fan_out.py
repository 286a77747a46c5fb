import pytest

from vmbuilder.builder import IpConfigBuilder, VirtualMachineBuilder
from vmbuilder.network import SUBNETS

LOCATION = "westeurope"


def vm_with_subnets(*subnets: str) -> VirtualMachineBuilder:
    return (
        VirtualMachineBuilder("web1")
        .username("admin")
        .vm_size("Standard_D2s_v3")
        .accelerated_networking(True)
        .ip_forwarding(True)
        .add_ip_configurations(
            [IpConfigBuilder().subnet_name(subnet).build() for subnet in subnets]
        )
    )


class TestIpConfigs:
    def test_single_implicit_config_not_marked_primary(self):
        ip_configs = VirtualMachineBuilder("web1").build().build_ip_configs()

        assert len(ip_configs) == 1
        assert ip_configs[0].primary is None
        assert ip_configs[0].subnet_name == "web1-subnet"
        assert ip_configs[0].public_ip.name == "web1-ip"

    def test_implicit_config_primary_when_extra_configs_added(self):
        ip_configs = vm_with_subnets("sub2").build().build_ip_configs()

        assert [c.primary for c in ip_configs] == [True, None]

    def test_unset_subnet_defaults_to_vm_subnet(self):
        config = (
            VirtualMachineBuilder("web1")
            .subnet_name("frontend")
            .add_ip_configurations([IpConfigBuilder().build()])
            .build()
        )

        assert [c.subnet_name for c in config.build_ip_configs()] == [
            "frontend",
            "frontend",
        ]

    def test_implicit_config_carries_pools_and_allocation(self):
        config = (
            VirtualMachineBuilder("web1")
            .public_ip(None)
            .link_to_backend_address_pool("web-pool")
            .build()
        )

        implicit = config.build_ip_configs()[0]

        assert implicit.public_ip is None
        assert [p.name for p in implicit.load_balancer_backend_address_pools] == [
            "web-pool"
        ]


class TestNics:
    def test_one_subnet_produces_one_unmarked_nic(self):
        nics = vm_with_subnets().build().build_nics(LOCATION)

        assert len(nics) == 1
        assert nics[0].name == "web1-nic"
        assert nics[0].primary is None

    def test_extra_config_on_same_subnet_shares_nic(self):
        nics = vm_with_subnets("web1-subnet").build().build_nics(LOCATION)

        assert len(nics) == 1
        assert nics[0].primary is None
        assert len(nics[0].ip_configs) == 2

    @pytest.mark.parametrize(
        "subnets",
        [
            ("sub2",),
            ("sub2", "sub3"),
            ("sub2", "web1-subnet", "sub3", "sub2"),
        ],
    )
    def test_one_nic_per_distinct_subnet(self, subnets):
        nics = vm_with_subnets(*subnets).build().build_nics(LOCATION)
        distinct = {"web1-subnet", *subnets}

        assert len(nics) == len(distinct)
        assert [nic.primary for nic in nics].count(True) == 1
        assert nics[0].name == "web1-nic"
        assert nics[0].primary is True
        assert all(nic.primary is False for nic in nics[1:])

    def test_flags_only_on_primary_nic(self):
        nics = vm_with_subnets("sub2", "sub3").build().build_nics(LOCATION)

        assert nics[0].enable_accelerated_networking is True
        assert nics[0].enable_ip_forwarding is True
        for nic in nics[1:]:
            assert nic.enable_accelerated_networking is None
            assert nic.enable_ip_forwarding is None

    def test_nic_order_follows_first_occurrence(self):
        nics = vm_with_subnets("sub3", "sub2", "sub3").build().build_nics(LOCATION)

        assert [nic.name for nic in nics] == [
            "web1-nic",
            "web1-nic-sub3",
            "web1-nic-sub2",
        ]
        assert len(nics[1].ip_configs) == 2

    def test_nic_subnet_ids_point_into_vm_vnet(self):
        nics = vm_with_subnets("sub2").build().build_nics(LOCATION)
        secondary = nics[1]

        assert secondary.subnet_id(secondary.ip_configs[0]) == SUBNETS.resource_id(
            "web1-vnet", "sub2"
        )

    def test_nic_dependencies(self):
        config = (
            VirtualMachineBuilder("web1")
            .link_to_unmanaged_vnet("shared-vnet")
            .network_security_group("web-nsg")
            .build()
        )

        nic = config.build_nics(LOCATION, config.network_security_group)[0]

        assert [dep.name for dep in nic.dependencies] == ["web-nsg", "web1-ip"]

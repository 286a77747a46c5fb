import pytest

from vmbuilder.builder import DEFAULT_VM_SIZE
from vmbuilder.compute import AadSshLoginExtension, CustomScriptExtension
from vmbuilder.network import NetworkInterface, PublicIpAddress, VirtualNetwork
from vmbuilder.specs import VMSpecs
from vmbuilder.storage import StorageAccount
from vmbuilder.vm_dataclasses import (
    DiskInfo,
    EmptyDataDisk,
    FeatureFlag,
    LINUX,
    PREMIUM_LRS,
    UBUNTU_SERVER_2204_LTS,
)


class TestValidation:
    @pytest.mark.parametrize("server_name", ["web_1", "web 1", "web.1"])
    def test_invalid_server_name(self, server_name):
        with pytest.raises(ValueError, match="contains invalid characters"):
            VMSpecs(server_name=server_name, admin_username="admin")

    def test_unknown_image(self):
        with pytest.raises(ValueError, match="Unknown image 'centos-7'"):
            VMSpecs(server_name="web1", admin_username="admin", image="centos-7")

    def test_partial_marketplace_image(self):
        with pytest.raises(ValueError, match="publisher, offer and sku together"):
            VMSpecs(server_name="web1", admin_username="admin", publisher="Canonical")


class TestImageDefinition:
    def test_common_image(self):
        spec = VMSpecs(server_name="web1", admin_username="admin", image="ubuntu-22.04")

        assert spec.image_definition == UBUNTU_SERVER_2204_LTS

    def test_marketplace_image(self):
        spec = VMSpecs(
            server_name="web1",
            admin_username="admin",
            os_type="linux",
            publisher="Canonical",
            offer="ubuntu-24_04-lts",
            sku="server",
        )

        image = spec.image_definition

        assert image.os == LINUX
        assert (image.publisher, image.offer, image.sku, image.version) == (
            "Canonical",
            "ubuntu-24_04-lts",
            "server",
            "latest",
        )

    def test_no_image_keeps_builder_default(self):
        spec = VMSpecs(server_name="web1", admin_username="admin")

        assert spec.image_definition is None


class TestToBuilder:
    def test_minimal_definition(self):
        config = VMSpecs(server_name="web1", admin_username="admin").to_builder().build()

        assert config.name == "web1"
        assert config.username == "admin"
        assert config.size == DEFAULT_VM_SIZE
        resources = config.build_resources("westeurope")
        assert [r.name for r in resources] == ["web1", "web1-nic", "web1-vnet", "web1-ip"]

    def test_disks(self):
        config = (
            VMSpecs(
                server_name="web1",
                admin_username="admin",
                disk_size_gb=64,
                disk_type="Premium_LRS",
                data_disk_sizes_gb=[256, 512],
            )
            .to_builder()
            .build()
        )

        assert config.os_disk.disk == DiskInfo(64, PREMIUM_LRS)
        assert config.data_disks == [
            EmptyDataDisk(DiskInfo(512, PREMIUM_LRS)),
            EmptyDataDisk(DiskInfo(256, PREMIUM_LRS)),
        ]

    def test_no_data_disk(self):
        config = (
            VMSpecs(server_name="web1", admin_username="admin", no_data_disk=True)
            .to_builder()
            .build()
        )

        assert config.data_disks is None

    def test_linux_with_ssh_and_aad_login(self):
        config = (
            VMSpecs(
                server_name="web1",
                admin_username="azureuser",
                image="ubuntu-22.04",
                size="Standard_D2s_v3",
                accelerated_networking=True,
                ssh_public_keys=["ssh-ed25519 AAAA"],
                disable_password_authentication=True,
                system_identity=True,
                aad_ssh_login=True,
            )
            .to_builder()
            .build()
        )

        assert config.ssh_path_and_public_keys == [
            ("/home/azureuser/.ssh/authorized_keys", "ssh-ed25519 AAAA")
        ]
        assert config.accelerated_networking == FeatureFlag.ENABLED
        resources = config.build_resources("westeurope")
        assert isinstance(resources[-1], AadSshLoginExtension)

    def test_network_options(self):
        resources = (
            VMSpecs(
                server_name="web1",
                admin_username="admin",
                public_ip=False,
                subnet_name="frontend",
                existing_vnet="shared-vnet",
                existing_vnet_resource_group="network-rg",
                additional_subnets=["backend"],
            )
            .to_builder()
            .build()
            .build_resources("westeurope")
        )

        nics = [r for r in resources if isinstance(r, NetworkInterface)]

        assert [nic.name for nic in nics] == ["web1-nic", "web1-nic-backend"]
        assert not any(isinstance(r, PublicIpAddress) for r in resources)
        assert not any(isinstance(r, VirtualNetwork) for r in resources)
        for nic in nics:
            subnet = nic.subnet_id(nic.ip_configs[0])
            assert subnet.names[0] == "shared-vnet"
            assert subnet.resource_group == "network-rg"

    def test_additional_subnets_need_existing_vnet(self):
        with pytest.raises(ValueError, match="additional_subnets"):
            VMSpecs(
                server_name="web1",
                admin_username="admin",
                additional_subnets=["sub2"],
            )

    def test_vnet_resource_group_needs_existing_vnet(self):
        with pytest.raises(ValueError, match="without existing_vnet"):
            VMSpecs(
                server_name="web1",
                admin_username="admin",
                existing_vnet_resource_group="network-rg",
            )

    def test_diagnostics_script_and_tags(self):
        resources = (
            VMSpecs(
                server_name="app1",
                admin_username="admin",
                diagnostics=True,
                custom_script="powershell ./bootstrap.ps1",
                custom_script_files=["https://example.com/bootstrap.ps1"],
                tags={"env": "dev"},
            )
            .to_builder()
            .build()
            .build_resources("westeurope")
        )

        assert any(isinstance(r, StorageAccount) for r in resources)
        script = [r for r in resources if isinstance(r, CustomScriptExtension)][0]
        assert script.file_uris == ["https://example.com/bootstrap.ps1"]
        assert all(r.tags == {"env": "dev"} for r in resources)

    def test_spot_instance(self):
        config = (
            VMSpecs(server_name="web1", admin_username="admin", spot_instance=True)
            .to_builder()
            .build()
        )

        assert str(config.priority) == "Spot (Deallocate, -1)"

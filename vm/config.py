from vmbuilder.specs import VMSpecs
import pulumi

az_native_config = pulumi.Config("azure-native")
azure_location: str = az_native_config.require("location")
subscription_id: str = az_native_config.require("subscriptionId")

config = pulumi.Config()

# Environment configuration
resource_group_suffix: str = config.require("resource_group_suffix")
default_tags: dict = config.get_object("default_tags") or {
    "environment": "dev",
    "created_by": "pulumi",
}

# VM specifications
vm_specs = [VMSpecs(**spec) for spec in config.require_object("vm_specs")]

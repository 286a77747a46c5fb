# __main__.py
"""
Pulumi program creating one virtual machine, with its network and
diagnostics resources, per entry in the `vm_specs` stack config.

The `venv` virtualenv set in Pulumi.yaml gets `vmbuilder` installed from the
repository root through requirements.txt.
"""

import os

from pulumi import export, log, ResourceOptions
import pulumi_azure_native as azure_native
from vmbuilder.deploy import DeploymentScope, VirtualMachineDeployment
from config import (
    azure_location,
    default_tags,
    resource_group_suffix,
    subscription_id,
    vm_specs,
)

DEBUG = os.getenv("DEBUG")
resource_group_name = f"{azure_location}-{resource_group_suffix}"

resource_group = azure_native.resources.ResourceGroup(
    resource_group_name,
    resource_group_name=resource_group_name,
    location=azure_location,
    tags=default_tags,
)

scope = DeploymentScope(
    subscription_id=subscription_id,
    resource_group_name=resource_group_name,
)

for vm_spec in vm_specs:
    vm_config = vm_spec.to_builder().add_tags(default_tags).build()
    resources = vm_config.build_resources(azure_location)
    if DEBUG:
        log.info(
            f"{vm_spec.server_name}: {[type(r).__name__ for r in resources]}"
        )

    deployment = VirtualMachineDeployment(
        vm_spec.server_name,
        resources=resources,
        scope=scope,
        password_version=vm_spec.admin_password_version,
        opts=ResourceOptions(parent=resource_group),
    )

    specs = {
        "username": vm_spec.admin_username,
        "password": deployment.passwords[vm_config.name].result,
    }
    if vm_config.public_ip_id in deployment.resources:
        specs["ip"] = deployment.resources[vm_config.public_ip_id].ip_address
    export(f"{vm_spec.server_name}_specs", specs)

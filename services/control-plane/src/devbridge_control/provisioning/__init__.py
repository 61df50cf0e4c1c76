"""Bridge resource provisioning."""

from devbridge_control.provisioning.docker_registry import DockerResourceRegistry
from devbridge_control.provisioning.provisioner import ResourceProvisioner
from devbridge_control.provisioning.registry import (
    ProvisionedResource,
    ResourceRegistry,
    ResourceSpec,
    ResourceState,
)

__all__ = [
    "DockerResourceRegistry",
    "ProvisionedResource",
    "ResourceProvisioner",
    "ResourceRegistry",
    "ResourceSpec",
    "ResourceState",
]

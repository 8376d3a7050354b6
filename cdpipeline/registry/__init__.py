"""Image registry helpers.

Public API:
    - ImageReference: ``<registry>/<repository>:<tag>``
    - TagConflictPolicy: FAIL or OVERWRITE when a tag already exists
    - RegistryClient: Tag existence checks through the docker CLI
    - ArtifactRegistryProvisioner: Optional repository creation
    - registry_auth_config: Temporary docker config with registry credentials
    - RegistryError: Base exception for registry errors
    - TagConflictError: Tag exists and the policy forbids overwriting
    - RepositoryProvisionError: Repository could not be created
"""

from .auth import registry_auth_config
from .client import RegistryClient
from .exceptions import RegistryError, RepositoryProvisionError, TagConflictError
from .models import ImageReference, TagConflictPolicy
from .provisioner import ArtifactRegistryProvisioner

__all__ = [
    "ImageReference",
    "TagConflictPolicy",
    "RegistryClient",
    "ArtifactRegistryProvisioner",
    "registry_auth_config",
    "RegistryError",
    "TagConflictError",
    "RepositoryProvisionError",
]

"""Exceptions for the registry module."""

from typing import Optional

from cdpipeline.errors import PipelineError


class RegistryError(PipelineError):
    """Base exception for registry errors."""

    def __init__(self, message: str, output: str = ""):
        self.output = output
        super().__init__(message)


class TagConflictError(RegistryError):
    """Raised when the run's tag already exists and the policy forbids overwriting."""

    def __init__(self, image_ref: str):
        self.image_ref = image_ref
        super().__init__(
            f"Image tag {image_ref} already exists in the registry. "
            "Use a new build number or set TAG_CONFLICT_POLICY=overwrite."
        )


class RepositoryProvisionError(RegistryError):
    """Raised when the target repository cannot be created."""

    def __init__(
        self,
        repository: str,
        reason: str,
        status_code: Optional[int] = None,
    ):
        self.repository = repository
        self.reason = reason
        self.status_code = status_code
        status = f" (status={status_code})" if status_code is not None else ""
        super().__init__(f"Failed to create repository '{repository}'{status}: {reason}")

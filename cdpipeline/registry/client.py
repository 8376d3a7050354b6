"""RegistryClient - queries the image registry through the docker CLI."""

import logging
from typing import Optional

from cdpipeline.commands import Command
from cdpipeline.commands.models import NOT_FOUND_EXIT_CODE
from cdpipeline.contexts import ExecutionContext
from cdpipeline.credentials import UsernamePassword

from .auth import registry_auth_config
from .exceptions import RegistryError, TagConflictError
from .models import ImageReference, TagConflictPolicy

logger = logging.getLogger(__name__)

# docker manifest inspect exits 1 with one of these when the tag does not exist
MISSING_MANIFEST_EXIT_CODE = 1
MISSING_MANIFEST_MARKERS = ("no such manifest", "manifest unknown")


class RegistryClient:
    """Checks whether a tag already exists before it is pushed."""

    def __init__(self, context: ExecutionContext, docker: str = "docker", timeout: float = 60.0):
        """Initialize the client.

        Args:
            context: Execution context the docker CLI runs in.
            docker: Name or path of the docker CLI.
            timeout: Seconds before a registry query is abandoned.
        """
        self._context = context
        self._docker = docker
        self._timeout = timeout

    def tag_exists(
        self, image_ref: ImageReference, credentials: Optional[UsernamePassword] = None
    ) -> bool:
        """Return True if the registry already has a manifest for this tag.

        Raises:
            RegistryError: If the registry could not be queried.
        """
        command = Command(
            [self._docker, "manifest", "inspect", str(image_ref)],
            description=f"check tag {image_ref}",
            timeout=self._timeout,
        )
        if credentials is None:
            result = self._context.run(command)
        else:
            with registry_auth_config(self._context.home, image_ref.registry, credentials) as config:
                command.env["DOCKER_CONFIG"] = self._context.env_path(config)
                result = self._context.run(command)

        if result.succeeded:
            return True
        if result.exit_code == NOT_FOUND_EXIT_CODE:
            raise RegistryError(
                f"Could not query the registry for {image_ref}: {self._docker} is not available",
                output=result.output,
            )
        stderr = result.stderr.lower()
        if result.exit_code == MISSING_MANIFEST_EXIT_CODE and any(
            marker in stderr for marker in MISSING_MANIFEST_MARKERS
        ):
            return False
        raise RegistryError(
            f"Could not determine whether {image_ref} exists (exit code {result.exit_code})",
            output=result.output,
        )

    def check_tag(
        self,
        image_ref: ImageReference,
        policy: TagConflictPolicy,
        credentials: Optional[UsernamePassword] = None,
    ) -> bool:
        """Apply the tag conflict policy to ``image_ref``.

        Returns:
            True if the tag already existed (only possible under OVERWRITE).

        Raises:
            TagConflictError: If the tag exists and the policy is FAIL.
            RegistryError: If the registry could not be queried under FAIL.
        """
        if policy is TagConflictPolicy.OVERWRITE:
            try:
                exists = self.tag_exists(image_ref, credentials)
            except RegistryError as e:
                logger.warning("Skipping tag check for %s: %s", image_ref, e)
                return False
            if exists:
                logger.warning("Tag %s already exists and will be overwritten", image_ref)
            return exists

        if self.tag_exists(image_ref, credentials):
            raise TagConflictError(str(image_ref))
        return False

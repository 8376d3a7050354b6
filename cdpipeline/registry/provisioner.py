"""ArtifactRegistryProvisioner - creates the target image repository if missing."""

import logging
from pathlib import Path
from typing import Optional

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError

from .exceptions import RepositoryProvisionError

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/cloud-platform",
]


class ArtifactRegistryProvisioner:
    """Ensures a Docker repository exists in Google Artifact Registry.

    Some registries reject pushes to repositories that were never created.
    Creating the repository is best-effort: the pipeline treats any error
    raised here as absorbed.

    Example usage:
        provisioner = ArtifactRegistryProvisioner(
            project="my-project", location="europe-west1",
            credentials_path=Path("/run/secrets/sa.json"),
        )
        created = provisioner.ensure_repository("nodejs")
    """

    def __init__(
        self,
        project: str,
        location: str,
        credentials_path: Optional[Path] = None,
        service: Optional[Resource] = None,
    ):
        """Initialize the provisioner.

        Args:
            project: Google Cloud project ID.
            location: Artifact Registry location (e.g. "europe-west1").
            credentials_path: Service account key file (materialized by a
                FileBinding for the stage's lifetime).
            service: Pre-built Artifact Registry API service (for testing).
                If provided, credentials_path is ignored.
        """
        self._project = project
        self._location = location
        self._credentials_path = credentials_path
        self._service = service

    def _get_service(self) -> Resource:
        """Get the Artifact Registry API service, creating it if needed."""
        if self._service is None:
            if self._credentials_path is None:
                raise RepositoryProvisionError("(any)", "no service account credentials")
            try:
                credentials = service_account.Credentials.from_service_account_file(
                    str(self._credentials_path), scopes=DEFAULT_SCOPES
                )
            except (OSError, ValueError) as e:
                raise RepositoryProvisionError("(any)", f"invalid service account key: {e}") from e
            try:
                self._service = build(
                    "artifactregistry", "v1", credentials=credentials, cache_discovery=False
                )
            except (HttpError, GoogleAuthError, httplib2.HttpLib2Error, OSError) as e:
                raise RepositoryProvisionError("(any)", f"could not reach Artifact Registry: {e}") from e
        return self._service

    @property
    def parent(self) -> str:
        return f"projects/{self._project}/locations/{self._location}"

    def ensure_repository(self, repository: str) -> bool:
        """Create a Docker-format repository unless it already exists.

        Args:
            repository: Repository ID.

        Returns:
            True if the repository was created, False if it already existed.

        Raises:
            RepositoryProvisionError: If the API call fails for another reason.
        """
        service = self._get_service()
        try:
            service.projects().locations().repositories().create(
                parent=self.parent,
                repositoryId=repository,
                body={"format": "DOCKER"},
            ).execute()
        except HttpError as e:
            status_code = e.resp.status
            if status_code == 409:
                logger.info("Repository %s/%s already exists", self.parent, repository)
                return False
            reason = e.reason if hasattr(e, "reason") else str(e)
            logger.error(
                "Artifact Registry API error (status=%d): %s", status_code, reason
            )
            raise RepositoryProvisionError(repository, reason, status_code) from e
        except GoogleAuthError as e:
            raise RepositoryProvisionError(repository, f"authentication failed: {e}") from e
        except (httplib2.HttpLib2Error, OSError) as e:
            # OSError covers ConnectionError and socket timeouts
            raise RepositoryProvisionError(repository, f"request failed: {e}") from e

        logger.info("Created repository %s/repositories/%s", self.parent, repository)
        return True

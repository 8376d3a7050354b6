"""Secret store interfaces the credential scope manager reads from."""

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Mapping, Optional

from .exceptions import CredentialNotFoundError
from .models import UsernamePassword


class SecretStore(ABC):
    """Interface for looking up secret material by credential ID.

    Implementations can use different backends:
    - EnvSecretStore: Environment variables (and a .env file loaded by the CLI)
    - InMemorySecretStore: For testing
    """

    @abstractmethod
    def get_username_password(self, credential_id: str) -> UsernamePassword:
        """Look up a username/password credential.

        Raises:
            CredentialNotFoundError: If the credential does not exist.
        """
        pass

    @abstractmethod
    def get_secret_text(self, credential_id: str) -> str:
        """Look up a secret string credential.

        Raises:
            CredentialNotFoundError: If the credential does not exist.
        """
        pass

    @abstractmethod
    def get_file(self, credential_id: str) -> bytes:
        """Look up the contents of a secret file credential.

        Raises:
            CredentialNotFoundError: If the credential does not exist.
        """
        pass


def env_prefix(credential_id: str) -> str:
    """Environment variable prefix for a credential ID ("docker-hub" -> "DOCKER_HUB")."""
    return "".join(c if c.isalnum() else "_" for c in credential_id).upper()


class EnvSecretStore(SecretStore):
    """Reads credentials from environment variables.

    For a credential ID like ``registry``:
        REGISTRY_USERNAME / REGISTRY_PASSWORD  - username/password
        REGISTRY_SECRET                        - secret text
        REGISTRY_FILE                          - path of a secret file

    The store reads the environment it was given at construction; it never
    writes to it.
    """

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = dict(environ if environ is not None else os.environ)

    def get_username_password(self, credential_id: str) -> UsernamePassword:
        prefix = env_prefix(credential_id)
        username = self._environ.get(f"{prefix}_USERNAME")
        password = self._environ.get(f"{prefix}_PASSWORD")
        if not username or password is None:
            raise CredentialNotFoundError(
                credential_id,
                "username/password",
                f"set {prefix}_USERNAME and {prefix}_PASSWORD",
            )
        return UsernamePassword(username=username, password=password)

    def get_secret_text(self, credential_id: str) -> str:
        prefix = env_prefix(credential_id)
        value = self._environ.get(f"{prefix}_SECRET")
        if not value:
            raise CredentialNotFoundError(credential_id, "secret text", f"set {prefix}_SECRET")
        return value

    def get_file(self, credential_id: str) -> bytes:
        prefix = env_prefix(credential_id)
        location = self._environ.get(f"{prefix}_FILE")
        if not location:
            raise CredentialNotFoundError(credential_id, "file", f"set {prefix}_FILE")
        path = Path(location).expanduser()
        try:
            return path.read_bytes()
        except OSError as e:
            raise CredentialNotFoundError(
                credential_id, "file", f"cannot read {path}: {e.strerror or e}"
            ) from e


class InMemorySecretStore(SecretStore):
    """In-memory implementation for testing and local development."""

    def __init__(self) -> None:
        self._pairs: dict[str, UsernamePassword] = {}
        self._texts: dict[str, str] = {}
        self._files: dict[str, bytes] = {}

    def add_username_password(self, credential_id: str, username: str, password: str) -> None:
        self._pairs[credential_id] = UsernamePassword(username=username, password=password)

    def add_secret_text(self, credential_id: str, value: str) -> None:
        self._texts[credential_id] = value

    def add_file(self, credential_id: str, content: bytes) -> None:
        self._files[credential_id] = content

    def get_username_password(self, credential_id: str) -> UsernamePassword:
        if credential_id not in self._pairs:
            raise CredentialNotFoundError(credential_id, "username/password")
        return self._pairs[credential_id]

    def get_secret_text(self, credential_id: str) -> str:
        if credential_id not in self._texts:
            raise CredentialNotFoundError(credential_id, "secret text")
        return self._texts[credential_id]

    def get_file(self, credential_id: str) -> bytes:
        if credential_id not in self._files:
            raise CredentialNotFoundError(credential_id, "file")
        return self._files[credential_id]

"""Data models for credential bindings and secret material."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

# Owner read/write only
DEFAULT_FILE_MODE = 0o600


@dataclass(frozen=True)
class UsernamePassword:
    """A username/password pair. The password never appears in repr()."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class UsernamePasswordBinding:
    """Expose a username/password credential as two environment variables.

    Attributes:
        credential_id: Name of the credential in the secret store.
        username_variable: Variable receiving the username.
        password_variable: Variable receiving the password.
    """

    credential_id: str
    username_variable: str = "USERNAME"
    password_variable: str = "PASSWORD"


@dataclass(frozen=True)
class SecretTextBinding:
    """Expose a single secret string (e.g. an access token) as a variable."""

    credential_id: str
    variable: str


@dataclass(frozen=True)
class FileBinding:
    """Copy a secret file into the context at a declared path.

    Attributes:
        credential_id: Name of the credential in the secret store.
        path: Destination path. Relative paths resolve against the context's
            private home (e.g. ".kube/config").
        variable: Optional variable set to the file's location as seen from
            inside the context (e.g. KUBECONFIG).
        mode: File permissions; owner read/write only by default.
    """

    credential_id: str
    path: str
    variable: Optional[str] = None
    mode: int = DEFAULT_FILE_MODE


CredentialBinding = Union[UsernamePasswordBinding, SecretTextBinding, FileBinding]

# What a binding resolves to inside a scope: the pair, the text, or the
# host path of the materialized file.
SecretMaterial = Union[UsernamePassword, str, Path]


@dataclass
class Materialization:
    """Record of everything one binding put into a context.

    Used to undo the materialization when the scope ends.
    """

    binding: CredentialBinding
    env_names: list[str] = field(default_factory=list)
    files: list[Path] = field(default_factory=list)
    created_dirs: list[Path] = field(default_factory=list)
    secrets: list[str] = field(default_factory=list)

"""Exceptions for the credentials module."""

from cdpipeline.errors import PipelineError


class CredentialError(PipelineError):
    """Base exception for credential errors."""

    pass


class CredentialNotFoundError(CredentialError):
    """Raised when the secret store has no material for a credential."""

    def __init__(self, credential_id: str, kind: str, hint: str = ""):
        self.credential_id = credential_id
        self.kind = kind
        msg = f"No {kind} credential '{credential_id}' in secret store"
        if hint:
            msg += f" ({hint})"
        super().__init__(msg)


class CredentialNotInScopeError(CredentialError):
    """Raised when a stage asks for a credential it did not declare."""

    def __init__(self, credential_id: str):
        self.credential_id = credential_id
        super().__init__(f"Credential '{credential_id}' is not bound in the current scope")


class CredentialCleanupError(CredentialError):
    """Raised when materialized secret material could not be removed.

    Attributes:
        failures: One message per item that could not be removed.
    """

    def __init__(self, failures: list[str]):
        self.failures = failures
        super().__init__(
            f"Failed to remove {len(failures)} secret materialization(s): {failures}"
        )

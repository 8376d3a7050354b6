"""Credential scope manager.

Credentials are declared per stage as bindings and materialized into the
stage's execution context only while the stage runs.

Public API:
    - CredentialScopeManager: Scoped acquisition of bindings
    - ScopedCredentials: Material resolved for an active scope
    - UsernamePasswordBinding, SecretTextBinding, FileBinding: Binding kinds
    - UsernamePassword: A username/password pair
    - SecretStore: Interface for secret lookups
    - EnvSecretStore: Environment variable implementation
    - InMemorySecretStore: In-memory implementation
    - CredentialError: Base exception for credential errors
    - CredentialNotFoundError: No material for a credential
    - CredentialNotInScopeError: Credential not bound in the current scope
    - CredentialCleanupError: Material could not be removed
"""

from .exceptions import (
    CredentialCleanupError,
    CredentialError,
    CredentialNotFoundError,
    CredentialNotInScopeError,
)
from .models import (
    CredentialBinding,
    FileBinding,
    SecretTextBinding,
    UsernamePassword,
    UsernamePasswordBinding,
)
from .scope import CredentialScopeManager, ScopedCredentials
from .store import EnvSecretStore, InMemorySecretStore, SecretStore

__all__ = [
    "CredentialScopeManager",
    "ScopedCredentials",
    "CredentialBinding",
    "UsernamePasswordBinding",
    "SecretTextBinding",
    "FileBinding",
    "UsernamePassword",
    "SecretStore",
    "EnvSecretStore",
    "InMemorySecretStore",
    "CredentialError",
    "CredentialNotFoundError",
    "CredentialNotInScopeError",
    "CredentialCleanupError",
]

"""CredentialScopeManager - materializes secrets only for a stage's lifetime."""

import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

from cdpipeline.contexts import ExecutionContext
from cdpipeline.logging_config import SecretRedactionFilter, redactor as default_redactor

from .exceptions import CredentialCleanupError, CredentialError, CredentialNotInScopeError
from .models import (
    CredentialBinding,
    FileBinding,
    Materialization,
    SecretMaterial,
    SecretTextBinding,
    UsernamePassword,
    UsernamePasswordBinding,
)
from .store import SecretStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ScopedCredentials:
    """Secret material resolved for the bindings of one active scope."""

    def __init__(self, materials: dict[str, SecretMaterial]):
        self._materials = materials

    def __contains__(self, credential_id: str) -> bool:
        return credential_id in self._materials

    @property
    def ids(self) -> list[str]:
        return list(self._materials)

    def get(self, credential_id: str) -> SecretMaterial:
        """Return the material for a bound credential.

        Raises:
            CredentialNotInScopeError: If the scope did not bind it.
        """
        if credential_id not in self._materials:
            raise CredentialNotInScopeError(credential_id)
        return self._materials[credential_id]

    def username_password(self, credential_id: str) -> UsernamePassword:
        material = self.get(credential_id)
        if not isinstance(material, UsernamePassword):
            raise CredentialError(f"Credential '{credential_id}' is not a username/password")
        return material

    def file_path(self, credential_id: str) -> Path:
        material = self.get(credential_id)
        if not isinstance(material, Path):
            raise CredentialError(f"Credential '{credential_id}' is not a file binding")
        return material

    def secret_text(self, credential_id: str) -> str:
        material = self.get(credential_id)
        if not isinstance(material, str):
            raise CredentialError(f"Credential '{credential_id}' is not secret text")
        return material


class CredentialScopeManager:
    """Scoped acquisition of credential bindings.

    Each binding's secret is materialized into the execution context
    immediately before the scoped block runs and removed on every exit path
    (normal return, command failure, abort). Scope is enforced by binding
    lifetime: nothing is left in the context, its home, or the shared
    volumes once the block ends.

    Example usage:
        manager = CredentialScopeManager(EnvSecretStore())
        with manager.scope([FileBinding("kubeconfig", ".kube/config", "KUBECONFIG")], ctx):
            ctx.execute(Command(["kubectl", "get", "pods"]))
    """

    def __init__(self, store: SecretStore, redactor: Optional[SecretRedactionFilter] = None):
        """Initialize the manager.

        Args:
            store: Where secret material is looked up.
            redactor: Log filter that masks secret values while a scope is
                active. Defaults to the filter configure_logging() installs.
        """
        self._store = store
        self._redactor = redactor if redactor is not None else default_redactor
        self._active: dict[str, list[Materialization]] = {}

    def active_bindings(self, context: ExecutionContext) -> list[CredentialBinding]:
        """Bindings currently materialized into a context."""
        return [m.binding for m in self._active.get(context.identity, [])]

    @contextmanager
    def scope(
        self, bindings: list[CredentialBinding], context: ExecutionContext
    ) -> Iterator[ScopedCredentials]:
        """Materialize ``bindings`` into ``context`` for the duration of the block.

        Raises:
            CredentialNotFoundError: If a binding has no material; anything
                already materialized is removed first.
            CredentialCleanupError: If the block completed but some material
                could not be removed. When the block itself raised, cleanup
                failures are logged and the original exception propagates.
        """
        materialized: list[Materialization] = []
        materials: dict[str, SecretMaterial] = {}
        try:
            for binding in bindings:
                record, material = self._materialize(binding, context)
                materialized.append(record)
                materials[binding.credential_id] = material
        except BaseException:
            self._release_all(materialized, context)
            raise

        self._active[context.identity] = list(materialized)
        if bindings:
            logger.debug(
                "Bound %d credential(s) in context '%s': %s",
                len(bindings),
                context.identity,
                [b.credential_id for b in bindings],
            )

        try:
            yield ScopedCredentials(materials)
        except BaseException:
            failures = self._release_all(materialized, context)
            if failures:
                logger.error("Credential cleanup incomplete after failure: %s", failures)
            raise
        else:
            failures = self._release_all(materialized, context)
            if failures:
                raise CredentialCleanupError(failures)
        finally:
            self._active.pop(context.identity, None)

    def with_scope(
        self,
        bindings: list[CredentialBinding],
        context: ExecutionContext,
        fn: Callable[[ScopedCredentials], T],
    ) -> T:
        """Call ``fn`` inside a credential scope and return its result."""
        with self.scope(bindings, context) as credentials:
            return fn(credentials)

    def _materialize(
        self, binding: CredentialBinding, context: ExecutionContext
    ) -> tuple[Materialization, SecretMaterial]:
        record = Materialization(binding=binding)
        if isinstance(binding, UsernamePasswordBinding):
            pair = self._store.get_username_password(binding.credential_id)
            self._register_secret(record, pair.password)
            context.set_scoped_env(binding.username_variable, pair.username)
            record.env_names.append(binding.username_variable)
            context.set_scoped_env(binding.password_variable, pair.password)
            record.env_names.append(binding.password_variable)
            return record, pair

        if isinstance(binding, SecretTextBinding):
            text = self._store.get_secret_text(binding.credential_id)
            self._register_secret(record, text)
            context.set_scoped_env(binding.variable, text)
            record.env_names.append(binding.variable)
            return record, text

        if isinstance(binding, FileBinding):
            content = self._store.get_file(binding.credential_id)
            destination = Path(binding.path)
            if not destination.is_absolute():
                destination = context.home / destination
            if destination.exists():
                raise CredentialError(
                    f"Refusing to materialize '{binding.credential_id}': "
                    f"{destination} already exists"
                )
            record.created_dirs = _make_parents(destination.parent)
            try:
                _write_private_file(destination, content, binding.mode)
            except OSError:
                self._release(record, context)
                raise
            record.files.append(destination)
            if binding.variable:
                context.set_scoped_env(binding.variable, context.env_path(destination))
                record.env_names.append(binding.variable)
            return record, destination

        raise CredentialError(f"Unsupported credential binding: {binding!r}")

    def _register_secret(self, record: Materialization, secret: str) -> None:
        self._redactor.register(secret)
        record.secrets.append(secret)

    def _release_all(
        self, materialized: list[Materialization], context: ExecutionContext
    ) -> list[str]:
        failures: list[str] = []
        for record in reversed(materialized):
            failures.extend(self._release(record, context))
        return failures

    def _release(self, record: Materialization, context: ExecutionContext) -> list[str]:
        failures: list[str] = []
        for name in record.env_names:
            context.clear_scoped_env(name)
        for path in record.files:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                failures.append(f"{path}: {e.strerror or e}")
        for directory in reversed(record.created_dirs):
            try:
                directory.rmdir()
            except OSError:
                # Not secret material; a stage may have put other files there
                logger.debug("Leaving non-empty directory %s", directory)
        for secret in record.secrets:
            self._redactor.unregister(secret)
        record.env_names.clear()
        record.files.clear()
        record.created_dirs.clear()
        record.secrets.clear()
        return failures


def _make_parents(directory: Path) -> list[Path]:
    """Create ``directory`` and missing parents; return the ones created, outermost first."""
    missing: list[Path] = []
    current = directory
    while not current.exists():
        missing.append(current)
        current = current.parent
    for path in reversed(missing):
        path.mkdir(mode=0o700)
    return list(reversed(missing))


def _write_private_file(path: Path, content: bytes, mode: int) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
    try:
        os.fchmod(fd, mode)
        remaining = memoryview(content)
        while remaining:
            written = os.write(fd, remaining)
            remaining = remaining[written:]
    finally:
        os.close(fd)

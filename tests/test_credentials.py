"""Tests for scoped credential acquisition."""

import os
import stat
from unittest.mock import MagicMock, patch

import pytest

from cdpipeline.contexts import ContextPool, ContextTemplate
from cdpipeline.credentials import (
    CredentialError,
    CredentialNotFoundError,
    CredentialNotInScopeError,
    CredentialScopeManager,
    EnvSecretStore,
    FileBinding,
    InMemorySecretStore,
    SecretTextBinding,
    UsernamePassword,
    UsernamePasswordBinding,
)
from cdpipeline.credentials.scope import _write_private_file
from cdpipeline.credentials.store import env_prefix
from cdpipeline.logging_config import REDACTED, SecretRedactionFilter


@pytest.fixture
def store():
    store = InMemorySecretStore()
    store.add_username_password("docker-hub", "nocnex", "hunter2")
    store.add_secret_text("npm-token", "tok-123")
    store.add_file("kubeconfig", b"apiVersion: v1\nkind: Config\n")
    return store


@pytest.fixture
def redactor():
    return SecretRedactionFilter()


@pytest.fixture
def manager(store, redactor):
    return CredentialScopeManager(store, redactor=redactor)


@pytest.fixture
def context(tmp_path):
    pool = ContextPool(tmp_path / "run", [ContextTemplate("cluster")], runner=MagicMock())
    pool.prepare()
    return pool.acquire("cluster")


KUBECONFIG = FileBinding("kubeconfig", ".kube/config", variable="KUBECONFIG")
REGISTRY = UsernamePasswordBinding("docker-hub", "DOCKER_USER", "DOCKER_PASS")


class TestCredentialScopeManager:
    def test_username_password_exposed_only_inside_scope(self, manager, context):
        with manager.scope([REGISTRY], context) as creds:
            env = context.environment()
            assert env["DOCKER_USER"] == "nocnex"
            assert env["DOCKER_PASS"] == "hunter2"
            assert creds.username_password("docker-hub") == UsernamePassword("nocnex", "hunter2")
        env = context.environment()
        assert "DOCKER_USER" not in env
        assert "DOCKER_PASS" not in env

    def test_file_materialized_with_private_mode(self, manager, context):
        with manager.scope([KUBECONFIG], context) as creds:
            path = creds.file_path("kubeconfig")
            assert path == context.home / ".kube" / "config"
            assert path.read_bytes().startswith(b"apiVersion")
            assert stat.S_IMODE(path.stat().st_mode) == 0o600
            assert context.environment()["KUBECONFIG"] == str(path)
        assert not path.exists()
        assert not (context.home / ".kube").exists()
        assert "KUBECONFIG" not in context.environment()

    def test_secret_text(self, manager, context):
        with manager.scope([SecretTextBinding("npm-token", "NPM_TOKEN")], context) as creds:
            assert creds.secret_text("npm-token") == "tok-123"
            assert context.environment()["NPM_TOKEN"] == "tok-123"

    def test_removed_when_block_raises(self, manager, context):
        with pytest.raises(RuntimeError):
            with manager.scope([KUBECONFIG, REGISTRY], context):
                raise RuntimeError("kubectl failed")
        assert not (context.home / ".kube" / "config").exists()
        assert "DOCKER_PASS" not in context.environment()
        assert manager.active_bindings(context) == []

    def test_removed_on_keyboard_interrupt(self, manager, context):
        with pytest.raises(KeyboardInterrupt):
            with manager.scope([KUBECONFIG], context):
                raise KeyboardInterrupt
        assert not (context.home / ".kube" / "config").exists()

    def test_missing_credential_rolls_back_earlier_bindings(self, manager, context):
        with pytest.raises(CredentialNotFoundError):
            with manager.scope([KUBECONFIG, UsernamePasswordBinding("gcr")], context):
                pytest.fail("block must not run")
        assert not (context.home / ".kube" / "config").exists()

    def test_unbound_credential_not_available(self, manager, context):
        with manager.scope([REGISTRY], context) as creds:
            with pytest.raises(CredentialNotInScopeError):
                creds.file_path("kubeconfig")

    def test_wrong_kind_rejected(self, manager, context):
        with manager.scope([REGISTRY], context) as creds:
            with pytest.raises(CredentialError):
                creds.file_path("docker-hub")

    def test_active_bindings(self, manager, context):
        with manager.scope([REGISTRY], context):
            assert manager.active_bindings(context) == [REGISTRY]
        assert manager.active_bindings(context) == []

    def test_secrets_redacted_only_while_scoped(self, manager, context, redactor):
        with manager.scope([REGISTRY], context):
            assert redactor.redact("password=hunter2") == f"password={REDACTED}"
        assert redactor.redact("password=hunter2") == "password=hunter2"

    def test_refuses_to_overwrite_existing_file(self, manager, context):
        existing = context.home / "config"
        existing.write_text("mine")
        with pytest.raises(CredentialError, match="already exists"):
            with manager.scope([FileBinding("kubeconfig", "config")], context):
                pass
        assert existing.read_text() == "mine"

    def test_with_scope_returns_value(self, manager, context):
        result = manager.with_scope(
            [REGISTRY], context, lambda creds: creds.username_password("docker-hub").username
        )
        assert result == "nocnex"


class TestWritePrivateFile:
    def test_short_writes_are_completed(self, tmp_path):
        real_write = os.write
        content = b"apiVersion: v1\nkind: Config\nclusters: []\n"
        path = tmp_path / "kubeconfig"

        with patch(
            "cdpipeline.credentials.scope.os.write",
            side_effect=lambda fd, data: real_write(fd, bytes(data[:4])),
        ) as mock_write:
            _write_private_file(path, content, 0o600)

        assert path.read_bytes() == content
        assert mock_write.call_count > 1
        assert stat.S_IMODE(path.stat().st_mode) == 0o600


class TestEnvSecretStore:
    def test_env_prefix(self):
        assert env_prefix("docker-hub") == "DOCKER_HUB"
        assert env_prefix("gcp.sa") == "GCP_SA"

    def test_username_password(self):
        store = EnvSecretStore({"DOCKER_HUB_USERNAME": "u", "DOCKER_HUB_PASSWORD": "p"})
        assert store.get_username_password("docker-hub") == UsernamePassword("u", "p")

    def test_missing_username_password_hints_variables(self):
        with pytest.raises(CredentialNotFoundError, match="DOCKER_HUB_USERNAME"):
            EnvSecretStore({}).get_username_password("docker-hub")

    def test_file_read_from_path(self, tmp_path):
        secret = tmp_path / "kubeconfig"
        secret.write_bytes(b"config")
        store = EnvSecretStore({"KUBECONFIG_FILE": str(secret)})
        assert store.get_file("kubeconfig") == b"config"

    def test_unreadable_file(self, tmp_path):
        store = EnvSecretStore({"KUBECONFIG_FILE": str(tmp_path / "missing")})
        with pytest.raises(CredentialNotFoundError, match="cannot read"):
            store.get_file("kubeconfig")

    def test_secret_text(self):
        assert EnvSecretStore({"NPM_TOKEN_SECRET": "x"}).get_secret_text("npm-token") == "x"

    def test_password_hidden_from_repr(self):
        assert "hunter2" not in repr(UsernamePassword("u", "hunter2"))

"""PipelineConfig - explicit configuration for one pipeline run."""

import dataclasses
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from cdpipeline.errors import ConfigError
from cdpipeline.registry import ImageReference, TagConflictPolicy

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off", "")


def _parse_bool(key: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise ConfigError(key, f"expected a boolean, got '{value}'")


def _parse_positive_float(key: str, value: str) -> float:
    try:
        parsed = float(value)
    except ValueError:
        raise ConfigError(key, f"expected a number, got '{value}'") from None
    if parsed <= 0:
        raise ConfigError(key, f"must be positive, got {value}")
    return parsed


def _parse_positive_int(key: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError:
        raise ConfigError(key, f"expected an integer, got '{value}'") from None
    if parsed <= 0:
        raise ConfigError(key, f"must be positive, got {value}")
    return parsed


def _parse_tag_policy(key: str, value: str) -> TagConflictPolicy:
    try:
        return TagConflictPolicy(value.strip().lower())
    except ValueError:
        choices = ", ".join(p.value for p in TagConflictPolicy)
        raise ConfigError(key, f"expected one of {choices}, got '{value}'") from None


@dataclass
class PipelineConfig:
    """Everything one run needs, passed explicitly to the executor.

    Attributes:
        repo_url: Application repository to clone.
        source_path: Local source directory used instead of cloning.
        branch: Branch to check out.
        registry: Registry host images are pushed to.
        image_name: Repository of the image within the registry.
        build_number: Monotonic run identifier; also the image tag.
        work_root: Directory holding every run's volumes and context homes.
        namespace: Cluster namespace the application is deployed to.
        manifest_path: Templated Deployment + Service manifest. When unset
            the built-in descriptor is used.
        registry_credential_id: Username/password credential for the registry.
        kubeconfig_credential_id: File credential holding the kubeconfig.
        gcp_credential_id: File credential holding a service account key.
        tag_conflict_policy: What to do when the tag already exists.
        check_tag: Whether to query the registry for the tag before building.
        create_repository: Create the Artifact Registry repository first.
        gcp_project: Project of the Artifact Registry repository.
        gcp_location: Location of the Artifact Registry repository.
        install_command: Installs the application's dependencies.
        test_command: Runs the application's tests.
        absorb_test_failures: Whether a failing test command is tolerated.
        rollout_timeout: Seconds to wait for the rollout to converge.
        rollout_poll_interval: Seconds between rollout status reads.
        builder_ready_timeout: Upper bound on the build daemon readiness wait.
        build_timeout: Seconds before the build request is killed.
        context_launcher: "local" or "docker".
        source_image: Image of the source-tooling context.
        builder_image: Image of the image-builder context.
        cluster_image: Image of the cluster-client context.
        diagnostics_tail_lines: Log lines per pod in failure diagnostics.
        diagnostics_events_limit: Events kept in failure diagnostics.
        passthrough_env: Extra host variables every context inherits.
    """

    repo_url: Optional[str] = None
    source_path: Optional[Path] = None
    branch: str = "main"
    registry: str = "docker.io"
    image_name: str = "nocnex/nodejs"
    build_number: str = dataclasses.field(default_factory=lambda: str(int(time.time())))
    work_root: Path = Path(".pipeline")
    namespace: str = "default"
    manifest_path: Optional[Path] = None
    registry_credential_id: str = "docker-hub"
    kubeconfig_credential_id: str = "kubeconfig"
    gcp_credential_id: str = "gcp-service-account"
    tag_conflict_policy: TagConflictPolicy = TagConflictPolicy.FAIL
    check_tag: bool = True
    create_repository: bool = False
    gcp_project: Optional[str] = None
    gcp_location: str = "us-central1"
    install_command: str = "npm install"
    test_command: str = "npm test"
    absorb_test_failures: bool = True
    rollout_timeout: float = 120.0
    rollout_poll_interval: float = 5.0
    builder_ready_timeout: float = 60.0
    build_timeout: Optional[float] = None
    context_launcher: str = "local"
    source_image: str = "node:18-alpine"
    builder_image: str = "moby/buildkit:latest"
    cluster_image: str = "bitnami/kubectl:latest"
    diagnostics_tail_lines: int = 50
    diagnostics_events_limit: int = 20
    passthrough_env: tuple[str, ...] = ()

    @property
    def image_ref(self) -> ImageReference:
        """Reference of the image this run builds, tagged with the build number."""
        return ImageReference(registry=self.registry, repository=self.image_name, tag=self.build_number)

    @property
    def run_root(self) -> Path:
        """Absolute directory owned by this run alone."""
        return (Path(self.work_root) / f"run-{self.build_number}").absolute()

    def validate(self) -> None:
        """Check cross-field requirements.

        Raises:
            ConfigError: If the configuration cannot drive a run.
        """
        if not self.repo_url and not self.source_path:
            raise ConfigError("REPO_URL", "a repository URL or SOURCE_PATH is required")
        if not self.build_number or "/" in self.build_number:
            raise ConfigError("BUILD_NUMBER", f"invalid build number '{self.build_number}'")
        if self.create_repository and not self.gcp_project:
            raise ConfigError("GCP_PROJECT", "required when CREATE_REPOSITORY is enabled")
        if self.context_launcher not in ("local", "docker"):
            raise ConfigError("CONTEXT_LAUNCHER", f"expected 'local' or 'docker', got '{self.context_launcher}'")

    def replace(self, **changes: Any) -> "PipelineConfig":
        """Return a copy with ``changes`` applied (None values are ignored)."""
        return dataclasses.replace(self, **{k: v for k, v in changes.items() if v is not None})

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        """Build a config from environment variables.

        Unset variables keep their defaults.

        Raises:
            ConfigError: If a variable holds an invalid value.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        text_keys = {
            "REPO_URL": "repo_url",
            "BRANCH": "branch",
            "REGISTRY": "registry",
            "IMAGE_NAME": "image_name",
            "BUILD_NUMBER": "build_number",
            "NAMESPACE": "namespace",
            "REGISTRY_CREDENTIAL_ID": "registry_credential_id",
            "KUBECONFIG_CREDENTIAL_ID": "kubeconfig_credential_id",
            "GCP_CREDENTIAL_ID": "gcp_credential_id",
            "GCP_PROJECT": "gcp_project",
            "GCP_LOCATION": "gcp_location",
            "INSTALL_COMMAND": "install_command",
            "TEST_COMMAND": "test_command",
            "CONTEXT_LAUNCHER": "context_launcher",
            "SOURCE_IMAGE": "source_image",
            "BUILDER_IMAGE": "builder_image",
            "CLUSTER_IMAGE": "cluster_image",
        }
        for key, attr in text_keys.items():
            if env.get(key):
                values[attr] = env[key]

        for key, attr in {"SOURCE_PATH": "source_path", "WORK_ROOT": "work_root", "MANIFEST_PATH": "manifest_path"}.items():
            if env.get(key):
                values[attr] = Path(env[key])

        for key, attr in {
            "ROLLOUT_TIMEOUT": "rollout_timeout",
            "ROLLOUT_POLL_INTERVAL": "rollout_poll_interval",
            "BUILDER_READY_TIMEOUT": "builder_ready_timeout",
            "BUILD_TIMEOUT": "build_timeout",
        }.items():
            if env.get(key):
                values[attr] = _parse_positive_float(key, env[key])

        for key, attr in {
            "DIAGNOSTICS_TAIL_LINES": "diagnostics_tail_lines",
            "DIAGNOSTICS_EVENTS_LIMIT": "diagnostics_events_limit",
        }.items():
            if env.get(key):
                values[attr] = _parse_positive_int(key, env[key])

        for key, attr in {
            "CHECK_TAG": "check_tag",
            "CREATE_REPOSITORY": "create_repository",
            "ABSORB_TEST_FAILURES": "absorb_test_failures",
        }.items():
            if key in env:
                values[attr] = _parse_bool(key, env[key])

        if env.get("TAG_CONFLICT_POLICY"):
            values["tag_conflict_policy"] = _parse_tag_policy("TAG_CONFLICT_POLICY", env["TAG_CONFLICT_POLICY"])
        if env.get("PASSTHROUGH_ENV"):
            values["passthrough_env"] = tuple(
                name.strip() for name in env["PASSTHROUGH_ENV"].split(",") if name.strip()
            )

        return cls(**values)

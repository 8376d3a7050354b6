"""DeliveryPipeline - connects the components into the standard five-stage run."""

import logging
import time
from typing import Callable, Optional

from cdpipeline.builder import ImageBuilderCoordinator
from cdpipeline.cache import BuildCacheStore
from cdpipeline.cluster import ClusterReconciler, DeploymentDescriptor, DescriptorError
from cdpipeline.commands import AbortSignal, Command, CommandRunner, ErrorPolicy
from cdpipeline.config import PipelineConfig
from cdpipeline.contexts import BUILD_CACHE, WORKSPACE, ContextPool, ContextTemplate, make_launcher
from cdpipeline.credentials import (
    CredentialError,
    CredentialScopeManager,
    EnvSecretStore,
    FileBinding,
    SecretStore,
    UsernamePasswordBinding,
)
from cdpipeline.diagnostics import DiagnosticsCollector, format_blocks
from cdpipeline.registry import ArtifactRegistryProvisioner, RegistryClient, RegistryError
from cdpipeline.source import GitSourceProvider

from .executor import PipelineExecutor
from .hooks import ALWAYS, FAILURE, SUCCESS, PostHooks
from .models import PipelineRun
from .stage import Stage, StageContext

logger = logging.getLogger(__name__)

# Execution context identities
SOURCE_CONTEXT = "source"
BUILDER_CONTEXT = "builder"
CLUSTER_CONTEXT = "cluster"

# Where the application source is checked out, relative to the workspace volume
SOURCE_DIR = "source"

# Where the kubeconfig is materialized, relative to the context home
KUBECONFIG_PATH = ".kube/config"
SERVICE_ACCOUNT_PATH = ".config/gcloud/service-account.json"


def repository_id(image_name: str) -> str:
    """Repository ID an image lives in (``project/repo/image`` -> ``repo``)."""
    parts = image_name.split("/")
    return parts[-2] if len(parts) >= 2 else parts[0]


class DeliveryPipeline:
    """Checkout, install and test, build and push, deploy, verify rollout.

    Wires the context pool, credential scopes, build cache, builder,
    reconciler and diagnostics collector into a PipelineExecutor with the
    standard post hooks:

        always:  purge the build cache
        success: log a summary
        failure: emit the failing stage's output, then cluster diagnostics

    Example:
        pipeline = DeliveryPipeline(PipelineConfig.from_env())
        run = pipeline.run()
        print(run.status)
    """

    def __init__(
        self,
        config: PipelineConfig,
        secret_store: Optional[SecretStore] = None,
        abort: Optional[AbortSignal] = None,
        pool: Optional[ContextPool] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Optional[Callable[[float], object]] = None,
    ):
        self._config = config
        self._secret_store = secret_store
        self._abort = abort or AbortSignal()
        self._pool = pool
        self._clock = clock
        # abort.wait() returns as soon as the run is aborted
        self._sleep = sleep or self._abort.wait
        self._credentials: Optional[CredentialScopeManager] = None
        self._cache: Optional[BuildCacheStore] = None
        self._source_provider: Optional[GitSourceProvider] = None
        self._descriptor: Optional[DeploymentDescriptor] = None

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def abort_signal(self) -> AbortSignal:
        return self._abort

    # -- lazily created collaborators ---------------------------------------

    def context_templates(self) -> list[ContextTemplate]:
        config = self._config
        return [
            ContextTemplate(SOURCE_CONTEXT, image=config.source_image),
            ContextTemplate(BUILDER_CONTEXT, image=config.builder_image, privileged=True),
            ContextTemplate(CLUSTER_CONTEXT, image=config.cluster_image, volumes=(WORKSPACE,)),
        ]

    def _get_pool(self) -> ContextPool:
        if self._pool is None:
            self._pool = ContextPool(
                run_root=self._config.run_root,
                templates=self.context_templates(),
                runner=CommandRunner(abort=self._abort),
                launcher=make_launcher(self._config.context_launcher),
                passthrough_env=self._config.passthrough_env,
            )
        return self._pool

    def _get_credentials(self) -> CredentialScopeManager:
        if self._credentials is None:
            self._credentials = CredentialScopeManager(self._secret_store or EnvSecretStore())
        return self._credentials

    def _get_cache(self) -> BuildCacheStore:
        if self._cache is None:
            self._cache = BuildCacheStore(self._get_pool().volume_path(BUILD_CACHE) / "buildkit")
        return self._cache

    def _get_source_provider(self) -> GitSourceProvider:
        if self._source_provider is None:
            self._source_provider = GitSourceProvider(default_branch=self._config.branch)
        return self._source_provider

    def _get_descriptor(self) -> DeploymentDescriptor:
        if self._descriptor is None:
            config = self._config
            image = str(config.image_ref)
            if config.manifest_path:
                descriptor = DeploymentDescriptor.load(config.manifest_path, config.build_number)
                if descriptor.image != image:
                    logger.warning(
                        "Manifest image %s does not match the built image; deploying %s",
                        descriptor.image,
                        image,
                    )
                    descriptor = descriptor.with_image(image)
            else:
                descriptor = DeploymentDescriptor(image=image, namespace=config.namespace)
            self._descriptor = descriptor
        return self._descriptor

    def _get_builder(self, stage: StageContext) -> ImageBuilderCoordinator:
        return ImageBuilderCoordinator(
            stage.context,
            ready_timeout=self._config.builder_ready_timeout,
            build_timeout=self._config.build_timeout,
            clock=self._clock,
            sleep=self._sleep,
        )

    def _get_reconciler(self, stage: StageContext) -> ClusterReconciler:
        return ClusterReconciler(
            stage.context,
            poll_interval=self._config.rollout_poll_interval,
            clock=self._clock,
            sleep=self._sleep,
        )

    def _kubeconfig_binding(self) -> FileBinding:
        return FileBinding(self._config.kubeconfig_credential_id, KUBECONFIG_PATH, "KUBECONFIG")

    # -- stage actions ------------------------------------------------------

    def _checkout(self, stage: StageContext) -> None:
        config = self._config
        dest = stage.context.workspace / SOURCE_DIR
        provider = self._get_source_provider()
        if config.source_path:
            tree = provider.from_local_path(config.source_path, dest)
        else:
            tree = provider.checkout(config.repo_url, config.branch, dest)
        stage.state["source"] = tree
        stage.details.update(tree.to_dict())

    def _ensure_repository(self, stage: StageContext) -> None:
        config = self._config
        repository = repository_id(config.image_name)
        try:
            provisioner = ArtifactRegistryProvisioner(
                project=config.gcp_project,
                location=config.gcp_location,
                credentials_path=stage.credentials.file_path(config.gcp_credential_id),
            )
            stage.details["repository_created"] = provisioner.ensure_repository(repository)
        except (RegistryError, CredentialError) as e:
            logger.warning("Repository creation failed, continuing: %s", e)
            stage.details["repository_error"] = str(e)

    def _build_and_push(self, stage: StageContext) -> None:
        config = self._config
        image_ref = config.image_ref
        registry_credentials = stage.credentials.username_password(config.registry_credential_id)

        if config.create_repository:
            self._ensure_repository(stage)
        if config.check_tag:
            client = RegistryClient(stage.context)
            stage.details["tag_existed"] = client.check_tag(
                image_ref, config.tag_conflict_policy, registry_credentials
            )

        tree = stage.state.get("source")
        source = tree.path if tree is not None else stage.context.workspace / SOURCE_DIR
        result = self._get_builder(stage).build_and_push(
            source, image_ref, registry_credentials, self._get_cache()
        )
        stage.state["build"] = result
        stage.details.update(result.to_dict())

    def _deploy(self, stage: StageContext) -> None:
        descriptor = self._get_descriptor()
        result = self._get_reconciler(stage).apply(descriptor)
        stage.details.update(
            {"deployment": descriptor.name, "image": descriptor.image, "changed": result.changed}
        )

    def _verify_rollout(self, stage: StageContext) -> None:
        descriptor = self._get_descriptor()
        result = self._get_reconciler(stage).verify_rollout(
            descriptor.name,
            descriptor.namespace,
            timeout=self._config.rollout_timeout,
            selector=descriptor.selector,
        )
        stage.details.update(result.to_dict())

    def build_stages(self) -> list[Stage]:
        """The five standard stages, in order."""
        config = self._config
        test_policy = ErrorPolicy.ABSORBED if config.absorb_test_failures else ErrorPolicy.FATAL
        if config.absorb_test_failures:
            logger.warning(
                "Test failures will not fail the run (ABSORB_TEST_FAILURES is enabled)"
            )

        build_bindings = [
            UsernamePasswordBinding(
                config.registry_credential_id, "REGISTRY_USERNAME", "REGISTRY_PASSWORD"
            )
        ]
        if config.create_repository:
            build_bindings.append(
                FileBinding(
                    config.gcp_credential_id,
                    SERVICE_ACCOUNT_PATH,
                    "GOOGLE_APPLICATION_CREDENTIALS",
                )
            )

        return [
            Stage("checkout", SOURCE_CONTEXT, action=self._checkout),
            Stage(
                "install_and_test",
                SOURCE_CONTEXT,
                commands=[
                    Command(config.install_command, description="install dependencies", workdir=SOURCE_DIR),
                    Command(
                        config.test_command,
                        policy=test_policy,
                        description="run tests",
                        workdir=SOURCE_DIR,
                    ),
                ],
            ),
            Stage("build_and_push", BUILDER_CONTEXT, bindings=build_bindings, action=self._build_and_push),
            Stage("deploy", CLUSTER_CONTEXT, bindings=[self._kubeconfig_binding()], action=self._deploy),
            Stage(
                "verify_rollout",
                CLUSTER_CONTEXT,
                bindings=[self._kubeconfig_binding()],
                action=self._verify_rollout,
            ),
        ]

    # -- post hooks ---------------------------------------------------------

    def _purge_cache(self, run: PipelineRun) -> None:
        if not self._get_cache().purge():
            logger.warning("Build cache purge incomplete for run %s", run.build_number)

    def _report_failure(self, run: PipelineRun) -> None:
        failed = run.failed_stage
        if failed is None:
            text = f"Run {run.build_number} failed: {run.error or 'unknown error'}"
        else:
            text = f"Stage '{failed.name}' failed: {failed.error}"
            if failed.output:
                text += f"\n{failed.output.rstrip()}"
        logger.error("%s", text)
        run.add_report(text)

    def _collect_diagnostics(self, run: PipelineRun) -> None:
        context = self._get_pool().acquire(CLUSTER_CONTEXT)
        collector = DiagnosticsCollector(
            context,
            tail_lines=self._config.diagnostics_tail_lines,
            events_limit=self._config.diagnostics_events_limit,
        )
        try:
            descriptor = self._get_descriptor()
        except DescriptorError as e:
            logger.warning("Deployment manifest unusable for diagnostics: %s", e)
            descriptor = DeploymentDescriptor(
                image=str(self._config.image_ref), namespace=self._config.namespace
            )
            blocks = collector.unavailable(
                f"deployment manifest unusable: {e}",
                descriptor.selector,
                descriptor.namespace,
                descriptor.name,
            )
        else:
            try:
                with self._get_credentials().scope([self._kubeconfig_binding()], context):
                    blocks = collector.collect(
                        descriptor.selector, descriptor.namespace, descriptor.name
                    )
            except CredentialError as e:
                logger.warning("Cluster credentials unavailable for diagnostics: %s", e)
                blocks = collector.unavailable(
                    f"cluster credentials unavailable: {e}",
                    descriptor.selector,
                    descriptor.namespace,
                    descriptor.name,
                )
        text = format_blocks(blocks)
        logger.error("Diagnostics for run %s:\n%s", run.build_number, text)
        run.add_report(text)

    def _log_summary(self, run: PipelineRun) -> None:
        build = next((s for s in run.stages if s.name == "build_and_push"), None)
        digest = build.details.get("digest") if build else None
        logger.info(
            "Run %s delivered %s (%s) in %d stages",
            run.build_number,
            self._config.image_ref,
            digest or "digest unknown",
            len(run.stages),
        )

    def build_hooks(self) -> PostHooks:
        hooks = PostHooks()
        hooks.add(ALWAYS, "purge_build_cache", self._purge_cache)
        hooks.add(SUCCESS, "summary", self._log_summary)
        hooks.add(FAILURE, "failure_output", self._report_failure)
        hooks.add(FAILURE, "diagnostics", self._collect_diagnostics)
        return hooks

    def plan(self) -> list[str]:
        """Printable plan of the run without executing anything."""
        lines = [f"Run {self._config.build_number}: {self._config.image_ref}"]
        for stage in self.build_stages():
            lines.extend(stage.describe())
        return lines

    def run(self) -> PipelineRun:
        """Validate the configuration and execute the pipeline.

        Raises:
            ConfigError: If the configuration cannot drive a run.
        """
        self._config.validate()
        executor = PipelineExecutor(
            config=self._config,
            pool=self._get_pool(),
            credentials=self._get_credentials(),
            hooks=self.build_hooks(),
            abort=self._abort,
        )
        return executor.run(self.build_stages())

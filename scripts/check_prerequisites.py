#!/usr/bin/env python3
"""Local pre-flight check for run_pipeline.py.

Validates that the tools and credentials a run needs are present before
printing the stage plan with --dry-run.

Run from project root:
    python scripts/check_prerequisites.py
"""

import shutil
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent

sys.path.insert(0, str(PROJECT_ROOT))
from dotenv import load_dotenv

load_dotenv(PROJECT_ROOT / ".env")

from cdpipeline.config import PipelineConfig  # noqa: E402
from cdpipeline.credentials import CredentialError, EnvSecretStore  # noqa: E402
from cdpipeline.credentials.store import env_prefix  # noqa: E402
from cdpipeline.errors import ConfigError  # noqa: E402

LOCAL_TOOLS = ["git", "npm", "buildctl", "buildkitd", "docker", "kubectl"]
CONTAINER_TOOLS = ["docker"]


def check_prerequisites(config: PipelineConfig) -> list[str]:
    errors = []

    tools = CONTAINER_TOOLS if config.context_launcher == "docker" else LOCAL_TOOLS
    for tool in tools:
        if shutil.which(tool) is None:
            errors.append(f"Missing executable on PATH: {tool}")

    store = EnvSecretStore()
    try:
        store.get_username_password(config.registry_credential_id)
    except CredentialError as e:
        errors.append(str(e))
    try:
        store.get_file(config.kubeconfig_credential_id)
    except CredentialError as e:
        errors.append(str(e))
    if config.create_repository:
        try:
            store.get_file(config.gcp_credential_id)
        except CredentialError as e:
            errors.append(str(e))

    return errors


def main() -> int:
    print("Checking prerequisites ...\n")
    try:
        config = PipelineConfig.from_env()
        config.validate()
    except ConfigError as e:
        print(f"  ✗ {e}")
        return 1

    errors = check_prerequisites(config)
    if errors:
        for err in errors:
            print(f"  ✗ {err}")
        print(
            "\nSetup instructions:"
            "\n  1. Set REPO_URL (or SOURCE_PATH), REGISTRY and IMAGE_NAME in .env"
            f"\n  2. Set {env_prefix(config.registry_credential_id)}_USERNAME"
            " and _PASSWORD for the registry"
            f"\n  3. Point {env_prefix(config.kubeconfig_credential_id)}_FILE"
            " at a kubeconfig"
        )
        return 1

    print(f"  ✓ context launcher: {config.context_launcher}")
    print(f"  ✓ image: {config.image_ref}")
    print("\nAll prerequisites met. Stage plan:\n")
    completed = subprocess.run(
        [sys.executable, str(PROJECT_ROOT / "run_pipeline.py"), "--dry-run"],
        cwd=PROJECT_ROOT,
    )
    return completed.returncode


if __name__ == "__main__":
    sys.exit(main())

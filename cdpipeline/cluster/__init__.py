"""Deployment descriptor and cluster reconciler.

Public API:
    - DeploymentDescriptor: Deployment + Service desired state (YAML in and out)
    - ResourceSpec / ProbeSpec: Container resources and HTTP probes
    - ClusterReconciler: apply() and wait_for_rollout() through kubectl
    - ApplyResult, RolloutObservation, RolloutOutcome, RolloutResult: Models
    - ClusterError: Base exception for cluster errors
    - DescriptorError, ClusterCommandError: Bad descriptor, failed client call
    - RolloutError, RolloutTimeoutError, RolloutFailedError: Rollout did not converge
"""

from .descriptor import DeploymentDescriptor, ProbeSpec, ResourceSpec
from .exceptions import (
    ClusterCommandError,
    ClusterError,
    DescriptorError,
    RolloutError,
    RolloutFailedError,
    RolloutTimeoutError,
)
from .models import ApplyResult, RolloutObservation, RolloutOutcome, RolloutResult
from .reconciler import ClusterReconciler

__all__ = [
    "DeploymentDescriptor",
    "ResourceSpec",
    "ProbeSpec",
    "ClusterReconciler",
    "ApplyResult",
    "RolloutObservation",
    "RolloutOutcome",
    "RolloutResult",
    "ClusterError",
    "DescriptorError",
    "ClusterCommandError",
    "RolloutError",
    "RolloutTimeoutError",
    "RolloutFailedError",
]

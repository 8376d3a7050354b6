"""DeploymentDescriptor - desired state for the deployed application."""

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from string import Template
from typing import Any, Optional

import yaml

from .exceptions import DescriptorError

logger = logging.getLogger(__name__)

# Placeholder substituted with the run tag in templated manifests
BUILD_TAG_VARIABLE = "BUILD_TAG"


@dataclass
class ResourceSpec:
    """Container resource requests and limits."""

    requests_memory: str = "256Mi"
    requests_cpu: str = "100m"
    limits_memory: str = "512Mi"
    limits_cpu: str = "500m"

    def to_manifest(self) -> dict[str, Any]:
        return {
            "limits": {"memory": self.limits_memory, "cpu": self.limits_cpu},
            "requests": {"memory": self.requests_memory, "cpu": self.requests_cpu},
        }

    @classmethod
    def from_manifest(cls, data: dict[str, Any]) -> "ResourceSpec":
        limits = data.get("limits", {})
        requests = data.get("requests", {})
        default = cls()
        return cls(
            requests_memory=str(requests.get("memory", default.requests_memory)),
            requests_cpu=str(requests.get("cpu", default.requests_cpu)),
            limits_memory=str(limits.get("memory", default.limits_memory)),
            limits_cpu=str(limits.get("cpu", default.limits_cpu)),
        )


@dataclass
class ProbeSpec:
    """HTTP readiness or liveness probe.

    Attributes:
        path: HTTP path probed.
        port: Port probed; None means the container port.
        initial_delay_seconds: Delay before the first probe.
        period_seconds: Interval between probes.
    """

    path: str
    port: Optional[int] = None
    initial_delay_seconds: int = 5
    period_seconds: int = 10

    def to_manifest(self, container_port: int) -> dict[str, Any]:
        return {
            "httpGet": {"path": self.path, "port": self.port or container_port},
            "initialDelaySeconds": self.initial_delay_seconds,
            "periodSeconds": self.period_seconds,
        }

    @classmethod
    def from_manifest(cls, data: dict[str, Any], container_port: int) -> "ProbeSpec":
        http_get = data.get("httpGet")
        if not http_get:
            raise DescriptorError("Only httpGet probes are supported")
        port = http_get.get("port")
        try:
            return cls(
                path=http_get.get("path", "/"),
                port=None if port in (None, container_port) else int(port),
                initial_delay_seconds=int(data.get("initialDelaySeconds", 0)),
                period_seconds=int(data.get("periodSeconds", 10)),
            )
        except (TypeError, ValueError) as e:
            # named ports included
            raise DescriptorError(f"Unsupported probe settings: {e}") from e


@dataclass
class DeploymentDescriptor:
    """A Deployment and the Service selecting its pods, applied as one document.

    The Service selects the Deployment's pods through ``labels``; both are
    rendered from the same mapping so they cannot drift apart.

    Example usage:
        descriptor = DeploymentDescriptor(image="docker.io/acme/app:42")
        manifest = descriptor.to_yaml()
        same = DeploymentDescriptor.from_yaml(manifest)
    """

    image: str
    name: str = "nodejs-app"
    namespace: str = "default"
    labels: dict[str, str] = field(default_factory=lambda: {"app": "nodejs"})
    container_name: Optional[str] = None
    replicas: int = 3
    container_port: int = 3000
    service_name: str = "nodejs-service"
    service_port: int = 80
    service_type: str = "LoadBalancer"
    resources: ResourceSpec = field(default_factory=ResourceSpec)
    liveness: Optional[ProbeSpec] = field(default_factory=lambda: ProbeSpec("/health"))
    readiness: Optional[ProbeSpec] = field(default_factory=lambda: ProbeSpec("/ready"))

    @property
    def selector(self) -> str:
        """Label selector for the Deployment's pods (``app=nodejs``)."""
        return ",".join(f"{key}={value}" for key, value in self.labels.items())

    def with_image(self, image: str) -> "DeploymentDescriptor":
        return dataclasses.replace(self, image=image)

    def to_manifests(self) -> list[dict[str, Any]]:
        """Render the Deployment and Service objects."""
        container: dict[str, Any] = {
            "name": self.container_name or self.name,
            "image": self.image,
            "ports": [{"containerPort": self.container_port}],
            "resources": self.resources.to_manifest(),
        }
        if self.liveness:
            container["livenessProbe"] = self.liveness.to_manifest(self.container_port)
        if self.readiness:
            container["readinessProbe"] = self.readiness.to_manifest(self.container_port)

        deployment = {
            "apiVersion": "apps/v1",
            "kind": "Deployment",
            "metadata": {"name": self.name, "namespace": self.namespace},
            "spec": {
                "replicas": self.replicas,
                "selector": {"matchLabels": dict(self.labels)},
                "template": {
                    "metadata": {"labels": dict(self.labels)},
                    "spec": {"containers": [container]},
                },
            },
        }
        service = {
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": self.service_name, "namespace": self.namespace},
            "spec": {
                "selector": dict(self.labels),
                "ports": [
                    {
                        "protocol": "TCP",
                        "port": self.service_port,
                        "targetPort": self.container_port,
                    }
                ],
                "type": self.service_type,
            },
        }
        return [deployment, service]

    def to_yaml(self) -> str:
        """Render as one multi-document YAML string."""
        return yaml.safe_dump_all(self.to_manifests(), sort_keys=False)

    @classmethod
    def from_manifests(cls, documents: list[dict[str, Any]]) -> "DeploymentDescriptor":
        """Parse a Deployment and a Service back into a descriptor.

        Raises:
            DescriptorError: If either object is missing or the Service does
                not select the Deployment's pods.
        """
        by_kind = {doc.get("kind"): doc for doc in documents if isinstance(doc, dict)}
        deployment = by_kind.get("Deployment")
        service = by_kind.get("Service")
        if deployment is None or service is None:
            raise DescriptorError("Descriptor must contain one Deployment and one Service")

        try:
            spec = deployment["spec"]
            pod_labels = spec["template"]["metadata"]["labels"]
            containers = spec["template"]["spec"]["containers"]
            container = containers[0]
            container_port = int(container["ports"][0]["containerPort"])
            service_spec = service["spec"]
            service_port = service_spec["ports"][0]
            name = deployment["metadata"]["name"]
        except (KeyError, IndexError, TypeError) as e:
            raise DescriptorError(f"Descriptor is missing a required field: {e}") from e
        except ValueError as e:
            raise DescriptorError(f"containerPort must be a number: {e}") from e

        match_labels = spec.get("selector", {}).get("matchLabels", {})
        if match_labels != pod_labels:
            raise DescriptorError(
                f"Deployment selector {match_labels} does not match pod labels {pod_labels}"
            )
        if service_spec.get("selector") != pod_labels:
            raise DescriptorError(
                f"Service selector {service_spec.get('selector')} does not select "
                f"Deployment pods {pod_labels}"
            )
        if str(service_port.get("targetPort", container_port)) != str(container_port):
            raise DescriptorError("Service targetPort does not match the container port")
        if not container.get("image"):
            raise DescriptorError("Deployment container has no image")

        liveness = container.get("livenessProbe")
        readiness = container.get("readinessProbe")
        try:
            return cls(
                image=container["image"],
                name=name,
                namespace=deployment["metadata"].get("namespace", "default"),
                labels={str(k): str(v) for k, v in pod_labels.items()},
                container_name=None if container.get("name") == name else container.get("name"),
                replicas=int(spec.get("replicas", 1)),
                container_port=container_port,
                service_name=service["metadata"]["name"],
                service_port=int(service_port["port"]),
                service_type=service_spec.get("type", "ClusterIP"),
                resources=ResourceSpec.from_manifest(container.get("resources", {})),
                liveness=ProbeSpec.from_manifest(liveness, container_port) if liveness else None,
                readiness=ProbeSpec.from_manifest(readiness, container_port) if readiness else None,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DescriptorError(f"Descriptor has an invalid field: {e}") from e

    @classmethod
    def from_yaml(cls, text: str) -> "DeploymentDescriptor":
        """Parse a multi-document YAML manifest.

        Raises:
            DescriptorError: If the YAML is invalid or incomplete.
        """
        try:
            documents = [doc for doc in yaml.safe_load_all(text) if doc]
        except yaml.YAMLError as e:
            raise DescriptorError(f"Invalid manifest YAML: {e}") from e
        return cls.from_manifests(documents)

    @staticmethod
    def render_template(text: str, build_tag: str) -> str:
        """Substitute ``${BUILD_TAG}`` in a templated manifest."""
        return Template(text).safe_substitute({BUILD_TAG_VARIABLE: build_tag})

    @classmethod
    def load(cls, path: Path, build_tag: str) -> "DeploymentDescriptor":
        """Load a templated manifest file, substituting the run tag.

        Raises:
            DescriptorError: If the file cannot be read or parsed.
        """
        try:
            text = Path(path).read_text()
        except OSError as e:
            raise DescriptorError(f"Cannot read manifest {path}: {e}") from e
        descriptor = cls.from_yaml(cls.render_template(text, build_tag))
        logger.info("Loaded deployment descriptor %s from %s", descriptor.name, path)
        return descriptor

"""Tests for the deployment descriptor."""

import pytest
import yaml

from cdpipeline.cluster import DeploymentDescriptor, DescriptorError, ProbeSpec

IMAGE = "docker.io/nocnex/nodejs:42"

TEMPLATE = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: nodejs-app
spec:
  replicas: 3
  selector:
    matchLabels:
      app: nodejs
  template:
    metadata:
      labels:
        app: nodejs
    spec:
      containers:
      - name: nodejs-app
        image: docker.io/nocnex/nodejs:${BUILD_TAG}
        ports:
        - containerPort: 3000
        readinessProbe:
          httpGet:
            path: /ready
            port: 3000
---
apiVersion: v1
kind: Service
metadata:
  name: nodejs-service
spec:
  selector:
    app: nodejs
  ports:
  - protocol: TCP
    port: 80
    targetPort: 3000
  type: LoadBalancer
"""


def manifests(**overrides):
    return DeploymentDescriptor(image=IMAGE, **overrides).to_manifests()


class TestDeploymentDescriptor:
    def test_defaults(self):
        descriptor = DeploymentDescriptor(image=IMAGE)
        assert descriptor.replicas == 3
        assert descriptor.container_port == 3000
        assert descriptor.service_port == 80
        assert descriptor.selector == "app=nodejs"

    def test_service_selects_deployment_pods(self):
        deployment, service = manifests(labels={"app": "web", "tier": "front"})
        pod_labels = deployment["spec"]["template"]["metadata"]["labels"]
        assert deployment["spec"]["selector"]["matchLabels"] == pod_labels
        assert service["spec"]["selector"] == pod_labels
        assert service["spec"]["ports"][0]["targetPort"] == 3000

    def test_container_settings(self):
        deployment, _ = manifests()
        container = deployment["spec"]["template"]["spec"]["containers"][0]
        assert container["image"] == IMAGE
        assert container["resources"]["limits"] == {"memory": "512Mi", "cpu": "500m"}
        assert container["livenessProbe"]["httpGet"] == {"path": "/health", "port": 3000}
        assert container["readinessProbe"]["httpGet"] == {"path": "/ready", "port": 3000}

    def test_yaml_round_trip(self):
        descriptor = DeploymentDescriptor(
            image=IMAGE,
            namespace="staging",
            replicas=2,
            readiness=ProbeSpec("/ready", port=8080, initial_delay_seconds=1),
            liveness=None,
        )
        assert DeploymentDescriptor.from_yaml(descriptor.to_yaml()) == descriptor

    def test_with_image(self):
        descriptor = DeploymentDescriptor(image="old").with_image(IMAGE)
        assert descriptor.image == IMAGE

    def test_load_substitutes_build_tag(self, tmp_path):
        path = tmp_path / "deployment.yml"
        path.write_text(TEMPLATE)
        descriptor = DeploymentDescriptor.load(path, "42")
        assert descriptor.image == IMAGE
        assert descriptor.liveness is None
        assert descriptor.readiness == ProbeSpec("/ready", initial_delay_seconds=0)

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(DescriptorError, match="Cannot read manifest"):
            DeploymentDescriptor.load(tmp_path / "missing.yml", "1")

    def test_invalid_yaml(self):
        with pytest.raises(DescriptorError, match="Invalid manifest YAML"):
            DeploymentDescriptor.from_yaml("kind: [unclosed")

    def test_requires_both_objects(self):
        deployment, _ = manifests()
        with pytest.raises(DescriptorError, match="one Deployment and one Service"):
            DeploymentDescriptor.from_manifests([deployment])

    def test_rejects_service_not_selecting_pods(self):
        deployment, service = manifests()
        service["spec"]["selector"] = {"app": "other"}
        with pytest.raises(DescriptorError, match="does not select"):
            DeploymentDescriptor.from_manifests([deployment, service])

    def test_rejects_deployment_selector_mismatch(self):
        deployment, service = manifests()
        deployment["spec"]["selector"]["matchLabels"] = {"app": "other"}
        with pytest.raises(DescriptorError, match="does not match pod labels"):
            DeploymentDescriptor.from_manifests([deployment, service])

    def test_rejects_target_port_mismatch(self):
        deployment, service = manifests()
        service["spec"]["ports"][0]["targetPort"] = 8080
        with pytest.raises(DescriptorError, match="targetPort"):
            DeploymentDescriptor.from_manifests([deployment, service])

    def test_rejects_missing_image(self):
        deployment, service = manifests()
        deployment["spec"]["template"]["spec"]["containers"][0]["image"] = ""
        with pytest.raises(DescriptorError, match="no image"):
            DeploymentDescriptor.from_manifests([deployment, service])

    def test_rejects_missing_fields(self):
        deployment, service = manifests()
        del deployment["spec"]["template"]
        with pytest.raises(DescriptorError, match="missing a required field"):
            DeploymentDescriptor.from_manifests([deployment, service])

    def test_named_target_port_rejected(self):
        deployment, service = manifests()
        service["spec"]["ports"][0]["targetPort"] = "http"
        with pytest.raises(DescriptorError, match="targetPort"):
            DeploymentDescriptor.from_manifests([deployment, service])

    def test_named_health_check_port_rejected(self):
        deployment, service = manifests()
        container = deployment["spec"]["template"]["spec"]["containers"][0]
        container["readinessProbe"]["httpGet"]["port"] = "http"
        with pytest.raises(DescriptorError, match="Unsupported"):
            DeploymentDescriptor.from_manifests([deployment, service])

    def test_non_numeric_container_port_rejected(self):
        deployment, service = manifests()
        deployment["spec"]["template"]["spec"]["containers"][0]["ports"][0]["containerPort"] = "web"
        with pytest.raises(DescriptorError, match="containerPort"):
            DeploymentDescriptor.from_manifests([deployment, service])

    def test_to_yaml_keeps_field_order(self):
        first = next(yaml.safe_load_all(DeploymentDescriptor(image=IMAGE).to_yaml()))
        assert list(first) == ["apiVersion", "kind", "metadata", "spec"]

from __future__ import annotations

import base64

import pytest
import yaml

from adminconsole.models import ClusterResourceKey, DeploymentParameters, ResourceDefinition, ResourceKind
from adminconsole.services import renderer
from adminconsole.services.errors import IntegrityException, SerializationException

DOCUMENT_NAMES = {
    "secret-jwt.yaml",
    "secret-pg.yaml",
    "secret-shared-password.yaml",
    "secret-s3.yaml",
    "minio-configmap.yaml",
    "minio-statefulset.yaml",
    "minio-service.yaml",
    "minio-job.yaml",
}


def test_render_manifests_returns_one_yaml_document_per_resource(full_params) -> None:
    docs = renderer.render_manifests(full_params)

    assert set(docs) == DOCUMENT_NAMES
    for name, content in docs.items():
        assert isinstance(content, bytes)
        manifest = yaml.safe_load(content)
        assert manifest["metadata"]["namespace"] == "ns1"

    s3 = yaml.safe_load(docs["secret-s3.yaml"])
    assert s3["kind"] == "Secret"
    assert s3["metadata"]["name"] == "kotsadm-minio"
    assert base64.b64decode(s3["data"]["secretkey"]) == b"secret-key"


def test_render_is_byte_identical_for_fully_supplied_parameters(full_params) -> None:
    first = renderer.render_manifests(full_params)
    second = renderer.render_manifests(full_params.model_copy())
    assert first == second


def test_render_requires_completed_parameters() -> None:
    with pytest.raises(IntegrityException) as exc_info:
        renderer.render_manifests(DeploymentParameters(namespace="ns1", session_key="k"))
    assert "shared_password_bcrypt" in str(exc_info.value)


def test_encode_definition_rejects_schema_violations() -> None:
    definition = ResourceDefinition(
        key=ClusterResourceKey(kind=ResourceKind.SECRET, namespace="ns1", name="kotsadm-session"),
        document_name="secret-jwt.yaml",
        manifest={
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": {"name": "kotsadm-session", "namespace": "ns1"},
            "data": {"key": ""},
        },
    )
    with pytest.raises(SerializationException) as exc_info:
        renderer.encode_definition(definition)
    assert exc_info.value.document_name == "secret-jwt.yaml"


def test_encode_definition_rejects_invalid_names() -> None:
    definition = ResourceDefinition(
        key=ClusterResourceKey(kind=ResourceKind.SERVICE, namespace="ns1", name="Bad_Name"),
        document_name="minio-service.yaml",
        manifest={
            "apiVersion": "v1",
            "kind": "Service",
            "metadata": {"name": "Bad_Name", "namespace": "ns1"},
            "spec": {"ports": [{"port": 9000}]},
        },
    )
    with pytest.raises(SerializationException):
        renderer.encode_definition(definition)


def test_join_documents_produces_multi_document_stream(full_params) -> None:
    stream = renderer.join_documents(renderer.render_manifests(full_params))
    manifests = [doc for doc in yaml.safe_load_all(stream) if doc]
    assert len(manifests) == 8
    assert [m["kind"] for m in manifests][:4] == ["Secret"] * 4

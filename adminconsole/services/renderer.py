from __future__ import annotations

import logging
from typing import Any

import yaml
from jsonschema import ValidationError
from jsonschema import validate as jsonschema_validate

from adminconsole.models import DeploymentParameters, NamedManifestSet, ResourceDefinition, ResourceKind
from adminconsole.services import resources
from adminconsole.services.errors import SerializationException

logger = logging.getLogger(__name__)

_NAME_SCHEMA = {"type": "string", "pattern": r"^[a-z0-9]([a-z0-9.-]{0,251}[a-z0-9])?$"}

_BASE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["apiVersion", "kind", "metadata"],
    "properties": {
        "apiVersion": {"type": "string", "minLength": 1},
        "kind": {"type": "string", "minLength": 1},
        "metadata": {
            "type": "object",
            "required": ["name", "namespace"],
            "properties": {
                "name": _NAME_SCHEMA,
                "namespace": _NAME_SCHEMA,
                "labels": {"type": "object", "additionalProperties": {"type": "string"}},
            },
        },
    },
}

_KIND_SCHEMAS: dict[ResourceKind, dict[str, Any]] = {
    ResourceKind.SECRET: {
        "required": ["data"],
        "properties": {
            "data": {
                "type": "object",
                "minProperties": 1,
                "additionalProperties": {"type": "string", "minLength": 1, "contentEncoding": "base64"},
            }
        },
    },
    ResourceKind.CONFIG_MAP: {
        "required": ["data"],
        "properties": {"data": {"type": "object", "additionalProperties": {"type": "string"}}},
    },
    ResourceKind.STATEFUL_SET: {
        "required": ["spec"],
        "properties": {
            "spec": {
                "type": "object",
                "required": ["serviceName", "selector", "template"],
                "properties": {"replicas": {"type": "integer", "minimum": 0}},
            }
        },
    },
    ResourceKind.SERVICE: {
        "required": ["spec"],
        "properties": {
            "spec": {
                "type": "object",
                "required": ["ports"],
                "properties": {"ports": {"type": "array", "minItems": 1}},
            }
        },
    },
    ResourceKind.JOB: {
        "required": ["spec"],
        "properties": {
            "spec": {
                "type": "object",
                "required": ["template"],
            }
        },
    },
}


def manifest_schema(kind: ResourceKind) -> dict[str, Any]:
    return {"allOf": [_BASE_SCHEMA, {"type": "object", **_KIND_SCHEMAS[kind]}]}


def encode_definition(definition: ResourceDefinition) -> bytes:
    manifest = definition.to_manifest()
    try:
        jsonschema_validate(instance=manifest, schema=manifest_schema(definition.kind))
    except ValidationError as exc:
        raise SerializationException(
            f"Failed to marshal {definition.document_name}: {exc.message}",
            document_name=definition.document_name,
        ) from exc
    try:
        text = yaml.safe_dump(manifest, sort_keys=False, default_flow_style=False)
    except yaml.YAMLError as exc:
        raise SerializationException(
            f"Failed to marshal {definition.document_name}: {exc}",
            document_name=definition.document_name,
        ) from exc
    return text.encode("utf-8")


def render_manifests(params: DeploymentParameters) -> NamedManifestSet:
    """Encode every resource definition for offline use.

    The parameters must already be completed; nothing here generates
    secret material or contacts the cluster.
    """
    resources.require_complete(params)
    docs: NamedManifestSet = {}
    for definition in resources.build_all(params):
        docs[definition.document_name] = encode_definition(definition)
    logger.debug("Rendered %s manifests for namespace %s", len(docs), params.namespace)
    return docs


def join_documents(docs: NamedManifestSet) -> bytes:
    """Concatenate a manifest set into a single multi-document YAML stream."""
    return b"---\n".join(docs[name] for name in docs)

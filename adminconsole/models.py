from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from sqlmodel import Field, SQLModel

from adminconsole.services.errors import AdminConsoleException

NamedManifestSet = dict[str, bytes]

DEFAULT_MINIO_IMAGE = "minio/minio:RELEASE.2019-10-12T01-39-57Z"
DEFAULT_MINIO_CLIENT_IMAGE = "minio/mc:RELEASE.2019-10-09T22-54-57Z"
DEFAULT_MINIO_STORAGE_SIZE = "4Gi"
DEFAULT_BUCKET_NAME = "kotsadm"


class DeploymentParameters(SQLModel):
    """Inputs for one provisioning pass.

    Credential fields left empty are filled by the secret material policy;
    fields supplied by the caller are never replaced.
    """

    namespace: str
    session_key: str = ""
    postgres_password: str = ""
    shared_password: str = ""
    shared_password_bcrypt: str = ""
    s3_access_key: str = ""
    s3_secret_key: str = ""

    minio_image: str = Field(default=DEFAULT_MINIO_IMAGE)
    minio_client_image: str = Field(default=DEFAULT_MINIO_CLIENT_IMAGE)
    minio_storage_size: str = Field(default=DEFAULT_MINIO_STORAGE_SIZE)
    bucket_name: str = Field(default=DEFAULT_BUCKET_NAME)


class ResourceKind(str, Enum):
    SECRET = "Secret"
    CONFIG_MAP = "ConfigMap"
    STATEFUL_SET = "StatefulSet"
    SERVICE = "Service"
    JOB = "Job"

    @property
    def api_version(self) -> str:
        return _API_VERSIONS[self]

    @property
    def kubectl_type(self) -> str:
        """Fully qualified resource type accepted by `kubectl get`."""
        return _KUBECTL_TYPES[self]


_API_VERSIONS = {
    ResourceKind.SECRET: "v1",
    ResourceKind.CONFIG_MAP: "v1",
    ResourceKind.STATEFUL_SET: "apps/v1",
    ResourceKind.SERVICE: "v1",
    ResourceKind.JOB: "batch/v1",
}

_KUBECTL_TYPES = {
    ResourceKind.SECRET: "secret",
    ResourceKind.CONFIG_MAP: "configmap",
    ResourceKind.STATEFUL_SET: "statefulset.apps",
    ResourceKind.SERVICE: "service",
    ResourceKind.JOB: "job.batch",
}


@dataclass(frozen=True)
class ClusterResourceKey:
    kind: ResourceKind
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind.value} {self.namespace}/{self.name}"


@dataclass(frozen=True)
class ResourceDefinition:
    key: ClusterResourceKey
    document_name: str
    # Excluded from repr since secret definitions carry credential material.
    manifest: dict[str, Any] = field(repr=False)

    @property
    def kind(self) -> ResourceKind:
        return self.key.kind

    @property
    def name(self) -> str:
        return self.key.name

    @property
    def namespace(self) -> str:
        return self.key.namespace

    def to_manifest(self) -> dict[str, Any]:
        return deepcopy(self.manifest)


@dataclass(frozen=True)
class EnsureResult:
    key: ClusterResourceKey
    created: bool


@dataclass(frozen=True)
class ProvisioningOutcome:
    status: Literal["succeeded", "failed"]
    parameters: DeploymentParameters
    results: tuple[EnsureResult, ...] = ()
    error: AdminConsoleException | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"

    @property
    def created(self) -> tuple[ClusterResourceKey, ...]:
        return tuple(result.key for result in self.results if result.created)


@dataclass(frozen=True)
class RenderResult:
    parameters: DeploymentParameters
    manifests: NamedManifestSet

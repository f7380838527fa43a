from __future__ import annotations

import logging
from typing import Callable

from adminconsole.models import (
    ClusterResourceKey,
    DeploymentParameters,
    EnsureResult,
    ResourceKind,
)
from adminconsole.proc import AdapterCommandError
from adminconsole.services import resources
from adminconsole.services.errors import ClusterAccessException, IntegrityException
from adminconsole.services.kube_adapter import KubeAdapter
from adminconsole.services.resources import Builder

logger = logging.getLogger(__name__)

EnsureStep = Callable[[DeploymentParameters], EnsureResult]


class ResourceApplier:
    """Create-if-absent for each fixed resource; existing objects are left untouched.

    The get-then-create sequence is not atomic, so two passes running
    against the same namespace at once may both see NotFound. Callers must
    run one pass per namespace at a time.
    """

    def __init__(self, *, kube: KubeAdapter | None = None) -> None:
        self.kube = kube or KubeAdapter()

    def ensure_session_secret(self, params: DeploymentParameters) -> EnsureResult:
        return self._ensure(
            ResourceKind.SECRET, resources.SESSION_SECRET_NAME, resources.session_secret, params
        )

    def ensure_postgres_secret(self, params: DeploymentParameters) -> EnsureResult:
        return self._ensure(
            ResourceKind.SECRET, resources.POSTGRES_SECRET_NAME, resources.postgres_secret, params
        )

    def ensure_shared_password_secret(self, params: DeploymentParameters) -> EnsureResult:
        return self._ensure(
            ResourceKind.SECRET,
            resources.SHARED_PASSWORD_SECRET_NAME,
            resources.shared_password_secret,
            params,
        )

    def ensure_s3_secret(self, params: DeploymentParameters) -> EnsureResult:
        return self._ensure(ResourceKind.SECRET, resources.MINIO_SECRET_NAME, resources.s3_secret, params)

    def ensure_minio_configmap(self, params: DeploymentParameters) -> EnsureResult:
        return self._ensure(
            ResourceKind.CONFIG_MAP, resources.MINIO_CONFIGMAP_NAME, resources.minio_configmap, params
        )

    def ensure_minio_statefulset(self, params: DeploymentParameters) -> EnsureResult:
        return self._ensure(
            ResourceKind.STATEFUL_SET,
            resources.MINIO_STATEFULSET_NAME,
            resources.minio_statefulset,
            params,
        )

    def ensure_minio_service(self, params: DeploymentParameters) -> EnsureResult:
        return self._ensure(
            ResourceKind.SERVICE, resources.MINIO_SERVICE_NAME, resources.minio_service, params
        )

    def ensure_minio_job(self, params: DeploymentParameters) -> EnsureResult:
        return self._ensure(ResourceKind.JOB, resources.MINIO_JOB_NAME, resources.minio_job, params)

    def secret_steps(self) -> tuple[EnsureStep, ...]:
        return (
            self.ensure_session_secret,
            self.ensure_postgres_secret,
            self.ensure_shared_password_secret,
            self.ensure_s3_secret,
        )

    def minio_steps(self) -> tuple[EnsureStep, ...]:
        return (
            self.ensure_minio_configmap,
            self.ensure_minio_statefulset,
            self.ensure_minio_service,
            self.ensure_minio_job,
        )

    def ensure_secrets(self, params: DeploymentParameters) -> list[EnsureResult]:
        return [step(params) for step in self.secret_steps()]

    def ensure_minio(self, params: DeploymentParameters) -> list[EnsureResult]:
        return [step(params) for step in self.minio_steps()]

    def _ensure(
        self,
        kind: ResourceKind,
        name: str,
        builder: Builder,
        params: DeploymentParameters,
    ) -> EnsureResult:
        key = ClusterResourceKey(kind=kind, namespace=params.namespace, name=name)
        try:
            exists = self.kube.resource_exists(key)
        except AdapterCommandError as exc:
            raise ClusterAccessException(
                f"Failed to get existing {kind.value.lower()}", key=key, operation="get"
            ) from exc

        if exists:
            logger.debug("%s already exists; leaving it unchanged", key)
            return EnsureResult(key=key, created=False)

        if kind is ResourceKind.SECRET:
            resources.require_complete(params)
        definition = builder(params.namespace, params)
        if definition.key != key:
            raise IntegrityException(f"Builder produced {definition.key} while ensuring {key}")
        try:
            self.kube.create_resource(definition)
        except AdapterCommandError as exc:
            raise ClusterAccessException(
                f"Failed to create {kind.value.lower()}", key=key, operation="create"
            ) from exc

        logger.info("Created %s", key)
        return EnsureResult(key=key, created=True)

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from adminconsole.models import (
    DeploymentParameters,
    EnsureResult,
    ProvisioningOutcome,
    RenderResult,
)
from adminconsole.services import renderer
from adminconsole.services.applier import EnsureStep, ResourceApplier
from adminconsole.services.errors import (
    AdminConsoleException,
    ClusterAccessException,
    OperatorCancelledException,
    ProvisioningException,
)
from adminconsole.services.secret_policy import SecretMaterialPolicy

logger = logging.getLogger(__name__)

GROUP_SECRETS = "secrets"
GROUP_MINIO = "minio"


class ProgressSink(Protocol):
    def group_started(self, group: str) -> None: ...

    def group_succeeded(self, group: str) -> None: ...

    def group_failed(self, group: str, error: Exception) -> None: ...


class LoggingProgress:
    def group_started(self, group: str) -> None:
        logger.info("Deploying %s", group)

    def group_succeeded(self, group: str) -> None:
        logger.info("Deployed %s", group)

    def group_failed(self, group: str, error: Exception) -> None:
        logger.warning("Failed to deploy %s: %s", group, error)


class Provisioner:
    """Completes secret material once, then ensures secrets before the minio service."""

    def __init__(
        self,
        *,
        applier: ResourceApplier | None = None,
        policy: SecretMaterialPolicy | None = None,
        progress: ProgressSink | None = None,
    ) -> None:
        self._applier = applier or ResourceApplier()
        self._policy = policy or SecretMaterialPolicy()
        self._progress = progress or LoggingProgress()

    def provision(self, params: DeploymentParameters) -> ProvisioningOutcome:
        logger.info("Starting provisioning for namespace=%s", params.namespace)
        completed = params
        results: list[EnsureResult] = []
        try:
            completed = self._policy.complete(params)
            self._run_group(GROUP_SECRETS, self._applier.secret_steps(), completed, results)
            self._run_group(GROUP_MINIO, self._applier.minio_steps(), completed, results)
        except OperatorCancelledException as exc:
            logger.info("Provisioning cancelled by operator for namespace=%s", params.namespace)
            return ProvisioningOutcome(
                status="failed",
                parameters=completed,
                results=tuple(results),
                error=exc,
            )
        except AdminConsoleException as exc:
            logger.exception("Provisioning failed for namespace=%s", params.namespace)
            return ProvisioningOutcome(
                status="failed",
                parameters=completed,
                results=tuple(results),
                error=exc,
            )

        logger.info(
            "Finished provisioning for namespace=%s created=%s existing=%s",
            completed.namespace,
            sum(1 for result in results if result.created),
            sum(1 for result in results if not result.created),
        )
        return ProvisioningOutcome(status="succeeded", parameters=completed, results=tuple(results))

    def render(self, params: DeploymentParameters) -> RenderResult:
        """Build the manifest bundle without contacting the cluster."""
        completed = self._policy.complete(params)
        return RenderResult(parameters=completed, manifests=renderer.render_manifests(completed))

    def _run_group(
        self,
        group: str,
        steps: Sequence[EnsureStep],
        params: DeploymentParameters,
        results: list[EnsureResult],
    ) -> None:
        """Run steps in order, appending each result so partial progress survives a failure."""
        self._progress.group_started(group)
        try:
            for step in steps:
                results.append(step(params))
        except AdminConsoleException as exc:
            self._progress.group_failed(group, exc)
            key = exc.key if isinstance(exc, ClusterAccessException) else None
            raise ProvisioningException(f"Failed to ensure {group}: {exc}", group=group, key=key) from exc
        self._progress.group_succeeded(group)

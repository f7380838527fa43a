from __future__ import annotations

import json
import logging
from pathlib import Path
from tempfile import NamedTemporaryFile
from typing import Any

from adminconsole.models import ClusterResourceKey, ResourceDefinition
from adminconsole.proc import (
    AdapterCommandError,
    CommandRunner,
    run_command,
)

logger = logging.getLogger(__name__)


class KubeAdapter:
    """Namespaced get/create of single objects through kubectl."""

    def __init__(
        self,
        *,
        runner: CommandRunner | None = None,
        kubectl: str = "kubectl",
        context: str | None = None,
    ) -> None:
        self._runner = runner
        self._kubectl = kubectl
        self._context = context

    def resource_exists(self, key: ClusterResourceKey) -> bool:
        """Return whether the object exists.

        Only the API server's NotFound reason for this exact object counts as
        absence; any other failure is raised as `AdapterCommandError`.
        """
        try:
            run_command(
                self._command(
                    "get",
                    key.kind.kubectl_type,
                    key.name,
                    "--namespace",
                    key.namespace,
                    "-o",
                    "name",
                ),
                runner=self._runner,
                error_message=f"Failed to get {key}",
            )
            logger.debug("Found existing %s", key)
            return True
        except AdapterCommandError as exc:
            if exc.not_found and exc.missing_name == key.name:
                logger.debug("Not found: %s", key)
                return False
            raise

    def create_resource(self, definition: ResourceDefinition) -> None:
        with _manifest_file(definition.to_manifest()) as manifest_path:
            run_command(
                self._command(
                    "create",
                    "--namespace",
                    definition.namespace,
                    "-f",
                    str(manifest_path),
                    "-o",
                    "name",
                ),
                runner=self._runner,
                error_message=f"Failed to create {definition.key}",
            )
        logger.debug("kubectl create succeeded for %s", definition.key)

    def _command(self, *args: str) -> list[str]:
        cmd = [self._kubectl]
        if self._context:
            cmd.extend(["--context", self._context])
        cmd.extend(args)
        return cmd


class _manifest_file:
    def __init__(self, manifest: dict[str, Any]) -> None:
        self._manifest = manifest
        self.path: Path | None = None

    def __enter__(self) -> Path:
        tmp = NamedTemporaryFile(mode="w", encoding="utf-8", suffix=".json", delete=False)
        try:
            tmp.write(json.dumps(self._manifest))
            tmp.flush()
        finally:
            tmp.close()
        self.path = Path(tmp.name)
        return self.path

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.path and self.path.exists():
            self.path.unlink()

from __future__ import annotations

import logging
import os
from pathlib import Path
import tempfile
from typing import Any, NoReturn

import typer
import yaml

from adminconsole.config import load_settings
from adminconsole.logging_config import configure_logging
from adminconsole.models import DeploymentParameters, ProvisioningOutcome, ResourceKind
from adminconsole.prompt import prompt_shared_password
from adminconsole.provisioner import GROUP_MINIO, GROUP_SECRETS, Provisioner
from adminconsole.services import renderer, resources
from adminconsole.services.applier import ResourceApplier
from adminconsole.services.errors import AdminConsoleException, OperatorCancelledException
from adminconsole.services.kube_adapter import KubeAdapter
from adminconsole.services.secret_policy import SecretMaterialPolicy

configure_logging()
logger = logging.getLogger(__name__)
app = typer.Typer(help="Admin console bootstrap CLI", pretty_exceptions_show_locals=False)

DEFAULT_NAMESPACE = "default"
CANCELLED_EXIT_CODE = 130

# Never written to the parameters file; only the hash is cached.
_UNCACHED_FIELDS = {"shared_password"}

_GROUP_LABELS = {
    GROUP_SECRETS: "Deploying Admin Console secrets",
    GROUP_MINIO: "Deploying Admin Console object storage",
}

NAMESPACE_OPTION = typer.Option(None, "--namespace", "-n", help="Target namespace (default: 'default').")
PARAMETERS_FILE_OPTION = typer.Option(
    None,
    "--parameters-file",
    help="YAML file caching deployment parameters; read before and rewritten after the pass.",
)
SESSION_KEY_OPTION = typer.Option(None, "--session-key", help="Session signing key.")
POSTGRES_PASSWORD_OPTION = typer.Option(None, "--postgres-password", help="Database password.")
SHARED_PASSWORD_OPTION = typer.Option(None, "--shared-password", help="Admin Console password.")
SHARED_PASSWORD_BCRYPT_OPTION = typer.Option(
    None, "--shared-password-bcrypt", help="Pre-computed bcrypt hash of the Admin Console password."
)
S3_ACCESS_KEY_OPTION = typer.Option(None, "--s3-access-key", help="Object storage access key.")
S3_SECRET_KEY_OPTION = typer.Option(None, "--s3-secret-key", help="Object storage secret key.")
NO_PROMPT_OPTION = typer.Option(
    False, "--no-prompt", help="Fail instead of prompting for a missing Admin Console password."
)


class ConsoleProgress:
    def group_started(self, group: str) -> None:
        typer.secho(f"  • {_GROUP_LABELS.get(group, group)}", fg=typer.colors.CYAN, err=True)

    def group_succeeded(self, group: str) -> None:
        typer.secho(f"  • {_GROUP_LABELS.get(group, group)} ✓", fg=typer.colors.GREEN, err=True)

    def group_failed(self, group: str, error: Exception) -> None:
        typer.secho(f"  • {_GROUP_LABELS.get(group, group)} ✗", fg=typer.colors.RED, err=True)


def _load_parameters(
    *,
    namespace: str | None,
    parameters_file: Path | None,
    overrides: dict[str, str | None],
) -> DeploymentParameters:
    data: dict[str, Any] = {}
    if parameters_file is not None and parameters_file.exists():
        try:
            loaded = yaml.safe_load(parameters_file.read_text())
        except OSError as exc:
            raise ValueError(f"Unable to read --parameters-file: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in --parameters-file: {exc}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError("--parameters-file must contain a YAML mapping")
        data.update(loaded)

    data["namespace"] = namespace or data.get("namespace") or DEFAULT_NAMESPACE
    data.update({field: value for field, value in overrides.items() if value})
    # pydantic's ValidationError is a ValueError
    return DeploymentParameters(**data)


def _save_parameters(parameters_file: Path, params: DeploymentParameters) -> None:
    payload = yaml.safe_dump(params.model_dump(exclude=_UNCACHED_FIELDS), sort_keys=False)
    # Created 0600 and swapped in whole; the old cache stays intact until then.
    fd, tmp_name = tempfile.mkstemp(
        dir=parameters_file.parent, prefix=f".{parameters_file.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.replace(tmp_name, parameters_file)
    finally:
        Path(tmp_name).unlink(missing_ok=True)
    logger.debug("Wrote deployment parameters to %s", parameters_file)


def _cacheable_parameters(supplied: DeploymentParameters, outcome: ProvisioningOutcome) -> DeploymentParameters:
    """Drop generated credentials whose secret was not created in this pass."""
    created = {key.name for key in outcome.created if key.kind is ResourceKind.SECRET}
    reverted: dict[str, str] = {}
    for secret_name, fields in resources.SECRET_CREDENTIAL_FIELDS.items():
        if secret_name in created:
            continue
        for field in fields:
            if getattr(outcome.parameters, field) != getattr(supplied, field):
                reverted[field] = getattr(supplied, field)
    if not reverted:
        return outcome.parameters
    logger.warning(
        "Not caching generated %s for namespace %s: the secrets holding them were not created",
        ", ".join(sorted(reverted)),
        supplied.namespace,
    )
    return outcome.parameters.model_copy(update=reverted)


def _build_provisioner(*, no_prompt: bool, kube: KubeAdapter | None = None) -> Provisioner:
    policy = SecretMaterialPolicy(prompt=None if no_prompt else prompt_shared_password)
    applier = ResourceApplier(kube=kube) if kube is not None else None
    return Provisioner(applier=applier, policy=policy, progress=ConsoleProgress())


def _build_kube_adapter() -> KubeAdapter:
    settings = load_settings()
    return KubeAdapter(kubectl=settings.kubectl, context=settings.kube_context)


def _exit_for_domain_error(exc: AdminConsoleException) -> NoReturn:
    if isinstance(exc, OperatorCancelledException) or isinstance(exc.__cause__, OperatorCancelledException):
        typer.echo("Cancelled.", err=True)
        raise typer.Exit(code=CANCELLED_EXIT_CODE)
    logger.warning("CLI command failed with domain error: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _exit_for_invalid_input(exc: ValueError) -> NoReturn:
    logger.warning("Invalid CLI input: %s", exc)
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(code=1)


def _outcome_summary(outcome: ProvisioningOutcome) -> dict[str, Any]:
    return {
        "namespace": outcome.parameters.namespace,
        "status": outcome.status,
        "created": [str(result.key) for result in outcome.results if result.created],
        "existing": [str(result.key) for result in outcome.results if not result.created],
    }


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    if verbose:
        configure_logging(verbose=True)


@app.command("render")
def render(
    namespace: str | None = NAMESPACE_OPTION,
    output_dir: Path | None = typer.Option(
        None,
        "--output-dir",
        "-o",
        help="Directory to write one YAML file per resource; prints a YAML stream when omitted.",
    ),
    parameters_file: Path | None = PARAMETERS_FILE_OPTION,
    session_key: str | None = SESSION_KEY_OPTION,
    postgres_password: str | None = POSTGRES_PASSWORD_OPTION,
    shared_password: str | None = SHARED_PASSWORD_OPTION,
    shared_password_bcrypt: str | None = SHARED_PASSWORD_BCRYPT_OPTION,
    s3_access_key: str | None = S3_ACCESS_KEY_OPTION,
    s3_secret_key: str | None = S3_SECRET_KEY_OPTION,
    no_prompt: bool = NO_PROMPT_OPTION,
) -> None:
    try:
        params = _load_parameters(
            namespace=namespace,
            parameters_file=parameters_file,
            overrides={
                "session_key": session_key,
                "postgres_password": postgres_password,
                "shared_password": shared_password,
                "shared_password_bcrypt": shared_password_bcrypt,
                "s3_access_key": s3_access_key,
                "s3_secret_key": s3_secret_key,
            },
        )
    except ValueError as e:
        _exit_for_invalid_input(e)

    try:
        result = _build_provisioner(no_prompt=no_prompt).render(params)
    except AdminConsoleException as e:
        _exit_for_domain_error(e)

    if output_dir is not None:
        output_dir.mkdir(parents=True, exist_ok=True)
        for name, content in result.manifests.items():
            target = output_dir / name
            target.write_bytes(content)
            typer.echo(str(target))
    else:
        typer.echo(renderer.join_documents(result.manifests).decode("utf-8"), nl=False)

    if parameters_file is not None:
        _save_parameters(parameters_file, result.parameters)


@app.command("apply")
def apply(
    namespace: str | None = NAMESPACE_OPTION,
    parameters_file: Path | None = PARAMETERS_FILE_OPTION,
    session_key: str | None = SESSION_KEY_OPTION,
    postgres_password: str | None = POSTGRES_PASSWORD_OPTION,
    shared_password: str | None = SHARED_PASSWORD_OPTION,
    shared_password_bcrypt: str | None = SHARED_PASSWORD_BCRYPT_OPTION,
    s3_access_key: str | None = S3_ACCESS_KEY_OPTION,
    s3_secret_key: str | None = S3_SECRET_KEY_OPTION,
    no_prompt: bool = NO_PROMPT_OPTION,
) -> None:
    try:
        params = _load_parameters(
            namespace=namespace,
            parameters_file=parameters_file,
            overrides={
                "session_key": session_key,
                "postgres_password": postgres_password,
                "shared_password": shared_password,
                "shared_password_bcrypt": shared_password_bcrypt,
                "s3_access_key": s3_access_key,
                "s3_secret_key": s3_secret_key,
            },
        )
    except ValueError as e:
        _exit_for_invalid_input(e)

    outcome = _build_provisioner(no_prompt=no_prompt, kube=_build_kube_adapter()).provision(params)

    # Secrets created before a failure hold generated material; cache it.
    if parameters_file is not None and (outcome.succeeded or outcome.created):
        _save_parameters(parameters_file, _cacheable_parameters(params, outcome))

    if not outcome.succeeded:
        assert outcome.error is not None
        _exit_for_domain_error(outcome.error)

    typer.echo(yaml.safe_dump(_outcome_summary(outcome), sort_keys=False), nl=False)


if __name__ == "__main__":
    app()

from __future__ import annotations

import base64
import os
from pathlib import Path

import yaml

from adminconsole.models import ClusterResourceKey, ResourceKind
from adminconsole.prompt import PromptOutcome
from adminconsole.services import resources
from tests.secret_utils import verify_password

FULL_CREDENTIALS = [
    "--session-key", "session-key",
    "--postgres-password", "pg-password",
    "--shared-password-bcrypt", "$2b$10$supplied",
    "--s3-access-key", "access-key",
    "--s3-secret-key", "secret-key",
]


def _stdout(result) -> str:
    return getattr(result, "stdout", result.output)


def test_cli_render_writes_one_file_per_document(cli_runner, cluster, tmp_path):
    runner, app = cli_runner
    out_dir = tmp_path / "manifests"

    result = runner.invoke(
        app,
        ["render", "--namespace", "ns1", "--output-dir", str(out_dir), "--shared-password", "hunter22"],
    )

    assert result.exit_code == 0, result.output
    assert sorted(p.name for p in out_dir.iterdir()) == sorted(
        [
            "secret-jwt.yaml",
            "secret-pg.yaml",
            "secret-shared-password.yaml",
            "secret-s3.yaml",
            "minio-configmap.yaml",
            "minio-statefulset.yaml",
            "minio-service.yaml",
            "minio-job.yaml",
        ]
    )
    password_secret = yaml.safe_load((out_dir / "secret-shared-password.yaml").read_text())
    hashed = base64.b64decode(password_secret["data"]["passwordBcrypt"]).decode("utf-8")
    assert verify_password("hunter22", hashed)
    assert cluster.calls == []


def test_cli_render_prints_yaml_stream(cli_runner):
    runner, app = cli_runner

    result = runner.invoke(app, ["render", "-n", "ns1", *FULL_CREDENTIALS])

    assert result.exit_code == 0, result.output
    manifests = [doc for doc in yaml.safe_load_all(_stdout(result)) if doc]
    assert len(manifests) == 8
    assert {m["metadata"]["namespace"] for m in manifests} == {"ns1"}


def test_cli_apply_creates_resources_and_caches_parameters(cli_runner, cluster, tmp_path):
    runner, app = cli_runner
    params_file = tmp_path / "params.yaml"

    result = runner.invoke(
        app,
        ["apply", "-n", "ns1", "--parameters-file", str(params_file), "--shared-password", "hunter22"],
    )

    assert result.exit_code == 0, result.output
    assert len(cluster.objects) == 8
    cached = yaml.safe_load(params_file.read_text())
    assert cached["namespace"] == "ns1"
    assert "shared_password" not in cached
    assert verify_password("hunter22", cached["shared_password_bcrypt"])
    stored = cluster.manifest(ResourceKind.SECRET, "ns1", resources.SESSION_SECRET_NAME)
    assert base64.b64decode(stored["data"]["key"]).decode("utf-8") == cached["session_key"]

    creates_after_first = len(cluster.creates)
    rerun = runner.invoke(app, ["apply", "--parameters-file", str(params_file), "--no-prompt"])

    assert rerun.exit_code == 0, rerun.output
    assert len(cluster.creates) == creates_after_first
    assert yaml.safe_load(params_file.read_text()) == cached


def test_cli_apply_without_password_and_no_prompt_fails_before_cluster_access(cli_runner, cluster):
    runner, app = cli_runner

    result = runner.invoke(app, ["apply", "-n", "ns1", "--no-prompt"])

    assert result.exit_code == 1
    assert "Error:" in result.output
    assert cluster.calls == []


def test_cli_apply_cancelled_prompt_exits_with_cancel_code(cli_runner, cluster, monkeypatch):
    import adminconsole.cli as cli

    monkeypatch.setattr(cli, "prompt_shared_password", PromptOutcome.cancelled)
    runner, app = cli_runner

    result = runner.invoke(app, ["apply", "-n", "ns1"])

    assert result.exit_code == cli.CANCELLED_EXIT_CODE
    assert cluster.calls == []


def test_cli_apply_reports_cluster_failure(cli_runner, cluster):
    runner, app = cli_runner
    key = ClusterResourceKey(kind=ResourceKind.SECRET, namespace="ns1", name=resources.SESSION_SECRET_NAME)
    cluster.get_failures[key] = "error: You must be logged in to the server (Unauthorized)"

    result = runner.invoke(app, ["apply", "-n", "ns1", *FULL_CREDENTIALS])

    assert result.exit_code == 1
    assert "kotsadm-session" in result.output
    assert cluster.creates == []


def test_cli_rejects_malformed_parameters_file(cli_runner, tmp_path):
    runner, app = cli_runner
    params_file = tmp_path / "params.yaml"
    params_file.write_text("- not\n- a mapping\n")

    result = runner.invoke(app, ["render", "--parameters-file", str(params_file)])

    assert result.exit_code == 1
    assert "must contain a YAML mapping" in result.output


def test_cli_apply_caches_generated_material_after_partial_failure(cli_runner, cluster, tmp_path):
    runner, app = cli_runner
    params_file = tmp_path / "params.yaml"
    key = ClusterResourceKey(kind=ResourceKind.SECRET, namespace="ns1", name=resources.MINIO_SECRET_NAME)
    cluster.create_failures[key] = "Unable to connect to the server: EOF"

    result = runner.invoke(
        app,
        ["apply", "-n", "ns1", "--parameters-file", str(params_file), "--shared-password", "hunter22"],
    )

    assert result.exit_code == 1
    cached = yaml.safe_load(params_file.read_text())
    stored = cluster.manifest(ResourceKind.SECRET, "ns1", resources.SESSION_SECRET_NAME)
    assert base64.b64decode(stored["data"]["key"]).decode("utf-8") == cached["session_key"]
    assert cached["postgres_password"]
    assert cached["s3_access_key"] == ""
    assert cached["s3_secret_key"] == ""


def test_cli_apply_does_not_cache_credentials_for_existing_secrets(cli_runner, cluster, full_params, tmp_path):
    runner, app = cli_runner
    for definition in resources.build_all(full_params):
        cluster.add(definition.kind, definition.namespace, definition.name, definition.to_manifest())
    params_file = tmp_path / "params.yaml"

    result = runner.invoke(
        app,
        [
            "apply", "-n", "ns1",
            "--parameters-file", str(params_file),
            "--shared-password", "hunter22",
            "--s3-access-key", "caller-access",
        ],
    )

    assert result.exit_code == 0, result.output
    assert cluster.creates == []
    cached = yaml.safe_load(params_file.read_text())
    assert cached["s3_access_key"] == "caller-access"
    assert cached["s3_secret_key"] == ""
    assert cached["session_key"] == ""
    assert cached["postgres_password"] == ""
    assert cached["shared_password_bcrypt"] == ""


def test_cli_parameters_file_is_replaced_with_owner_only_permissions(cli_runner, tmp_path, monkeypatch):
    import adminconsole.cli as cli

    runner, app = cli_runner
    params_file = tmp_path / "params.yaml"
    params_file.write_text("namespace: ns1\n")
    params_file.chmod(0o644)
    replaced: list[tuple[int, str]] = []
    real_replace = cli.os.replace

    def recording_replace(src, dst):
        replaced.append((os.stat(src).st_mode & 0o777, Path(dst).read_text()))
        real_replace(src, dst)

    monkeypatch.setattr(cli.os, "replace", recording_replace)

    result = runner.invoke(app, ["render", "--parameters-file", str(params_file), "--shared-password", "hunter22"])

    assert result.exit_code == 0, result.output
    assert replaced == [(0o600, "namespace: ns1\n")]
    assert params_file.stat().st_mode & 0o777 == 0o600
    assert yaml.safe_load(params_file.read_text())["session_key"]
    assert [p.name for p in tmp_path.iterdir()] == ["params.yaml"]

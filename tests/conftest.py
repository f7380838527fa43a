from __future__ import annotations

import itertools

import pytest
from typer.testing import CliRunner

from adminconsole.models import DeploymentParameters
from adminconsole.services.applier import ResourceApplier
from adminconsole.services.kube_adapter import KubeAdapter
from adminconsole.services.secret_policy import SecretMaterialPolicy, bcrypt_hash
from tests.cluster_utils import FakeCluster

SUPPLIED_BCRYPT_HASH = "$2b$04$S5r7rJ2n0QeGm3Y0e8zQ9uM6fJ7gX1cR2bV3nH4kL5pO6qW7eT8yC"


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def applier(cluster: FakeCluster) -> ResourceApplier:
    return ResourceApplier(kube=KubeAdapter(runner=cluster))


@pytest.fixture
def counting_tokens():
    counter = itertools.count(1)
    return lambda: f"token-{next(counter)}"


@pytest.fixture
def policy(counting_tokens) -> SecretMaterialPolicy:
    return SecretMaterialPolicy(token_source=counting_tokens, hasher=bcrypt_hash)


@pytest.fixture
def full_params() -> DeploymentParameters:
    return DeploymentParameters(
        namespace="ns1",
        session_key="session-key",
        postgres_password="pg-password",
        shared_password="hunter22",
        shared_password_bcrypt=SUPPLIED_BCRYPT_HASH,
        s3_access_key="access-key",
        s3_secret_key="secret-key",
    )


@pytest.fixture
def cli_runner(monkeypatch, cluster: FakeCluster):
    import adminconsole.cli as cli

    monkeypatch.setattr(cli, "_build_kube_adapter", lambda: KubeAdapter(runner=cluster))
    return CliRunner(), cli.app

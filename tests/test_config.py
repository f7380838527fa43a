from __future__ import annotations

import logging

from adminconsole.config import Settings, load_settings
from adminconsole.logging_config import resolve_level


def test_load_settings_defaults(monkeypatch) -> None:
    monkeypatch.delenv("ADMINCONSOLE_KUBECTL", raising=False)
    monkeypatch.delenv("ADMINCONSOLE_KUBE_CONTEXT", raising=False)
    assert load_settings() == Settings(kubectl="kubectl", kube_context=None)


def test_load_settings_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("ADMINCONSOLE_KUBECTL", "/usr/local/bin/kubectl")
    monkeypatch.setenv("ADMINCONSOLE_KUBE_CONTEXT", "kind-dev")
    assert load_settings() == Settings(kubectl="/usr/local/bin/kubectl", kube_context="kind-dev")


def test_resolve_level(monkeypatch) -> None:
    monkeypatch.setenv("ADMINCONSOLE_LOG_LEVEL", "warning")
    assert resolve_level() == logging.WARNING
    assert resolve_level("debug") == logging.DEBUG
    assert resolve_level(verbose=True) == logging.DEBUG
    monkeypatch.setenv("ADMINCONSOLE_LOG_LEVEL", "nonsense")
    assert resolve_level() == logging.INFO

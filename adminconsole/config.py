from __future__ import annotations

from dataclasses import dataclass
import os


@dataclass(frozen=True)
class Settings:
    kubectl: str = "kubectl"
    kube_context: str | None = None


def load_settings() -> Settings:
    return Settings(
        kubectl=os.getenv("ADMINCONSOLE_KUBECTL") or "kubectl",
        kube_context=os.getenv("ADMINCONSOLE_KUBE_CONTEXT") or None,
    )

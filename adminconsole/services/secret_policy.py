from __future__ import annotations

from dataclasses import dataclass
import logging
import secrets
from typing import Any, Callable

import bcrypt

from adminconsole.models import DeploymentParameters
from adminconsole.prompt import PromptOutcome
from adminconsole.services.errors import OperatorCancelledException, SecretGenerationException
from adminconsole.services.resources import validate_namespace

logger = logging.getLogger(__name__)

BCRYPT_COST = 10
TOKEN_BYTES = 16

# Fields filled with an independent random token when left empty.
TOKEN_FIELDS = ("session_key", "postgres_password", "s3_access_key", "s3_secret_key")

TokenSource = Callable[[], str]
PasswordHasher = Callable[[str], str]
PasswordPrompt = Callable[[], PromptOutcome]


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def bcrypt_hash(plaintext: str) -> str:
    return bcrypt.hashpw(plaintext.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_COST)).decode("utf-8")


@dataclass(frozen=True)
class SecretMaterialPolicy:
    """Fills empty credential fields; never replaces a supplied value."""

    token_source: TokenSource = generate_token
    hasher: PasswordHasher = bcrypt_hash
    prompt: PasswordPrompt | None = None

    def complete(self, params: DeploymentParameters) -> DeploymentParameters:
        validate_namespace(params.namespace)

        updates: dict[str, Any] = {}
        for field_name in TOKEN_FIELDS:
            if not getattr(params, field_name):
                updates[field_name] = self._token(field_name)

        if not params.shared_password_bcrypt:
            plaintext = params.shared_password
            if not plaintext:
                plaintext = self._ask_for_shared_password()
                updates["shared_password"] = plaintext
            updates["shared_password_bcrypt"] = self._hash(plaintext)

        if not updates:
            logger.debug("All credential fields supplied for namespace %s", params.namespace)
            return params

        logger.info(
            "Generated secret material for namespace %s: %s",
            params.namespace,
            ", ".join(sorted(updates)),
        )
        return params.model_copy(update=updates)

    def _token(self, field_name: str) -> str:
        try:
            token = self.token_source()
        except Exception as exc:
            raise SecretGenerationException(f"Failed to generate {field_name}") from exc
        if not token:
            raise SecretGenerationException(f"Token source returned an empty value for {field_name}")
        return token

    def _hash(self, plaintext: str) -> str:
        try:
            return self.hasher(plaintext)
        except Exception as exc:
            raise SecretGenerationException("Failed to bcrypt shared password") from exc

    def _ask_for_shared_password(self) -> str:
        if self.prompt is None:
            raise SecretGenerationException(
                "A shared password is required but none was supplied and prompting is disabled"
            )
        outcome = self.prompt()
        if outcome.status == "cancelled":
            raise OperatorCancelledException("Shared password prompt was cancelled")
        if outcome.status != "entered" or not outcome.value:
            raise SecretGenerationException("No valid shared password was entered")
        return outcome.value

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Callable, Literal

import typer

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
SHARED_PASSWORD_LABEL = "Enter a new password to be used for the Admin Console"
DEFAULT_MAX_ATTEMPTS = 5

Ask = Callable[[], str]
Validator = Callable[[str], "str | None"]


@dataclass(frozen=True)
class PromptOutcome:
    status: Literal["entered", "cancelled", "exhausted"]
    value: str | None = None

    @classmethod
    def entered(cls, value: str) -> PromptOutcome:
        return cls(status="entered", value=value)

    @classmethod
    def cancelled(cls) -> PromptOutcome:
        return cls(status="cancelled")

    @classmethod
    def exhausted(cls) -> PromptOutcome:
        return cls(status="exhausted")


def validate_shared_password(value: str) -> str | None:
    if len(value) < MIN_PASSWORD_LENGTH:
        return "please enter a longer password"
    return None


def prompt_until_valid(ask: Ask, validate: Validator, *, max_attempts: int) -> PromptOutcome:
    """Ask until the answer validates, the operator aborts, or attempts run out.

    An operator abort (Ctrl-C or EOF, surfaced by click as `typer.Abort`)
    ends the loop with a cancelled outcome; it is never retried.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            answer = ask()
        except typer.Abort:
            logger.debug("Prompt cancelled by operator on attempt %s", attempt)
            return PromptOutcome.cancelled()

        problem = validate(answer)
        if problem is None:
            return PromptOutcome.entered(answer)
        logger.debug("Rejected prompt input on attempt %s/%s: %s", attempt, max_attempts, problem)
        typer.secho(problem, fg=typer.colors.RED, err=True)
    return PromptOutcome.exhausted()


def _ask_shared_password() -> str:
    return typer.prompt(SHARED_PASSWORD_LABEL, hide_input=True)


def prompt_shared_password(
    *,
    ask: Ask | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> PromptOutcome:
    return prompt_until_valid(
        ask or _ask_shared_password,
        validate_shared_password,
        max_attempts=max_attempts,
    )

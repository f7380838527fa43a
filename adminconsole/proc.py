from __future__ import annotations

from dataclasses import dataclass
import re
import subprocess
from typing import Callable, Literal

# Only "not_found" changes control flow; the other categories are carried in
# the error message for diagnosis. Nothing is retried.
ErrorCategory = Literal["not_found", "already_exists", "transient", "fatal"]
CommandRunner = Callable[[list[str]], subprocess.CompletedProcess[str]]

# Only a NotFound for a named object counts; a NotFound for the resource
# type itself ("the server could not find the requested resource") does not.
# kubectl prints the API server's status reason in parentheses, e.g.
# 'Error from server (NotFound): secrets "kotsadm-session" not found'
_NOT_FOUND_RE = re.compile(
    r"error from server \(notfound\): [a-z0-9.-]+ \"(?P<name>[^\"]+)\" not found", re.IGNORECASE
)
_ALREADY_EXISTS_RE = re.compile(r"error from server \(alreadyexists\)")

_TRANSIENT_PATTERNS = (
    "timed out",
    "timeout",
    "temporarily unavailable",
    "connection refused",
    "connection reset",
    "i/o timeout",
    "tls handshake timeout",
    "context deadline exceeded",
    "unable to connect",
    "too many requests",
    "rate limit",
)


@dataclass(frozen=True)
class CommandResult:
    command: list[str]
    returncode: int
    stdout: str
    stderr: str


class AdapterCommandError(RuntimeError):
    def __init__(
        self,
        *,
        message: str,
        result: CommandResult,
        category: ErrorCategory,
    ) -> None:
        self.result = result
        self.category = category
        super().__init__(self._build_message(message))

    @property
    def not_found(self) -> bool:
        return self.category == "not_found"

    @property
    def missing_name(self) -> str | None:
        """Name of the object the API server reported as NotFound, if any."""
        if not self.not_found:
            return None
        match = _NOT_FOUND_RE.search(f"{self.result.stderr}\n{self.result.stdout}")
        return match.group("name") if match else None

    def _build_message(self, message: str) -> str:
        detail = (self.result.stderr or self.result.stdout).strip()
        if len(detail) > 400:
            detail = f"{detail[:397]}..."
        cmd = " ".join(self.result.command)
        return (
            f"{message} (category={self.category}, returncode={self.result.returncode}, "
            f"command={cmd!r}, detail={detail!r})"
        )


def default_runner(command: list[str]) -> subprocess.CompletedProcess[str]:
    try:
        return subprocess.run(command, capture_output=True, text=True, check=False)
    except OSError as exc:
        return subprocess.CompletedProcess(args=command, returncode=127, stdout="", stderr=str(exc))


def classify_error(*, returncode: int, stderr: str, stdout: str) -> ErrorCategory:
    if returncode < 0:
        return "transient"
    text = f"{stderr}\n{stdout}".lower()
    if _NOT_FOUND_RE.search(text):
        return "not_found"
    if _ALREADY_EXISTS_RE.search(text):
        return "already_exists"
    if any(pattern in text for pattern in _TRANSIENT_PATTERNS):
        return "transient"
    return "fatal"


def run_command(
    command: list[str],
    *,
    runner: CommandRunner | None = None,
    error_message: str,
) -> CommandResult:
    active_runner = runner or default_runner
    completed = active_runner(command)
    result = CommandResult(
        command=command,
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
    )
    if result.returncode != 0:
        raise AdapterCommandError(
            message=error_message,
            result=result,
            category=classify_error(
                returncode=result.returncode,
                stderr=result.stderr,
                stdout=result.stdout,
            ),
        )
    return result

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from adminconsole.models import ClusterResourceKey


class AdminConsoleException(Exception):
    pass


class IntegrityException(AdminConsoleException):
    pass


class SecretGenerationException(AdminConsoleException):
    pass


class OperatorCancelledException(AdminConsoleException):
    pass


class SerializationException(AdminConsoleException):
    def __init__(self, message: str, *, document_name: str | None = None) -> None:
        self.document_name = document_name
        super().__init__(message)


class ClusterAccessException(AdminConsoleException):
    def __init__(self, message: str, *, key: ClusterResourceKey, operation: str) -> None:
        self.key = key
        self.operation = operation
        super().__init__(f"{message} ({operation} {key})")


class ProvisioningException(AdminConsoleException):
    def __init__(
        self,
        message: str,
        *,
        group: str,
        key: ClusterResourceKey | None = None,
    ) -> None:
        self.group = group
        self.key = key
        super().__init__(message)

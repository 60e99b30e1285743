"""Error taxonomy shared by the check pipeline stages."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .check import CheckStage


class CheckError(RuntimeError):
    """Base class for every failure surfaced by `gpupgrade check`."""

    stage: "CheckStage | None" = None


class MissingRequiredFieldError(CheckError):
    """Raised when a required endpoint field was not supplied."""

    def __init__(self, field: str) -> None:
        super().__init__(f"the required flag '--{field}' was not specified")
        self.field = field


class ConnectionOpenError(CheckError):
    """Raised when a driver cannot open a connection."""


class UnsupportedDriverError(ConnectionOpenError):
    """Raised when no driver is registered under the requested name."""


class IdentityResolutionError(ConnectionOpenError):
    """Raised when the user to connect as cannot be determined."""


class QueryExecutionError(CheckError):
    """Raised when the topology query fails on an open connection."""


class SchemaMismatchError(CheckError):
    """Raised when topology rows do not have the shape the writer expects."""


class PersistenceError(CheckError):
    """Raised when the cluster config artifact cannot be written."""


__all__ = [
    "CheckError",
    "ConnectionOpenError",
    "IdentityResolutionError",
    "MissingRequiredFieldError",
    "PersistenceError",
    "QueryExecutionError",
    "SchemaMismatchError",
    "UnsupportedDriverError",
]

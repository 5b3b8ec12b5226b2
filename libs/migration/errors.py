# =============================================================================
# Migration Errors and Write Results
# =============================================================================
# Closed error taxonomy for the migration engine and the three-way result
# returned by every relational write.
# =============================================================================

"""Error kinds, exception classes and write results for the migration engine."""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Union

from pymongo.errors import PyMongoError
from sqlalchemy.exc import InterfaceError, OperationalError

__all__ = [
    "ErrorKind",
    "MigrationError",
    "SchemaValidationError",
    "RecordAlreadyMigrated",
    "PostgresUpdateFailed",
    "CyclicReferenceError",
    "UnresolvedReferenceError",
    "TransportError",
    "is_transport_error",
    "Committed",
    "Skipped",
    "Failed",
    "WriteResult",
]


class ErrorKind(str, Enum):
    """Closed set of migration error kinds. Callers branch on these."""

    SCHEMA_VALIDATION = "schema_validation"
    ALREADY_MIGRATED = "already_migrated"
    UPDATE_FAILED = "update_failed"
    CYCLIC_REFERENCE = "cyclic_reference"
    UNRESOLVED_REFERENCE = "unresolved_reference"
    TRANSPORT = "transport"


class MigrationError(Exception):
    """Base class for migration errors."""

    kind: ClassVar[ErrorKind]
    retryable: ClassVar[bool] = False


class SchemaValidationError(MigrationError):
    """A source record does not satisfy its schema. Fatal for that record."""

    kind = ErrorKind.SCHEMA_VALIDATION


class RecordAlreadyMigrated(MigrationError):
    """The relational row is already at least as new as the source record."""

    kind = ErrorKind.ALREADY_MIGRATED


class PostgresUpdateFailed(MigrationError):
    """An update or insert lost a race with a concurrent writer."""

    kind = ErrorKind.UPDATE_FAILED
    retryable = True


class CyclicReferenceError(MigrationError):
    """A parent-execution chain loops back on itself."""

    kind = ErrorKind.CYCLIC_REFERENCE

    def __init__(self, arn: str, chain: Optional[list[str]] = None):
        self.arn = arn
        self.chain = list(chain or [])
        path = " -> ".join([*self.chain, arn])
        super().__init__(f"Cyclic parent execution reference: {path}")


class UnresolvedReferenceError(MigrationError):
    """A required referenced entity does not exist."""

    kind = ErrorKind.UNRESOLVED_REFERENCE

    def __init__(self, referenced_kind: str, natural_key: str, message: Optional[str] = None):
        self.referenced_kind = referenced_kind
        self.natural_key = natural_key
        super().__init__(
            message or f"Referenced {referenced_kind} '{natural_key}' does not exist"
        )


class TransportError(MigrationError):
    """A store could not be reached or timed out. Always retryable."""

    kind = ErrorKind.TRANSPORT
    retryable = True


def is_transport_error(exc: BaseException) -> bool:
    """Whether ``exc`` is a connectivity/timeout failure of either store."""
    return isinstance(exc, (TransportError, OperationalError, InterfaceError, PyMongoError))


# =============================================================================
# Write Results
# =============================================================================

@dataclass(frozen=True)
class Committed:
    """The row was inserted (``created``) or updated."""

    cumulus_id: int
    created: bool = True


@dataclass(frozen=True)
class Skipped:
    """The write was a no-op; the relational row is already current."""

    error: RecordAlreadyMigrated

    @property
    def reason(self) -> str:
        return str(self.error)


@dataclass(frozen=True)
class Failed:
    """The write did not happen."""

    error: MigrationError

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind


WriteResult = Union[Committed, Skipped, Failed]

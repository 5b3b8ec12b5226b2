# =============================================================================
# Migration Summary Accumulator
# =============================================================================
# Per-kind counters for a migration pass and the streaming error log that
# backs them.
# =============================================================================

"""Summary counters and error log for migration passes."""

from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType
from typing import IO, Optional, Type
import json
import logging

from libs.models import (
    EntityKind,
    ErrorEntry,
    MigrationReport,
    MigrationResult,
)

from .errors import Committed, Failed, MigrationError, Skipped, WriteResult

__all__ = [
    "ErrorLog",
    "MigrationSummaryAccumulator",
    "error_archive_key",
    "migration_timestamp",
]

logger = logging.getLogger(__name__)


def migration_timestamp(now: Optional[datetime] = None) -> str:
    """Filesystem- and key-safe UTC timestamp used in error log names."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")


def error_archive_key(stack_name: str, migration_name: str, timestamp: str) -> str:
    """
    Object key of an archived error log.

    Example:
        >>> error_archive_key("prod", "executions", "2024-01-01T00-00-00-000000Z")
        'prod/data-migration2-executions-errors-2024-01-01T00-00-00-000000Z.json'
    """
    return f"{stack_name}/data-migration2-{migration_name}-errors-{timestamp}.json"


class ErrorLog:
    """
    Stream error entries to a local JSON document ``{"errors": [...]}``.

    Entries are written as they arrive so memory stays bounded however many
    records fail. The file is only a staging area; it is archived to object
    storage once the pass finishes.

    Example:
        >>> with ErrorLog(Path("/tmp/executionsErrorLog.json")) as error_log:
        ...     error_log.write(ErrorEntry(kind="executions", key="arn:1", error="boom"))
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self.count = 0
        self._handle: Optional[IO[str]] = None

    @classmethod
    def for_migration(cls, directory: Path, migration_name: str, timestamp: str) -> "ErrorLog":
        return cls(Path(directory) / f"{migration_name}ErrorLog-{timestamp}.json")

    @property
    def closed(self) -> bool:
        return self._handle is None

    def open(self) -> "ErrorLog":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._handle = open(self.path, "w", encoding="utf-8")
        self._handle.write('{"errors": [')
        return self

    def write(self, entry: ErrorEntry) -> None:
        if self._handle is None:
            raise RuntimeError(f"Error log '{self.path}' is not open")
        if self.count:
            self._handle.write(",")
        self._handle.write("\n" + json.dumps(entry.model_dump(mode="json", by_alias=True)))
        self.count += 1

    def close(self) -> None:
        if self._handle is None:
            return
        self._handle.write("\n]}\n")
        self._handle.close()
        self._handle = None

    def __enter__(self) -> "ErrorLog":
        return self.open()

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()


class MigrationSummaryAccumulator:
    """
    Count what happened to every source record of a pass.

    Call :meth:`seen` once per source record, then exactly one of
    :meth:`record` or :meth:`record_failure` for it. Failures are appended to
    the error log when one is attached.
    """

    def __init__(self, error_log: Optional[ErrorLog] = None):
        self.error_log = error_log
        self._results: dict[EntityKind, MigrationResult] = {
            kind: MigrationResult() for kind in EntityKind
        }

    def seen(self, kind: EntityKind, count: int = 1) -> None:
        self._results[EntityKind(kind)].dynamo_records += count

    def record(self, kind: EntityKind, result: WriteResult, key: Optional[str] = None) -> None:
        """Count a write result for one record of ``kind``."""
        kind = EntityKind(kind)
        if isinstance(result, Committed):
            self._results[kind].success += 1
        elif isinstance(result, Skipped):
            self._results[kind].skipped += 1
            logger.info(f"Skipped {kind.value} {key}: {result.reason}")
        elif isinstance(result, Failed):
            self.record_failure(kind, result.error, key)
        else:
            raise TypeError(f"Unknown write result {result!r}")

    def record_failure(self, kind: EntityKind, error: BaseException, key: Optional[str] = None) -> None:
        """Count a failed record and append it to the error log."""
        kind = EntityKind(kind)
        self._results[kind].failed += 1
        error_kind = error.kind.value if isinstance(error, MigrationError) else None
        logger.error(f"Could not migrate {kind.value} {key}: {error}")
        if self.error_log is not None and not self.error_log.closed:
            self.error_log.write(
                ErrorEntry(kind=kind, key=key, error=str(error), error_kind=error_kind)
            )

    def result(self, kind: EntityKind) -> MigrationResult:
        return self._results[EntityKind(kind)].model_copy()

    def report(self) -> MigrationReport:
        return MigrationReport(**{kind.value: self.result(kind) for kind in EntityKind})

    def merge(self, other: "MigrationSummaryAccumulator") -> MigrationReport:
        """Combine with an accumulator from an independently-run pass."""
        return self.report().merge(other.report())

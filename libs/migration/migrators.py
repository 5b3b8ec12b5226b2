# =============================================================================
# Bulk Migrators
# =============================================================================
# Per-kind bulk migration of key-value source records into the relational
# store: one transaction per top-level record, peek → process → advance.
# =============================================================================

"""
Bulk migration passes for executions, granules (with files) and PDRs.

Each pass walks a :class:`~libs.migration.cursor.ForwardCursor` and migrates
one top-level record per transaction. Record-level failures are counted and
logged and the pass continues; transport failures abort the pass so it can
be retried from the cursor position.
"""

from typing import Any, Callable, Mapping, Optional, TypeVar
import logging

from sqlalchemy.engine import Connection, Engine

from libs.models import EntityKind, MigrationResult, PostgresExecution

from .cursor import ForwardCursor
from .errors import (
    Committed,
    Failed,
    MigrationError,
    Skipped,
    TransportError,
    UnresolvedReferenceError,
    WriteResult,
    is_transport_error,
)
from .references import ReferenceKind, ReferenceResolver
from .summary import MigrationSummaryAccumulator
from .translate import record_key, translate_execution, translate_granule, translate_pdr
from .writer import GranuleWriteOutcome, MigrationWriter

__all__ = [
    "ExecutionMigrator",
    "GranuleMigrator",
    "PdrMigrator",
    "migrate_executions",
    "migrate_granules_and_files",
    "migrate_pdrs",
    "in_transaction",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

PROGRESS_LOG_INTERVAL = 1000

# Looks an execution up in the source store by ARN.
SourceExecutionLookup = Callable[[str], Optional[Mapping[str, Any]]]


def in_transaction(
    engine: Engine,
    work: Callable[[Connection], T],
    should_commit: Callable[[T], bool],
) -> T:
    """
    Run ``work`` in one transaction; commit only if ``should_commit(outcome)``.

    Exceptions raised by ``work`` roll the transaction back and propagate.
    """
    with engine.connect() as conn:
        with conn.begin() as trans:
            outcome = work(conn)
            if not should_commit(outcome):
                trans.rollback()
    return outcome


# =============================================================================
# Per-record migrators
# =============================================================================

class ExecutionMigrator:
    """
    Migrate one execution, migrating missing ancestors first.

    A parent that is not yet in the relational store is fetched from the
    source store and migrated inside the same transaction as its child,
    recursively. A parent chain that loops back fails the record with
    ``CyclicReferenceError``; a parent missing from the source store fails it
    with ``UnresolvedReferenceError``.
    """

    def __init__(
        self,
        engine: Engine,
        fetch_execution: SourceExecutionLookup,
        writer: Optional[MigrationWriter] = None,
        resolver: Optional[ReferenceResolver] = None,
    ):
        self.engine = engine
        self.fetch_execution = fetch_execution
        self.writer = writer or MigrationWriter()
        self.resolver = resolver or ReferenceResolver()

    def migrate_record(self, record: Mapping[str, Any]) -> WriteResult:
        try:
            row = translate_execution(record)
            return in_transaction(
                self.engine,
                lambda conn: self._write(conn, row, []),
                lambda result: isinstance(result, Committed),
            )
        except MigrationError as exc:
            return Failed(exc)

    def _write(self, conn: Connection, row: PostgresExecution, chain: list[str]) -> WriteResult:
        refs = self.resolver.resolve_execution_references(
            row.references,
            conn,
            migrate_parent=self._migrate_parent,
            chain=[*chain, row.arn],
        )
        return self.writer.write(EntityKind.EXECUTION, row, refs, conn)

    def _migrate_parent(self, conn: Connection, parent_arn: str, chain: list[str]) -> int:
        source = self.fetch_execution(parent_arn)
        if source is None:
            raise UnresolvedReferenceError(
                "execution",
                parent_arn,
                f"Parent execution '{parent_arn}' of '{chain[-1]}' "
                f"does not exist in the source store",
            )
        result = self._write(conn, translate_execution(source), chain)
        if isinstance(result, Committed):
            return result.cumulus_id
        if isinstance(result, Skipped):
            cumulus_id = self.resolver.resolve_cumulus_id(
                ReferenceKind.EXECUTION, parent_arn, conn
            )
            if cumulus_id is not None:
                return cumulus_id
            raise UnresolvedReferenceError("execution", parent_arn)
        raise result.error


class GranuleMigrator:
    """
    Migrate one granule with its files and execution link in one transaction.

    A granule whose collection does not exist fails without touching any of
    its files. Individual file failures are reported on the outcome and do
    not fail the granule.
    """

    def __init__(
        self,
        engine: Engine,
        writer: Optional[MigrationWriter] = None,
        resolver: Optional[ReferenceResolver] = None,
    ):
        self.engine = engine
        self.writer = writer or MigrationWriter()
        self.resolver = resolver or ReferenceResolver()

    def migrate_record(self, record: Mapping[str, Any]) -> GranuleWriteOutcome:
        try:
            row = translate_granule(record)
            files = record.get("files") or []

            def work(conn: Connection) -> GranuleWriteOutcome:
                refs = self.resolver.resolve_granule_references(row.references, conn)
                return self.writer.write_granule_with_files(
                    conn, row, refs, files, refs["execution_cumulus_id"]
                )

            return in_transaction(
                self.engine,
                work,
                lambda outcome: isinstance(outcome.granule, Committed),
            )
        except MigrationError as exc:
            return GranuleWriteOutcome(granule=Failed(exc))


class PdrMigrator:
    """Migrate one PDR. Collection and provider must already exist."""

    def __init__(
        self,
        engine: Engine,
        writer: Optional[MigrationWriter] = None,
        resolver: Optional[ReferenceResolver] = None,
    ):
        self.engine = engine
        self.writer = writer or MigrationWriter()
        self.resolver = resolver or ReferenceResolver()

    def migrate_record(self, record: Mapping[str, Any]) -> WriteResult:
        try:
            row = translate_pdr(record)

            def work(conn: Connection) -> WriteResult:
                refs = self.resolver.resolve_pdr_references(row.references, conn)
                return self.writer.write(EntityKind.PDR, row, refs, conn)

            return in_transaction(
                self.engine, work, lambda result: isinstance(result, Committed)
            )
        except MigrationError as exc:
            return Failed(exc)


# =============================================================================
# Passes
# =============================================================================

def _run_pass(
    kind: EntityKind,
    cursor: ForwardCursor,
    accumulator: MigrationSummaryAccumulator,
    handle: Callable[[Mapping[str, Any], Optional[str]], None],
) -> MigrationResult:
    logger.info(f"Starting {kind.value} migration")
    for record in cursor:
        key = record_key(kind, record)
        accumulator.seen(kind)
        try:
            handle(record, key)
        except Exception as exc:
            if is_transport_error(exc):
                logger.error(
                    f"Transport failure while migrating {kind.value} {key}; "
                    f"stopping at cursor position {cursor.position!r}"
                )
                raise TransportError(
                    f"Transport failure while migrating {kind.value} {key}: {exc}"
                ) from exc
            accumulator.record_failure(kind, exc, key)

        seen = accumulator.result(kind).dynamo_records
        if seen % PROGRESS_LOG_INTERVAL == 0:
            logger.info(f"Processed {seen} {kind.value} record(s)")

    result = accumulator.result(kind)
    logger.info(
        f"Finished {kind.value} migration: {result.dynamo_records} record(s), "
        f"{result.success} migrated, {result.skipped} skipped, {result.failed} failed"
    )
    return result


def migrate_executions(
    cursor: ForwardCursor,
    migrator: ExecutionMigrator,
    accumulator: MigrationSummaryAccumulator,
) -> MigrationResult:
    """Migrate every execution yielded by ``cursor``."""

    def handle(record: Mapping[str, Any], key: Optional[str]) -> None:
        accumulator.record(EntityKind.EXECUTION, migrator.migrate_record(record), key)

    return _run_pass(EntityKind.EXECUTION, cursor, accumulator, handle)


def migrate_granules_and_files(
    cursor: ForwardCursor,
    migrator: GranuleMigrator,
    accumulator: MigrationSummaryAccumulator,
) -> tuple[MigrationResult, MigrationResult]:
    """
    Migrate every granule yielded by ``cursor`` together with its files.

    Files are counted only when their granule was written, so a granule that
    fails contributes no file records.

    Returns:
        ``(granules_result, files_result)``
    """

    def handle(record: Mapping[str, Any], key: Optional[str]) -> None:
        outcome = migrator.migrate_record(record)
        accumulator.record(EntityKind.GRANULE, outcome.granule, key)
        for file_result in outcome.files:
            accumulator.seen(EntityKind.FILE)
            accumulator.record(EntityKind.FILE, file_result.result, file_result.key)

    granules = _run_pass(EntityKind.GRANULE, cursor, accumulator, handle)
    return granules, accumulator.result(EntityKind.FILE)


def migrate_pdrs(
    cursor: ForwardCursor,
    migrator: PdrMigrator,
    accumulator: MigrationSummaryAccumulator,
) -> MigrationResult:
    """Migrate every PDR yielded by ``cursor``."""

    def handle(record: Mapping[str, Any], key: Optional[str]) -> None:
        accumulator.record(EntityKind.PDR, migrator.migrate_record(record), key)

    return _run_pass(EntityKind.PDR, cursor, accumulator, handle)

# =============================================================================
# Migration Runner
# =============================================================================
# Runs bulk migration passes end to end: cursor, migrator, summary, error log
# and error archive.
# =============================================================================

"""Run bulk migration passes and archive their error logs."""

from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Protocol
import logging

from sqlalchemy.engine import Engine

from libs.models import EntityKind, MigrationName, MigrationParams, MigrationReport

from .cursor import ForwardCursor
from .migrators import (
    ExecutionMigrator,
    GranuleMigrator,
    PdrMigrator,
    migrate_executions,
    migrate_granules_and_files,
    migrate_pdrs,
)
from .summary import (
    ErrorLog,
    MigrationSummaryAccumulator,
    error_archive_key,
    migration_timestamp,
)

__all__ = ["MigrationSource", "run_migration_pass", "run_migration"]

logger = logging.getLogger(__name__)

# Uploads a local error log under the given object key.
ErrorArchiver = Callable[[Path, str], None]


class MigrationSource(Protocol):
    """Read access to the key-value source collections."""

    def open_cursor(
        self,
        kind: EntityKind,
        query: Optional[Mapping[str, Any]] = None,
        page_size: int = ...,
    ) -> ForwardCursor: ...

    def get_execution(self, arn: str) -> Optional[dict[str, Any]]: ...


def run_migration_pass(
    migration: MigrationName,
    params: MigrationParams,
    source: MigrationSource,
    engine: Engine,
    work_dir: Path,
    archive: Optional[ErrorArchiver] = None,
    cleanup: bool = True,
) -> MigrationReport:
    """
    Run one migration pass.

    Failures are streamed to ``<work_dir>/<migration>ErrorLog-<timestamp>.json``
    which, when ``archive`` is given and ``params.archive_errors`` is set, is
    uploaded as ``<stack>/data-migration2-<migration>-errors-<timestamp>.json``.

    Args:
        migration: Pass to run; an empty report is returned if it is not
            selected in ``params``
        params: Run parameters
        source: Key-value source collections
        engine: Relational engine
        work_dir: Directory for the local error log
        archive: Uploader for the error log
        cleanup: Remove the local error log once archived

    Returns:
        Report with this pass's counters (and archive key, if uploaded)

    Raises:
        TransportError: If either store becomes unreachable mid-pass
    """
    migration = MigrationName(migration)
    if not params.includes(migration):
        logger.info(f"Migration '{migration.value}' not selected, skipping")
        return MigrationReport()

    timestamp = migration_timestamp()
    error_log = ErrorLog.for_migration(work_dir, migration.value, timestamp)
    accumulator = MigrationSummaryAccumulator(error_log)

    with error_log:
        if migration == MigrationName.EXECUTIONS:
            cursor = source.open_cursor(EntityKind.EXECUTION, page_size=params.page_size)
            migrate_executions(
                cursor, ExecutionMigrator(engine, source.get_execution), accumulator
            )
        elif migration == MigrationName.GRANULES:
            cursor = source.open_cursor(
                EntityKind.GRANULE,
                query=params.granule_filters.to_query(),
                page_size=params.page_size,
            )
            migrate_granules_and_files(cursor, GranuleMigrator(engine), accumulator)
        else:
            cursor = source.open_cursor(EntityKind.PDR, page_size=params.page_size)
            migrate_pdrs(cursor, PdrMigrator(engine), accumulator)

    report = accumulator.report()
    if archive is not None and params.archive_errors:
        key = error_archive_key(params.stack_name, migration.value, timestamp)
        archive(error_log.path, key)
        report.error_archive_keys.append(key)
        logger.info(f"Archived {error_log.count} error(s) of '{migration.value}' to {key}")
        if cleanup:
            error_log.path.unlink(missing_ok=True)
    return report


def run_migration(
    params: MigrationParams,
    source: MigrationSource,
    engine: Engine,
    work_dir: Path,
    archive: Optional[ErrorArchiver] = None,
    cleanup: bool = True,
) -> MigrationReport:
    """Run every selected pass in order and merge their reports."""
    report = MigrationReport()
    for migration in MigrationName:
        report = report.merge(
            run_migration_pass(
                migration, params, source, engine, work_dir, archive=archive, cleanup=cleanup
            )
        )
    return report

# =============================================================================
# Migration Engine Library
# =============================================================================
# Bulk migration and steady-state dual-write of key-value metadata records
# into the relational store.
# =============================================================================

"""
Migration engine.

Components, leaf first:
- ForwardCursor: paging iterator over a source collection
- translate_*: source record → typed relational row
- ReferenceResolver: natural key → cumulus_id
- MigrationWriter: idempotent, monotonic relational writes
- DualWriteGate / DualWriter: steady-state eligibility and dual write
- MigrationSummaryAccumulator / ErrorLog: per-kind counters and error log
"""

from .errors import (
    Committed,
    CyclicReferenceError,
    ErrorKind,
    Failed,
    MigrationError,
    PostgresUpdateFailed,
    RecordAlreadyMigrated,
    SchemaValidationError,
    Skipped,
    TransportError,
    UnresolvedReferenceError,
    WriteResult,
    is_transport_error,
)
from .cursor import DEFAULT_PAGE_SIZE, ForwardCursor
from .translate import (
    parse_s3_uri,
    record_key,
    translate,
    translate_execution,
    translate_file,
    translate_granule,
    translate_pdr,
)
from .references import ReferenceKind, ReferenceResolver
from .writer import FileWriteResult, GranuleWriteOutcome, MigrationWriter
from .summary import (
    ErrorLog,
    MigrationSummaryAccumulator,
    error_archive_key,
    migration_timestamp,
)
from .migrators import (
    ExecutionMigrator,
    GranuleMigrator,
    PdrMigrator,
    in_transaction,
    migrate_executions,
    migrate_granules_and_files,
    migrate_pdrs,
)
from .gate import DualWriteGate, GateDecision
from .runner import MigrationSource, run_migration, run_migration_pass
from .dual_write import (
    DualWriteOutcome,
    DualWriter,
    KeyValueStore,
    MessageRecords,
    handle_completion_messages,
    records_from_message,
)

__all__ = [
    # Errors and results
    "Committed",
    "CyclicReferenceError",
    "ErrorKind",
    "Failed",
    "MigrationError",
    "PostgresUpdateFailed",
    "RecordAlreadyMigrated",
    "SchemaValidationError",
    "Skipped",
    "TransportError",
    "UnresolvedReferenceError",
    "WriteResult",
    "is_transport_error",
    # Cursor
    "DEFAULT_PAGE_SIZE",
    "ForwardCursor",
    # Translation
    "parse_s3_uri",
    "record_key",
    "translate",
    "translate_execution",
    "translate_file",
    "translate_granule",
    "translate_pdr",
    # References
    "ReferenceKind",
    "ReferenceResolver",
    # Writer
    "FileWriteResult",
    "GranuleWriteOutcome",
    "MigrationWriter",
    # Summary
    "ErrorLog",
    "MigrationSummaryAccumulator",
    "error_archive_key",
    "migration_timestamp",
    # Bulk migration
    "ExecutionMigrator",
    "GranuleMigrator",
    "PdrMigrator",
    "in_transaction",
    "migrate_executions",
    "migrate_granules_and_files",
    "migrate_pdrs",
    # Runner
    "MigrationSource",
    "run_migration",
    "run_migration_pass",
    # Dual write
    "DualWriteGate",
    "GateDecision",
    "DualWriteOutcome",
    "DualWriter",
    "KeyValueStore",
    "MessageRecords",
    "handle_completion_messages",
    "records_from_message",
]

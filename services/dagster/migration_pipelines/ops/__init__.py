"""Dagster Ops - Reusable Computation Units."""

from .migration_ops import (
    MigrationRunConfig,
    load_migration_params,
    migrate_executions_op,
    migrate_granules_and_files_op,
    migrate_pdrs_op,
    summarize_migration_op,
)
from .dual_write_ops import CompletionEventConfig, write_completion_event_op

__all__ = [
    "MigrationRunConfig",
    "load_migration_params",
    "migrate_executions_op",
    "migrate_granules_and_files_op",
    "migrate_pdrs_op",
    "summarize_migration_op",
    "CompletionEventConfig",
    "write_completion_event_op",
]

"""Bulk data migration job (op-based)."""

from dagster import job

from ..ops import (
    load_migration_params,
    migrate_executions_op,
    migrate_granules_and_files_op,
    migrate_pdrs_op,
    summarize_migration_op,
)


@job(
    name="data_migration_job",
    description="Bulk migration of executions, granules/files and PDRs from the key-value store to the relational store",
)
def data_migration_job():
    """
    Bulk migration job, launched manually with a MigrationRunConfig.

    Pipeline flow:
    1. load_migration_params: Validates run config and relational schema
    2. migrate_executions_op: Executions, parents before children
    3. migrate_granules_and_files_op: Granules with their files and execution links
    4. migrate_pdrs_op: PDRs
    5. summarize_migration_op: Logs the merged summary

    Passes not selected in the run config are skipped but still chained, so
    the report flows through every op.
    """
    params = load_migration_params()
    report = migrate_executions_op(params)
    report = migrate_granules_and_files_op(params, report)
    report = migrate_pdrs_op(params, report)
    summarize_migration_op(report)

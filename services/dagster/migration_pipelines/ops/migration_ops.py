# =============================================================================
# Migration Ops - Bulk Key-Value to Relational Migration
# =============================================================================
# One op per migration pass, chained so that executions are migrated before
# granules (which join to them) and PDRs. Each pass streams its failures to a
# local error log and uploads it to the archive bucket.
# =============================================================================

"""Bulk data migration ops."""

from pathlib import Path
from typing import Any, Dict, List, Optional
import tempfile

from dagster import Config, OpExecutionContext, op
from pydantic import Field

from libs.migration import run_migration_pass
from libs.models import GranuleFilters, MigrationName, MigrationParams, MigrationReport

from ..resources import MinIOResource, MongoDBResource, PostgresResource

__all__ = [
    "MigrationRunConfig",
    "load_migration_params",
    "migrate_executions_op",
    "migrate_granules_and_files_op",
    "migrate_pdrs_op",
    "summarize_migration_op",
]

MIGRATION_RESOURCE_KEYS = {"mongodb", "postgres", "minio"}


class MigrationRunConfig(Config):
    """Run config for ``data_migration_job``."""

    migrations: List[str] = Field(
        default_factory=lambda: [name.value for name in MigrationName],
        description="Passes to run: executions, granules, pdrs",
    )
    page_size: int = Field(100, description="Source records fetched per round trip")
    collection_id: Optional[str] = Field(None, description="Only migrate granules of this collection")
    granule_id: Optional[str] = Field(None, description="Only migrate this granule")
    stack_name: str = Field("cumulus", description="Prefix for archived error logs")
    archive_errors: bool = Field(True, description="Upload error logs to the archive bucket")

    def to_params(self) -> MigrationParams:
        return MigrationParams(
            migrations=self.migrations,
            page_size=self.page_size,
            granule_filters=GranuleFilters(
                collection_id=self.collection_id,
                granule_id=self.granule_id,
            ),
            stack_name=self.stack_name,
            archive_errors=self.archive_errors,
        )


def _run_migration_pass(
    migration: MigrationName,
    mongodb: MongoDBResource,
    postgres: PostgresResource,
    minio: MinIOResource,
    params: MigrationParams,
    report: MigrationReport,
    log,
) -> MigrationReport:
    """
    Run one pass and merge its counters into the running report.

    Args:
        migration: Pass to run
        mongodb: Source collections
        postgres: Relational target
        minio: Error archive storage
        params: Run parameters
        report: Report of the passes run so far
        log: Logger instance (context.log)

    Returns:
        The merged report
    """
    if not params.includes(migration):
        log.info(f"Skipping '{migration.value}' migration (not selected)")
        return report

    log.info(f"Starting '{migration.value}' migration (page_size={params.page_size})")
    with tempfile.TemporaryDirectory(prefix="data-migration-") as work_dir:
        pass_report = run_migration_pass(
            migration,
            params,
            source=mongodb,
            engine=postgres.get_engine(),
            work_dir=Path(work_dir),
            archive=minio.upload_error_archive,
        )

    for kind, result in pass_report.model_dump(include={"executions", "granules", "files", "pdrs"}).items():
        if result["dynamo_records"]:
            log.info(
                f"{kind}: {result['success']} migrated, {result['skipped']} skipped, "
                f"{result['failed']} failed of {result['dynamo_records']}"
            )
    for key in pass_report.error_archive_keys:
        log.info(f"Error log archived to s3://{minio.archive_bucket}/{key}")

    return report.merge(pass_report)


def _load_params(params: Dict[str, Any]) -> MigrationParams:
    return MigrationParams.model_validate(params)


def _load_report(report: Dict[str, Any]) -> MigrationReport:
    return MigrationReport.model_validate(report)


@op(required_resource_keys={"postgres"})
def load_migration_params(context: OpExecutionContext, config: MigrationRunConfig) -> dict:
    """
    Validate the run config and the relational schema.

    Returns:
        MigrationParams as a JSON-compatible dict for downstream ops
    """
    params = config.to_params()
    context.resources.postgres.check_schema()
    context.log.info(
        f"Data migration requested: {', '.join(m.value for m in params.migrations)}"
    )
    return params.model_dump(mode="json")


@op(required_resource_keys=MIGRATION_RESOURCE_KEYS)
def migrate_executions_op(context: OpExecutionContext, params: dict) -> dict:
    """Migrate execution records, parents before children."""
    report = _run_migration_pass(
        MigrationName.EXECUTIONS,
        mongodb=context.resources.mongodb,
        postgres=context.resources.postgres,
        minio=context.resources.minio,
        params=_load_params(params),
        report=MigrationReport(),
        log=context.log,
    )
    return report.to_summary()


@op(required_resource_keys=MIGRATION_RESOURCE_KEYS)
def migrate_granules_and_files_op(context: OpExecutionContext, params: dict, report: dict) -> dict:
    """Migrate granule records together with their files."""
    merged = _run_migration_pass(
        MigrationName.GRANULES,
        mongodb=context.resources.mongodb,
        postgres=context.resources.postgres,
        minio=context.resources.minio,
        params=_load_params(params),
        report=_load_report(report),
        log=context.log,
    )
    return merged.to_summary()


@op(required_resource_keys=MIGRATION_RESOURCE_KEYS)
def migrate_pdrs_op(context: OpExecutionContext, params: dict, report: dict) -> dict:
    """Migrate PDR records."""
    merged = _run_migration_pass(
        MigrationName.PDRS,
        mongodb=context.resources.mongodb,
        postgres=context.resources.postgres,
        minio=context.resources.minio,
        params=_load_params(params),
        report=_load_report(report),
        log=context.log,
    )
    return merged.to_summary()


@op
def summarize_migration_op(context: OpExecutionContext, report: dict) -> dict:
    """
    Log the final summary of a migration run.

    Raises:
        RuntimeError: If any counter set does not add up to its record count
    """
    summary = _load_report(report)
    context.log.info(f"Data migration summary: {summary.to_summary()}")
    if not summary.is_exhaustive:
        raise RuntimeError(f"Migration summary is not exhaustive: {summary.to_summary()}")
    return summary.to_summary()

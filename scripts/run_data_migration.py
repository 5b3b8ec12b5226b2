# =============================================================================
# Data Migration Runner
# =============================================================================
# Runs the bulk key-value to relational migration outside Dagster, e.g. from
# an operator shell during a deployment window. Connection settings come from
# the environment (.env); run parameters from the command line.
# =============================================================================

import argparse
import json
import sys
import tempfile
from pathlib import Path

from libs.migration import run_migration
from libs.models import (
    GranuleFilters,
    MigrationName,
    MigrationParams,
    MinIOSettings,
    MongoSettings,
    PostgresSettings,
)
from services.dagster.migration_pipelines.resources import (
    MinIOResource,
    MongoDBResource,
    PostgresResource,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Raises:
        SystemExit: On invalid arguments
    """
    parser = argparse.ArgumentParser(description="Migrate key-value metadata records to the relational store")
    parser.add_argument(
        "--migrations",
        nargs="+",
        choices=[name.value for name in MigrationName],
        default=[name.value for name in MigrationName],
        help="Passes to run (default: all)",
    )
    parser.add_argument("--page-size", type=int, default=100, help="Source records per round trip")
    parser.add_argument("--collection-id", help="Only migrate granules of this collection")
    parser.add_argument("--granule-id", help="Only migrate this granule")
    parser.add_argument("--stack-name", default="cumulus", help="Prefix for archived error logs")
    parser.add_argument(
        "--no-archive",
        action="store_true",
        help="Keep error logs local instead of uploading them",
    )
    parser.add_argument(
        "--error-dir",
        type=Path,
        help="Write error logs to this directory and keep them (default: temporary directory)",
    )
    return parser.parse_args(argv)


def build_params(args: argparse.Namespace) -> MigrationParams:
    return MigrationParams(
        migrations=args.migrations,
        page_size=args.page_size,
        granule_filters=GranuleFilters(
            collection_id=args.collection_id,
            granule_id=args.granule_id,
        ),
        stack_name=args.stack_name,
        archive_errors=not args.no_archive,
    )


def main(argv: list[str] | None = None) -> int:
    """
    Migration runner entry point.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = parse_args(argv)
    params = build_params(args)

    try:
        mongo_settings = MongoSettings()
        postgres_settings = PostgresSettings()

        mongodb = MongoDBResource(
            connection_string=mongo_settings.connection_string,
            database=mongo_settings.database,
            executions_collection=mongo_settings.executions_collection,
            granules_collection=mongo_settings.granules_collection,
            pdrs_collection=mongo_settings.pdrs_collection,
        )
        postgres = PostgresResource(
            host=postgres_settings.host,
            port=postgres_settings.port,
            user=postgres_settings.user,
            password=postgres_settings.password,
            database=postgres_settings.database,
        )
        postgres.check_schema()

        archive = None
        if params.archive_errors:
            minio_settings = MinIOSettings()
            minio = MinIOResource(
                endpoint=minio_settings.endpoint,
                access_key=minio_settings.access_key,
                secret_key=minio_settings.secret_key,
                use_ssl=minio_settings.use_ssl,
                landing_bucket=minio_settings.landing_bucket,
                archive_bucket=minio_settings.archive_bucket,
            )
            archive = minio.upload_error_archive

        if args.error_dir is not None:
            args.error_dir.mkdir(parents=True, exist_ok=True)
            report = run_migration(
                params,
                source=mongodb,
                engine=postgres.get_engine(),
                work_dir=args.error_dir,
                archive=archive,
                cleanup=False,
            )
            print(f"Error logs kept in {args.error_dir}")
        else:
            with tempfile.TemporaryDirectory(prefix="data-migration-") as work_dir:
                report = run_migration(
                    params,
                    source=mongodb,
                    engine=postgres.get_engine(),
                    work_dir=Path(work_dir),
                    archive=archive,
                )

        print(json.dumps(report.to_summary(), indent=2))
        if not report.is_exhaustive:
            print("Migration summary is not exhaustive", file=sys.stderr)
            return 1
        return 0

    except Exception as e:
        print(f"Data migration failed: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())

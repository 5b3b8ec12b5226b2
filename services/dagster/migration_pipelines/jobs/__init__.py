"""Dagster Jobs - Executable Workflows."""

from .data_migration_job import data_migration_job
from .dual_write_job import dual_write_job

__all__ = ["data_migration_job", "dual_write_job"]

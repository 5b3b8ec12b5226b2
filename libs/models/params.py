# =============================================================================
# Migration Parameters
# =============================================================================
# Invocation parameters for a bulk migration run.
# =============================================================================

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

__all__ = ["MigrationName", "GranuleFilters", "MigrationParams"]


class MigrationName(str, Enum):
    """Independently runnable migration passes."""

    EXECUTIONS = "executions"
    GRANULES = "granules"
    PDRS = "pdrs"


class GranuleFilters(BaseModel):
    """Optional filters narrowing the granule pass."""

    collection_id: Optional[str] = Field(None, description="Only granules of this collection")
    granule_id: Optional[str] = Field(None, description="Only this granule")

    def to_query(self) -> dict[str, Any]:
        """MongoDB filter document for the granules collection."""
        query: dict[str, Any] = {}
        if self.collection_id:
            query["collectionId"] = self.collection_id
        if self.granule_id:
            query["granuleId"] = self.granule_id
        return query


class MigrationParams(BaseModel):
    """
    Parameters of one bulk migration run.

    Attributes:
        migrations: Passes to run (default: all), executed in the order
            executions, granules, pdrs
        page_size: Source records fetched per round trip
        granule_filters: Filters applied to the granule pass
        stack_name: Prefix for archived error logs
        archive_errors: Upload each pass's error log to object storage
    """

    migrations: list[MigrationName] = Field(
        default_factory=lambda: list(MigrationName),
        min_length=1,
    )
    page_size: int = Field(100, ge=1, le=10_000)
    granule_filters: GranuleFilters = Field(default_factory=GranuleFilters)
    stack_name: str = Field("cumulus", min_length=1)
    archive_errors: bool = True

    @field_validator("migrations")
    @classmethod
    def dedupe_migrations(cls, v: list[MigrationName]) -> list[MigrationName]:
        return list(dict.fromkeys(v))

    def includes(self, migration: MigrationName) -> bool:
        return MigrationName(migration) in self.migrations

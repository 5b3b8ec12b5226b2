# =============================================================================
# Migration Summary Models
# =============================================================================
# Per-entity counters produced by a migration pass and the aggregate report
# produced by merging passes.
# =============================================================================

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import EntityKind

__all__ = ["MigrationResult", "MigrationReport", "ErrorEntry"]


class MigrationResult(BaseModel):
    """
    Counters for one entity kind.

    Every source record seen is counted exactly once as a success, a
    failure or a skip, so ``success + failed + skipped == dynamo_records``
    once a pass has finished.

    Serialized with the camelCase names used by the archived summaries
    (``dynamoRecords``, ``success``, ``failed``, ``skipped``).
    """

    dynamo_records: int = Field(0, ge=0, alias="dynamoRecords")
    success: int = Field(0, ge=0)
    failed: int = Field(0, ge=0)
    skipped: int = Field(0, ge=0)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def processed(self) -> int:
        return self.success + self.failed + self.skipped

    @property
    def is_exhaustive(self) -> bool:
        return self.processed == self.dynamo_records

    def __add__(self, other: "MigrationResult") -> "MigrationResult":
        return MigrationResult(
            dynamo_records=self.dynamo_records + other.dynamo_records,
            success=self.success + other.success,
            failed=self.failed + other.failed,
            skipped=self.skipped + other.skipped,
        )


class MigrationReport(BaseModel):
    """Aggregate of per-kind results for one migration run."""

    executions: MigrationResult = Field(default_factory=MigrationResult)
    granules: MigrationResult = Field(default_factory=MigrationResult)
    files: MigrationResult = Field(default_factory=MigrationResult)
    pdrs: MigrationResult = Field(default_factory=MigrationResult)
    error_archive_keys: list[str] = Field(default_factory=list)

    def result_for(self, kind: EntityKind) -> MigrationResult:
        return getattr(self, EntityKind(kind).value)

    def merge(self, other: "MigrationReport") -> "MigrationReport":
        """Combine two reports produced by independent passes."""
        merged = {
            kind.value: self.result_for(kind) + other.result_for(kind)
            for kind in EntityKind
        }
        return MigrationReport(
            **merged,
            error_archive_keys=self.error_archive_keys + other.error_archive_keys,
        )

    @property
    def is_exhaustive(self) -> bool:
        return all(self.result_for(kind).is_exhaustive for kind in EntityKind)

    def to_summary(self) -> dict[str, Any]:
        """Serialize with the archived summary field names."""
        return self.model_dump(by_alias=True)


class ErrorEntry(BaseModel):
    """One failed record in the error log."""

    kind: EntityKind
    key: Optional[str] = None
    error: str
    error_kind: Optional[str] = Field(None, alias="errorKind")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True)

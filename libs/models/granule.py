# =============================================================================
# Granule and File Models
# =============================================================================
# Source schemas and relational rows for granules and their files.
# =============================================================================

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .base import (
    CollectionKey,
    DecimalString,
    EpochOrIsoDateTime,
    RowModel,
    SourceRecord,
)

__all__ = [
    "GranuleStatus",
    "GranuleRecord",
    "FileRecord",
    "GranuleReferences",
    "PostgresGranule",
    "PostgresFile",
]


class GranuleStatus(str, Enum):
    """Status of a granule."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    QUEUED = "queued"


class FileRecord(SourceRecord):
    """
    File entry embedded in a granule document.

    ``bucket``/``key`` are optional; older documents only carry an
    ``s3://bucket/key`` style ``filename``.
    """

    bucket: Optional[str] = None
    key: Optional[str] = None
    filename: Optional[str] = None
    file_name: Optional[str] = None
    size: DecimalString = None
    checksum: Optional[str] = None
    checksum_type: Optional[str] = None
    source: Optional[str] = None
    path: Optional[str] = None
    type: Optional[str] = None


class GranuleRecord(SourceRecord):
    """
    Granule document as stored in the key-value store.

    ``files`` is kept as raw documents so that each file can be validated
    and written independently of its siblings.
    """

    granule_id: str = Field(..., min_length=1)
    collection_id: str
    status: GranuleStatus
    execution: Optional[str] = None
    provider: Optional[str] = None
    pdr_name: Optional[str] = None
    cmr_link: Optional[str] = None
    published: Optional[bool] = None
    duration: Optional[float] = None
    time_to_archive: Optional[float] = None
    time_to_process: Optional[float] = Field(None, alias="timeToPreprocess")
    product_volume: DecimalString = None
    error: Optional[Any] = None
    files: list[dict[str, Any]] = Field(default_factory=list)
    beginning_date_time: EpochOrIsoDateTime = None
    ending_date_time: EpochOrIsoDateTime = None
    last_update_date_time: EpochOrIsoDateTime = None
    processing_start_date_time: EpochOrIsoDateTime = None
    processing_end_date_time: EpochOrIsoDateTime = None
    production_date_time: EpochOrIsoDateTime = None
    timestamp: EpochOrIsoDateTime = None
    created_at: EpochOrIsoDateTime = None
    updated_at: EpochOrIsoDateTime = None

    @field_validator("collection_id")
    @classmethod
    def validate_collection_id(cls, v: str) -> str:
        CollectionKey.from_collection_id(v)
        return v

    @field_validator("files", mode="before")
    @classmethod
    def validate_files(cls, v: Any) -> Any:
        return [] if v is None else v


class GranuleReferences(BaseModel):
    """Unresolved natural-key references of a granule row."""

    collection: CollectionKey
    provider: Optional[str] = None
    pdr_name: Optional[str] = None
    execution_url: Optional[str] = None


class PostgresGranule(RowModel):
    """Translated ``granules`` row (foreign keys not yet resolved)."""

    granule_id: str
    status: GranuleStatus
    cmr_link: Optional[str] = None
    published: Optional[bool] = None
    duration: Optional[float] = None
    time_to_archive: Optional[float] = None
    time_to_process: Optional[float] = None
    product_volume: Optional[str] = None
    error: Optional[Any] = None
    beginning_date_time: EpochOrIsoDateTime = None
    ending_date_time: EpochOrIsoDateTime = None
    last_update_date_time: EpochOrIsoDateTime = None
    processing_start_date_time: EpochOrIsoDateTime = None
    processing_end_date_time: EpochOrIsoDateTime = None
    production_date_time: EpochOrIsoDateTime = None
    timestamp: EpochOrIsoDateTime = None
    created_at: EpochOrIsoDateTime = None
    updated_at: EpochOrIsoDateTime = None
    references: GranuleReferences = Field(..., exclude=True)


class PostgresFile(RowModel):
    """Translated ``files`` row; ``granule_cumulus_id`` is supplied by the writer."""

    bucket: Optional[str] = None
    key: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[str] = None
    checksum_type: Optional[str] = None
    checksum_value: Optional[str] = None
    source: Optional[str] = None
    path: Optional[str] = None
    type: Optional[str] = None

    @property
    def display_key(self) -> str:
        """Human-readable identity used in error logs."""
        if self.bucket and self.key:
            return f"s3://{self.bucket}/{self.key}"
        return self.file_name or "<unnamed file>"

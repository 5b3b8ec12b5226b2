# =============================================================================
# PDR Models
# =============================================================================
# Source schema and relational row for product delivery records (PDRs).
# =============================================================================

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .base import CollectionKey, EpochOrIsoDateTime, RowModel, SourceRecord

__all__ = ["PdrStatus", "PdrRecord", "PdrReferences", "PostgresPdr"]


class PdrStatus(str, Enum):
    """Status of a PDR."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PdrRecord(SourceRecord):
    """PDR document as stored in the key-value store."""

    pdr_name: str = Field(..., min_length=1)
    collection_id: str
    provider: str = Field(..., min_length=1)
    status: PdrStatus
    execution: Optional[str] = None
    progress: Optional[float] = None
    pan_sent: Optional[bool] = Field(None, alias="PANSent")
    pan_message: Optional[str] = Field(None, alias="PANmessage")
    stats: Optional[dict[str, Any]] = None
    address: Optional[str] = None
    original_url: Optional[str] = None
    duration: Optional[float] = None
    timestamp: EpochOrIsoDateTime = None
    created_at: EpochOrIsoDateTime = None
    updated_at: EpochOrIsoDateTime = None

    @field_validator("collection_id")
    @classmethod
    def validate_collection_id(cls, v: str) -> str:
        CollectionKey.from_collection_id(v)
        return v


class PdrReferences(BaseModel):
    """Unresolved natural-key references of a PDR row."""

    collection: CollectionKey
    provider: str
    execution_url: Optional[str] = None


class PostgresPdr(RowModel):
    """Translated ``pdrs`` row (foreign keys not yet resolved)."""

    name: str
    status: PdrStatus
    progress: Optional[float] = None
    pan_sent: Optional[bool] = None
    pan_message: Optional[str] = None
    stats: Optional[dict[str, Any]] = None
    address: Optional[str] = None
    original_url: Optional[str] = None
    duration: Optional[float] = None
    timestamp: EpochOrIsoDateTime = None
    created_at: EpochOrIsoDateTime = None
    updated_at: EpochOrIsoDateTime = None
    references: PdrReferences = Field(..., exclude=True)

# =============================================================================
# Execution Models
# =============================================================================
# Source schema and relational row for workflow executions.
# =============================================================================

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .base import CollectionKey, EpochOrIsoDateTime, RowModel, SourceRecord

__all__ = [
    "ExecutionStatus",
    "ExecutionRecord",
    "ExecutionReferences",
    "PostgresExecution",
]


class ExecutionStatus(str, Enum):
    """Status of a workflow execution."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"


class ExecutionRecord(SourceRecord):
    """
    Execution document as stored in the key-value store.

    Attributes:
        arn: Execution ARN (natural key)
        name: Execution name
        status: Execution status
        execution: Console URL of the execution, referenced by granules and PDRs
        type: Workflow name
        parent_arn: ARN of the parent execution, if any
        async_operation_id: Id of the async operation that started it, if any
        collection_id: ``name___version`` of the collection, if any
    """

    arn: str = Field(..., min_length=1)
    name: Optional[str] = None
    status: ExecutionStatus
    execution: Optional[str] = None
    type: Optional[str] = None
    parent_arn: Optional[str] = None
    async_operation_id: Optional[str] = None
    collection_id: Optional[str] = None
    cumulus_version: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[Any] = None
    tasks: Optional[dict[str, Any]] = None
    original_payload: Optional[dict[str, Any]] = None
    final_payload: Optional[dict[str, Any]] = None
    timestamp: EpochOrIsoDateTime = None
    created_at: EpochOrIsoDateTime = None
    updated_at: EpochOrIsoDateTime = None

    @field_validator("collection_id")
    @classmethod
    def validate_collection_id(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            CollectionKey.from_collection_id(v)
        return v


class ExecutionReferences(BaseModel):
    """Unresolved natural-key references of an execution row."""

    collection: Optional[CollectionKey] = None
    parent_arn: Optional[str] = None
    async_operation_id: Optional[str] = None


class PostgresExecution(RowModel):
    """Translated ``executions`` row (foreign keys not yet resolved)."""

    arn: str
    name: Optional[str] = None
    status: ExecutionStatus
    url: Optional[str] = None
    workflow_name: Optional[str] = None
    cumulus_version: Optional[str] = None
    duration: Optional[float] = None
    error: Optional[Any] = None
    tasks: Optional[dict[str, Any]] = None
    original_payload: Optional[dict[str, Any]] = None
    final_payload: Optional[dict[str, Any]] = None
    timestamp: EpochOrIsoDateTime = None
    created_at: EpochOrIsoDateTime = None
    updated_at: EpochOrIsoDateTime = None
    references: ExecutionReferences = Field(
        default_factory=ExecutionReferences, exclude=True
    )

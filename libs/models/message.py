# =============================================================================
# Completion Message Model
# =============================================================================
# Typed view over the workflow-completion message consumed by the dual-write
# path. Only the attributes the engine reads are modelled; everything else
# is kept as extra data.
# =============================================================================

"""Workflow completion message model and accessors."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .base import CollectionKey

__all__ = ["CumulusMeta", "MessageMeta", "CompletionMessage"]


class CumulusMeta(BaseModel):
    """``cumulus_meta`` block of a completion message."""

    execution_name: Optional[str] = None
    state_machine: Optional[str] = None
    parent_execution_arn: Optional[str] = Field(None, alias="parentExecutionArn")
    async_operation_id: Optional[str] = Field(None, alias="asyncOperationId")
    cumulus_version: Optional[str] = None
    workflow_start_time: Optional[int] = None
    workflow_stop_time: Optional[int] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class MessageMeta(BaseModel):
    """``meta`` block of a completion message."""

    status: Optional[str] = None
    workflow_name: Optional[str] = None
    collection: Optional[dict[str, Any]] = None
    provider: Optional[dict[str, Any]] = None
    workflow_tasks: Optional[dict[str, Any]] = None

    model_config = ConfigDict(extra="allow")


class CompletionMessage(BaseModel):
    """
    Workflow completion message.

    Example:
        >>> message = CompletionMessage.model_validate({
        ...     "cumulus_meta": {
        ...         "execution_name": "exec-1",
        ...         "state_machine": "arn:aws:states:us-east-1:1234:stateMachine:Ingest",
        ...         "cumulus_version": "9.0.0",
        ...     },
        ...     "meta": {"status": "completed", "collection": {"name": "MOD09GQ", "version": "006"}},
        ...     "payload": {"granules": []},
        ... })
        >>> message.execution_arn
        'arn:aws:states:us-east-1:1234:execution:Ingest:exec-1'
    """

    cumulus_meta: CumulusMeta
    meta: MessageMeta = Field(default_factory=MessageMeta)
    payload: Optional[dict[str, Any]] = None
    exception: Optional[Any] = None

    model_config = ConfigDict(extra="allow")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    @property
    def execution_arn(self) -> Optional[str]:
        """Execution ARN derived from the state machine ARN and execution name."""
        state_machine = self.cumulus_meta.state_machine
        execution_name = self.cumulus_meta.execution_name
        if not state_machine or not execution_name:
            return None
        return (
            f"{state_machine.replace(':stateMachine:', ':execution:')}"
            f":{execution_name}"
        )

    @property
    def execution_url(self) -> Optional[str]:
        """Console URL of the execution, as referenced by granules and PDRs."""
        arn = self.execution_arn
        if arn is None:
            return None
        parts = arn.split(":")
        region = parts[3] if len(parts) > 3 else ""
        return (
            f"https://console.aws.amazon.com/states/home?region={region}"
            f"#/executions/details/{arn}"
        )

    @property
    def parent_arn(self) -> Optional[str]:
        return self.cumulus_meta.parent_execution_arn

    @property
    def async_operation_id(self) -> Optional[str]:
        return self.cumulus_meta.async_operation_id

    @property
    def cumulus_version(self) -> Optional[str]:
        return self.cumulus_meta.cumulus_version

    @property
    def status(self) -> str:
        """Workflow status, ``unknown`` when the message does not say."""
        status = (self.meta.status or "").lower()
        if status in {"running", "completed", "failed"}:
            return status
        return "unknown"

    @property
    def started_at(self) -> Optional[datetime]:
        return _from_epoch_millis(self.cumulus_meta.workflow_start_time)

    @property
    def stopped_at(self) -> Optional[datetime]:
        return _from_epoch_millis(self.cumulus_meta.workflow_stop_time)

    @property
    def duration(self) -> Optional[float]:
        """Workflow duration in seconds, if both start and stop are known."""
        start = self.cumulus_meta.workflow_start_time
        stop = self.cumulus_meta.workflow_stop_time
        if start is None or stop is None:
            return None
        return (stop - start) / 1000

    # ------------------------------------------------------------------
    # Related records
    # ------------------------------------------------------------------

    @property
    def collection_key(self) -> Optional[CollectionKey]:
        collection = self.meta.collection or {}
        name = collection.get("name")
        version = collection.get("version")
        if not name or not version:
            return None
        return CollectionKey(name=name, version=str(version))

    @property
    def provider_id(self) -> Optional[str]:
        provider = self.meta.provider or {}
        return provider.get("id")

    @property
    def pdr(self) -> Optional[dict[str, Any]]:
        pdr = (self.payload or {}).get("pdr")
        if not isinstance(pdr, dict) or not pdr.get("name"):
            return None
        return pdr

    @property
    def granules(self) -> list[dict[str, Any]]:
        granules = (self.payload or {}).get("granules") or []
        return [g for g in granules if isinstance(g, dict)]


def _from_epoch_millis(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)

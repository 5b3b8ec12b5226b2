# =============================================================================
# Steady-State Dual Write
# =============================================================================
# For each workflow-completion message: write the key-value records, and,
# when the gate allows, the relational rows (execution → PDR → granules).
# =============================================================================

"""
Steady-state dual-write of completion messages.

The key-value write is the durability floor and is always attempted. The
relational write is attempted only when :class:`DualWriteGate` allows it and
never blocks the key-value write. A message is dead-lettered when its
key-value write failed (which covers "both failed"); a relational-only
failure is logged, and dead-lettered only when configured to.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, TypeVar
import logging

from pydantic import ValidationError
from sqlalchemy.engine import Connection, Engine

from libs.models import CompletionMessage, EntityKind

from .errors import (
    Committed,
    Failed,
    MigrationError,
    SchemaValidationError,
    Skipped,
    WriteResult,
)
from .gate import DualWriteGate, GateDecision
from .migrators import in_transaction
from .references import ReferenceKind
from .translate import translate_execution, translate_granule, translate_pdr
from .writer import GranuleWriteOutcome, MigrationWriter

__all__ = [
    "KeyValueStore",
    "MessageRecords",
    "DualWriteOutcome",
    "DualWriter",
    "records_from_message",
    "handle_completion_messages",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

_GRANULE_STATUSES = {"running", "completed", "failed", "queued"}
_PDR_STATUSES = {"running", "completed", "failed"}


class KeyValueStore(Protocol):
    """
    Companion key-value writes (upsert by natural key).

    Each returns whether the stored document changed; stale records are
    ignored rather than overwriting newer ones.
    """

    def store_execution(self, record: Mapping[str, Any]) -> bool: ...

    def store_pdr(self, record: Mapping[str, Any]) -> bool: ...

    def store_granule(self, record: Mapping[str, Any]) -> bool: ...


# =============================================================================
# Message → source-shaped records
# =============================================================================

@dataclass
class MessageRecords:
    """Source-shaped records built from one completion message."""

    execution: dict[str, Any]
    pdr: Optional[dict[str, Any]] = None
    granules: list[dict[str, Any]] = field(default_factory=list)


def _compact(record: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.items() if v is not None}


def _message_error(message: CompletionMessage) -> Optional[Any]:
    if isinstance(message.exception, dict) and message.exception:
        return message.exception
    return None


def _pdr_stats(payload: Mapping[str, Any]) -> dict[str, int]:
    running = len(payload.get("running") or [])
    completed = len(payload.get("completed") or [])
    failed = len(payload.get("failed") or [])
    return {
        "processing": running,
        "completed": completed,
        "failed": failed,
        "total": running + completed + failed,
    }


def _product_volume(files: Iterable[Mapping[str, Any]]) -> Optional[str]:
    sizes = [f.get("size") for f in files if isinstance(f.get("size"), int)]
    return str(sum(sizes)) if sizes else None


def records_from_message(message: CompletionMessage) -> MessageRecords:
    """
    Build execution, PDR and granule records from a completion message.

    Records use the key-value store's document shape, so the same records
    feed both the companion key-value write and the relational translation.
    ``updatedAt`` is the workflow stop time, falling back to its start time,
    so a late "running" message never overwrites a "completed" one.

    Raises:
        SchemaValidationError: If the message does not identify its execution
    """
    arn = message.execution_arn
    if arn is None:
        raise SchemaValidationError(
            "Completion message has no cumulus_meta.state_machine/execution_name"
        )
    status = message.status
    started = message.cumulus_meta.workflow_start_time
    stopped = message.cumulus_meta.workflow_stop_time
    updated = stopped if stopped is not None else started
    collection = message.collection_key
    collection_id = collection.collection_id if collection else None
    payload = message.payload or {}
    error = _message_error(message)

    execution = _compact({
        "arn": arn,
        "name": message.cumulus_meta.execution_name,
        "status": status,
        "execution": message.execution_url,
        "type": message.meta.workflow_name,
        "parentArn": message.parent_arn,
        "asyncOperationId": message.async_operation_id,
        "collectionId": collection_id,
        "cumulusVersion": message.cumulus_version,
        "duration": message.duration,
        "error": error,
        "tasks": message.meta.workflow_tasks,
        "originalPayload" if status == "running" else "finalPayload": message.payload,
        "createdAt": started,
        "updatedAt": updated,
        "timestamp": updated,
    })

    pdr = None
    if message.pdr is not None:
        stats = _pdr_stats(payload)
        progress = None
        if stats["total"]:
            progress = round((stats["completed"] + stats["failed"]) / stats["total"] * 100, 2)
        pdr = _compact({
            "pdrName": message.pdr["name"],
            "collectionId": collection_id,
            "provider": message.provider_id,
            "status": status if status in _PDR_STATUSES else "running",
            "execution": message.execution_url,
            "progress": progress,
            "stats": stats,
            "PANSent": message.pdr.get("PANSent"),
            "PANmessage": message.pdr.get("PANmessage"),
            "address": message.pdr.get("address"),
            "originalUrl": message.pdr.get("path"),
            "duration": message.duration,
            "createdAt": started,
            "updatedAt": updated,
            "timestamp": updated,
        })

    granules = []
    for granule in message.granules:
        files = granule.get("files") or []
        granule_status = granule.get("status") or status
        granules.append(_compact({
            "granuleId": granule.get("granuleId"),
            "collectionId": collection_id,
            "status": granule_status if granule_status in _GRANULE_STATUSES else "running",
            "execution": message.execution_url,
            "provider": message.provider_id,
            "pdrName": message.pdr["name"] if message.pdr else None,
            "cmrLink": granule.get("cmrLink"),
            "published": granule.get("published"),
            "files": files,
            "productVolume": _product_volume(files),
            "duration": message.duration,
            "error": error,
            "beginningDateTime": granule.get("beginningDateTime"),
            "endingDateTime": granule.get("endingDateTime"),
            "lastUpdateDateTime": granule.get("lastUpdateDateTime"),
            "productionDateTime": granule.get("productionDateTime"),
            "processingStartDateTime": started,
            "processingEndDateTime": stopped,
            "createdAt": granule.get("createdAt", started),
            "updatedAt": updated,
            "timestamp": updated,
        }))

    return MessageRecords(execution=execution, pdr=pdr, granules=granules)


# =============================================================================
# Outcome
# =============================================================================

@dataclass
class DualWriteOutcome:
    """What happened to one completion message."""

    execution_arn: Optional[str] = None
    decision: Optional[GateDecision] = None
    relational_results: list[tuple[EntityKind, Optional[str], WriteResult]] = field(
        default_factory=list
    )
    relational_errors: list[str] = field(default_factory=list)
    kv_errors: list[str] = field(default_factory=list)

    @property
    def kv_failed(self) -> bool:
        return bool(self.kv_errors)

    @property
    def relational_failed(self) -> bool:
        return bool(self.relational_errors)

    @property
    def relational_written(self) -> bool:
        return any(isinstance(r, Committed) for _, _, r in self.relational_results)

    def should_dead_letter(self, strict: bool = False) -> bool:
        """
        Whether the message must go to the dead-letter destination.

        Args:
            strict: Also dead-letter relational-only failures
        """
        return self.kv_failed or (strict and self.relational_failed)

    def summary(self) -> dict[str, Any]:
        return {
            "execution_arn": self.execution_arn,
            "eligible": bool(self.decision and self.decision.eligible),
            "gate_reasons": list(self.decision.reasons) if self.decision else [],
            "relational_writes": [
                {"kind": kind.value, "key": key, "result": type(result).__name__}
                for kind, key, result in self.relational_results
            ],
            "relational_errors": list(self.relational_errors),
            "kv_errors": list(self.kv_errors),
        }


# =============================================================================
# Writer
# =============================================================================

class DualWriter:
    """
    Process completion messages: gated relational write plus key-value write.

    Args:
        engine: Relational engine
        kv_store: Companion key-value store
        gate: Eligibility gate
        writer: Relational writer (default: a new one)
        dead_letter_on_relational_failure: Treat relational-only failures as
            message failures
    """

    def __init__(
        self,
        engine: Engine,
        kv_store: KeyValueStore,
        gate: DualWriteGate,
        writer: Optional[MigrationWriter] = None,
        dead_letter_on_relational_failure: bool = False,
    ):
        self.engine = engine
        self.kv_store = kv_store
        self.gate = gate
        self.writer = writer or MigrationWriter()
        self.dead_letter_on_relational_failure = dead_letter_on_relational_failure

    def process(self, raw_message: Mapping[str, Any]) -> DualWriteOutcome:
        """
        Write the records carried by one completion message.

        Raises:
            SchemaValidationError: If the message cannot be parsed at all
        """
        try:
            message = CompletionMessage.model_validate(dict(raw_message))
        except ValidationError as exc:
            raise SchemaValidationError(f"Invalid completion message: {exc}") from exc

        records = records_from_message(message)
        outcome = DualWriteOutcome(execution_arn=message.execution_arn)

        try:
            self._write_relational(message, records, outcome)
        except Exception as exc:
            logger.error(f"Relational write of {outcome.execution_arn} failed: {exc}")
            outcome.relational_errors.append(f"{type(exc).__name__}: {exc}")

        self._write_key_value(records, outcome)
        return outcome

    # ------------------------------------------------------------------
    # Relational
    # ------------------------------------------------------------------

    def _commit_if_written(self, work: Callable[[Connection], T], written: Callable[[T], bool]) -> T:
        return in_transaction(self.engine, work, written)

    def _record(
        self,
        outcome: DualWriteOutcome,
        kind: EntityKind,
        key: Optional[str],
        result: WriteResult,
    ) -> None:
        outcome.relational_results.append((kind, key, result))
        if isinstance(result, Failed):
            outcome.relational_errors.append(f"{kind.value} {key}: {result.error}")

    def _resolve_existing(self, kind: ReferenceKind, key: str) -> Optional[int]:
        with self.engine.connect() as conn:
            return self.gate.resolver.resolve_cumulus_id(kind, key, conn)

    def _write_relational(
        self,
        message: CompletionMessage,
        records: MessageRecords,
        outcome: DualWriteOutcome,
    ) -> None:
        with self.engine.connect() as conn:
            decision = self.gate.evaluate(message, conn)
        outcome.decision = decision

        if not decision.eligible:
            logger.info(
                f"Execution {outcome.execution_arn} not eligible for relational "
                f"write: {'; '.join(decision.reasons)}"
            )
            return

        # Execution
        try:
            execution_row = translate_execution(records.execution)
        except MigrationError as exc:
            self._record(outcome, EntityKind.EXECUTION, outcome.execution_arn, Failed(exc))
            return
        execution_refs = {
            "collection_cumulus_id": decision.collection_cumulus_id,
            "parent_cumulus_id": decision.parent_cumulus_id,
            "async_operation_cumulus_id": decision.async_operation_cumulus_id,
        }
        result = self._commit_if_written(
            lambda conn: self.writer.write(EntityKind.EXECUTION, execution_row, execution_refs, conn),
            lambda r: isinstance(r, Committed),
        )
        self._record(outcome, EntityKind.EXECUTION, execution_row.arn, result)
        if isinstance(result, Committed):
            execution_cumulus_id = result.cumulus_id
        elif isinstance(result, Skipped):
            execution_cumulus_id = self._resolve_existing(ReferenceKind.EXECUTION, execution_row.arn)
        else:
            return

        # PDR
        pdr_cumulus_id = None
        if records.pdr is not None and decision.pdr:
            pdr_cumulus_id = self._write_pdr(records.pdr, decision, execution_cumulus_id, outcome)

        # Granules
        if decision.granules:
            for granule in records.granules:
                self._write_granule(
                    granule, decision, pdr_cumulus_id, execution_cumulus_id, outcome
                )

    def _write_pdr(
        self,
        record: Mapping[str, Any],
        decision: GateDecision,
        execution_cumulus_id: Optional[int],
        outcome: DualWriteOutcome,
    ) -> Optional[int]:
        try:
            row = translate_pdr(record)
        except MigrationError as exc:
            self._record(outcome, EntityKind.PDR, record.get("pdrName"), Failed(exc))
            return None
        refs = {
            "collection_cumulus_id": decision.collection_cumulus_id,
            "provider_cumulus_id": decision.provider_cumulus_id,
            "execution_cumulus_id": execution_cumulus_id,
        }
        result = self._commit_if_written(
            lambda conn: self.writer.write(EntityKind.PDR, row, refs, conn),
            lambda r: isinstance(r, Committed),
        )
        self._record(outcome, EntityKind.PDR, row.name, result)
        if isinstance(result, Committed):
            return result.cumulus_id
        if isinstance(result, Skipped):
            return self._resolve_existing(ReferenceKind.PDR, row.name)
        return None

    def _write_granule(
        self,
        record: Mapping[str, Any],
        decision: GateDecision,
        pdr_cumulus_id: Optional[int],
        execution_cumulus_id: Optional[int],
        outcome: DualWriteOutcome,
    ) -> None:
        key = record.get("granuleId")
        try:
            row = translate_granule(record)
        except MigrationError as exc:
            self._record(outcome, EntityKind.GRANULE, key, Failed(exc))
            return
        refs = {
            "collection_cumulus_id": decision.collection_cumulus_id,
            "provider_cumulus_id": decision.provider_cumulus_id,
            "pdr_cumulus_id": pdr_cumulus_id,
        }
        granule_outcome: GranuleWriteOutcome = self._commit_if_written(
            lambda conn: self.writer.write_granule_with_files(
                conn, row, refs, record.get("files") or [], execution_cumulus_id
            ),
            lambda o: isinstance(o.granule, Committed),
        )
        self._record(outcome, EntityKind.GRANULE, row.granule_id, granule_outcome.granule)
        for file_result in granule_outcome.files:
            self._record(outcome, EntityKind.FILE, file_result.key, file_result.result)

    # ------------------------------------------------------------------
    # Key-value
    # ------------------------------------------------------------------

    def _write_key_value(self, records: MessageRecords, outcome: DualWriteOutcome) -> None:
        writes: list[tuple[str, Callable[[Mapping[str, Any]], bool], Mapping[str, Any]]] = [
            (f"execution {records.execution['arn']}", self.kv_store.store_execution, records.execution)
        ]
        if records.pdr is not None:
            writes.append((f"pdr {records.pdr['pdrName']}", self.kv_store.store_pdr, records.pdr))
        for granule in records.granules:
            writes.append(
                (f"granule {granule.get('granuleId')}", self.kv_store.store_granule, granule)
            )

        for label, store, record in writes:
            try:
                if not store(record):
                    logger.debug(f"Key-value {label} is not newer than the stored record; left as is")
            except Exception as exc:
                logger.error(f"Key-value write of {label} failed: {exc}")
                outcome.kv_errors.append(f"{label}: {type(exc).__name__}: {exc}")


def handle_completion_messages(
    messages: Iterable[Mapping[str, Any]],
    dual_writer: DualWriter,
) -> list[Mapping[str, Any]]:
    """
    Process a batch of completion messages.

    Returns:
        The messages that must be dead-lettered, in input order
    """
    dead_letters = []
    for raw_message in messages:
        try:
            outcome = dual_writer.process(raw_message)
        except MigrationError as exc:
            logger.error(f"Completion message could not be processed: {exc}")
            dead_letters.append(raw_message)
            continue
        if outcome.should_dead_letter(dual_writer.dead_letter_on_relational_failure):
            dead_letters.append(raw_message)
    return dead_letters

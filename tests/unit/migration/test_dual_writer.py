"""
Unit tests for the steady-state dual write.

The relational store is SQLite; the key-value store is a Mock so tests can
inspect and fail its writes.
"""

from unittest.mock import Mock

import pytest

from libs.migration import (
    Committed,
    DualWriteGate,
    DualWriter,
    SchemaValidationError,
    Skipped,
    handle_completion_messages,
    records_from_message,
    tables,
)
from libs.models import CompletionMessage, DualWriteSettings, EntityKind


GRANULE_ID = "MOD09GQ.A2017025.h21v00.006"


@pytest.fixture
def kv_store():
    return Mock()


@pytest.fixture
def gate():
    return DualWriteGate(DualWriteSettings(minimum_version="9.0.0"))


@pytest.fixture
def dual_writer(engine, kv_store, gate):
    return DualWriter(engine=engine, kv_store=kv_store, gate=gate)


# =============================================================================
# Test: records_from_message
# =============================================================================


class TestRecordsFromMessage:

    def test_execution_record(self, make_message):
        records = records_from_message(CompletionMessage.model_validate(make_message()))

        execution = records.execution
        assert execution["arn"].endswith(":execution:IngestGranule:exec-1")
        assert execution["status"] == "completed"
        assert execution["collectionId"] == "MOD09GQ___006"
        assert execution["duration"] == 100.0
        assert execution["updatedAt"] == 1_600_000_100_000
        assert "finalPayload" in execution
        assert "parentArn" not in execution

    def test_granule_records(self, make_message):
        records = records_from_message(CompletionMessage.model_validate(make_message()))

        assert len(records.granules) == 1
        granule = records.granules[0]
        assert granule["granuleId"] == GRANULE_ID
        assert granule["productVolume"] == "1024"
        assert granule["execution"] == records.execution["execution"]
        assert records.pdr is None

    def test_pdr_record(self, make_message):
        message = make_message(pdr={"name": "a.PDR", "PANSent": False})
        message["payload"]["completed"] = ["arn:1", "arn:2"]
        message["payload"]["failed"] = ["arn:3"]
        message["payload"]["running"] = ["arn:4"]

        pdr = records_from_message(CompletionMessage.model_validate(message)).pdr

        assert pdr["pdrName"] == "a.PDR"
        assert pdr["provider"] == "s3_provider"
        assert pdr["stats"] == {"processing": 1, "completed": 2, "failed": 1, "total": 4}
        assert pdr["progress"] == 75.0

    def test_running_message_uses_start_time(self, make_message):
        message = make_message(status="running", workflow_stop_time=None)

        execution = records_from_message(CompletionMessage.model_validate(message)).execution

        assert execution["updatedAt"] == 1_600_000_000_000
        assert "originalPayload" in execution
        assert "duration" not in execution

    def test_message_without_execution_name_is_invalid(self, make_message):
        message = make_message()
        del message["cumulus_meta"]["execution_name"]
        with pytest.raises(SchemaValidationError):
            records_from_message(CompletionMessage.model_validate(message))


# =============================================================================
# Test: Dual write
# =============================================================================


def test_eligible_message_writes_both_stores(dual_writer, kv_store, make_message, reference_ids, fetch_rows):
    outcome = dual_writer.process(make_message())

    assert outcome.decision.eligible
    assert outcome.relational_written
    assert not outcome.should_dead_letter()

    executions = fetch_rows(tables.executions)
    granules = fetch_rows(tables.granules)
    assert len(executions) == 1
    assert executions[0]["collection_cumulus_id"] == reference_ids["collection"]
    assert granules[0]["granule_id"] == GRANULE_ID
    assert fetch_rows(tables.granules_executions) == [
        {
            "granule_cumulus_id": granules[0]["cumulus_id"],
            "execution_cumulus_id": executions[0]["cumulus_id"],
        }
    ]
    assert [f["file_name"] for f in fetch_rows(tables.files)] == [f"{GRANULE_ID}.hdf"]

    kv_store.store_execution.assert_called_once()
    kv_store.store_granule.assert_called_once()
    kv_store.store_pdr.assert_not_called()


def test_old_message_writes_key_value_only(dual_writer, kv_store, make_message, reference_ids, fetch_rows):
    outcome = dual_writer.process(make_message(version="8.0.0"))

    assert outcome.decision.eligible is False
    assert outcome.relational_results == []
    assert not outcome.should_dead_letter(strict=True)
    assert fetch_rows(tables.executions) == []
    kv_store.store_execution.assert_called_once()
    kv_store.store_granule.assert_called_once()


def test_pdr_is_written_and_linked_to_granules(dual_writer, kv_store, make_message, reference_ids, fetch_rows):
    outcome = dual_writer.process(make_message(pdr={"name": "a.PDR", "PANSent": True}))

    kinds = [kind for kind, _, result in outcome.relational_results if isinstance(result, Committed)]
    assert kinds == [EntityKind.EXECUTION, EntityKind.PDR, EntityKind.GRANULE, EntityKind.FILE]
    pdr = fetch_rows(tables.pdrs)[0]
    assert pdr["execution_cumulus_id"] == fetch_rows(tables.executions)[0]["cumulus_id"]
    assert fetch_rows(tables.granules)[0]["pdr_cumulus_id"] == pdr["cumulus_id"]
    kv_store.store_pdr.assert_called_once()


def test_late_running_message_does_not_regress_status(dual_writer, make_message, reference_ids, fetch_rows):
    dual_writer.process(make_message(status="completed"))

    outcome = dual_writer.process(make_message(status="running", workflow_stop_time=None))

    results = {kind: result for kind, _, result in outcome.relational_results}
    assert isinstance(results[EntityKind.EXECUTION], Skipped)
    assert isinstance(results[EntityKind.GRANULE], Skipped)
    assert not outcome.should_dead_letter(strict=True)
    assert fetch_rows(tables.executions)[0]["status"] == "completed"
    assert fetch_rows(tables.granules)[0]["status"] == "completed"


def test_completed_message_keeps_original_payload(dual_writer, make_message, reference_ids, fetch_rows):
    dual_writer.process(make_message(status="running", workflow_stop_time=None))
    original_payload = fetch_rows(tables.executions)[0]["original_payload"]

    outcome = dual_writer.process(make_message(status="completed"))

    results = {kind: result for kind, _, result in outcome.relational_results}
    assert isinstance(results[EntityKind.EXECUTION], Committed)
    execution = fetch_rows(tables.executions)[0]
    assert execution["status"] == "completed"
    assert original_payload["granules"][0]["granuleId"] == GRANULE_ID
    assert execution["original_payload"] == original_payload
    assert execution["final_payload"]["granules"][0]["status"] == "completed"


def test_message_without_collection_writes_key_value_only(
    dual_writer, kv_store, make_message, reference_ids, fetch_rows
):
    message = make_message()
    del message["meta"]["collection"]

    outcome = dual_writer.process(message)

    assert outcome.decision.eligible is False
    assert outcome.relational_results == []
    assert not outcome.should_dead_letter(strict=True)
    assert fetch_rows(tables.executions) == []
    assert fetch_rows(tables.granules) == []
    kv_store.store_execution.assert_called_once()
    kv_store.store_granule.assert_called_once()


def test_replayed_message_is_idempotent(dual_writer, make_message, reference_ids, fetch_rows):
    dual_writer.process(make_message())
    outcome = dual_writer.process(make_message())

    assert not outcome.relational_written
    assert not outcome.should_dead_letter(strict=True)
    assert len(fetch_rows(tables.executions)) == 1
    assert len(fetch_rows(tables.granules_executions)) == 1


# =============================================================================
# Test: Failure handling
# =============================================================================


def test_relational_failure_does_not_block_key_value(engine, kv_store, gate, make_message, reference_ids):
    writer = Mock()
    writer.write.side_effect = RuntimeError("relational store unavailable")
    dual_writer = DualWriter(engine=engine, kv_store=kv_store, gate=gate, writer=writer)

    outcome = dual_writer.process(make_message())

    assert outcome.relational_failed
    assert "relational store unavailable" in outcome.relational_errors[0]
    kv_store.store_execution.assert_called_once()
    kv_store.store_granule.assert_called_once()
    assert outcome.should_dead_letter() is False
    assert outcome.should_dead_letter(strict=True) is True


def test_key_value_failure_dead_letters(dual_writer, kv_store, make_message, reference_ids, fetch_rows):
    kv_store.store_execution.side_effect = RuntimeError("kv down")

    outcome = dual_writer.process(make_message())

    assert outcome.kv_failed
    assert outcome.should_dead_letter()
    # The remaining key-value writes and the relational write still happen.
    kv_store.store_granule.assert_called_once()
    assert len(fetch_rows(tables.executions)) == 1


def test_invalid_granule_fails_alone(dual_writer, make_message, reference_ids, fetch_rows):
    message = make_message(granules=[
        {"granuleId": "good", "files": []},
        {"files": []},
    ])

    outcome = dual_writer.process(message)

    assert outcome.relational_failed
    assert [g["granule_id"] for g in fetch_rows(tables.granules)] == ["good"]
    assert len(fetch_rows(tables.executions)) == 1


def test_summary(dual_writer, make_message, reference_ids):
    summary = dual_writer.process(make_message(version="8.0.0")).summary()

    assert summary["eligible"] is False
    assert summary["relational_writes"] == []
    assert summary["kv_errors"] == []
    assert len(summary["gate_reasons"]) == 1


# =============================================================================
# Test: Batches
# =============================================================================


def test_handle_completion_messages(engine, kv_store, gate, make_message, reference_ids):
    dual_writer = DualWriter(engine=engine, kv_store=kv_store, gate=gate)
    invalid = {"cumulus_meta": "not an object"}
    unidentified = {"cumulus_meta": {}}

    dead_letters = handle_completion_messages(
        [make_message("exec-1"), invalid, unidentified, make_message("exec-2")],
        dual_writer,
    )

    assert dead_letters == [invalid, unidentified]
    assert kv_store.store_execution.call_count == 2


def test_strict_batch_dead_letters_relational_failures(engine, kv_store, gate, make_message, reference_ids):
    writer = Mock()
    writer.write.side_effect = RuntimeError("relational store unavailable")
    dual_writer = DualWriter(
        engine=engine, kv_store=kv_store, gate=gate, writer=writer,
        dead_letter_on_relational_failure=True,
    )
    message = make_message()

    assert handle_completion_messages([message], dual_writer) == [message]

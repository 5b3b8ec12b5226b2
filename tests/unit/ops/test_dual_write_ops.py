# =============================================================================
# Unit Tests: Dual-Write Ops
# =============================================================================

import pytest
from unittest.mock import Mock
from dagster import build_op_context

from libs.migration import tables
from services.dagster.migration_pipelines.ops.dual_write_ops import (
    CompletionEventConfig,
    _write_completion_event,
    write_completion_event_op,
)
from services.dagster.migration_pipelines.resources import DualWriteResource


EVENT_KEY = "events/exec-1.json"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def mock_minio():
    minio = Mock()
    minio.move_to_archive.side_effect = lambda key: f"archive/{key}"
    minio.move_to_dead_letter.side_effect = lambda key: f"dead-letter/{key}"
    return minio


@pytest.fixture
def mock_mongodb():
    return Mock()


@pytest.fixture
def mock_postgres(engine, reference_ids):
    postgres = Mock()
    postgres.get_engine.return_value = engine
    return postgres


@pytest.fixture
def dual_write():
    return DualWriteResource(minimum_version="9.0.0")


@pytest.fixture
def write_event(mock_minio, mock_mongodb, mock_postgres, dual_write):
    def _write(message, dual_write=dual_write, log=None):
        mock_minio.get_event.return_value = message
        return _write_completion_event(
            minio=mock_minio,
            mongodb=mock_mongodb,
            postgres=mock_postgres,
            dual_write=dual_write,
            event_key=EVENT_KEY,
            log=log or Mock(),
        )

    return _write


# =============================================================================
# Test: Core Logic (_write_completion_event)
# =============================================================================


def test_eligible_event_writes_both_stores(write_event, mock_minio, mock_mongodb, make_message, fetch_rows):
    summary = write_event(make_message())

    assert summary["eligible"] is True
    assert [w["result"] for w in summary["relational_writes"]] == ["Committed", "Committed", "Committed"]
    assert len(fetch_rows(tables.executions)) == 1
    mock_mongodb.store_execution.assert_called_once()
    mock_minio.move_to_archive.assert_called_once_with(EVENT_KEY)
    mock_minio.move_to_dead_letter.assert_not_called()


def test_old_event_is_key_value_only(write_event, mock_minio, mock_mongodb, make_message, fetch_rows):
    log = Mock()

    summary = write_event(make_message(version="8.0.0"), log=log)

    assert summary["eligible"] is False
    assert fetch_rows(tables.executions) == []
    mock_mongodb.store_execution.assert_called_once()
    mock_minio.move_to_archive.assert_called_once_with(EVENT_KEY)
    assert "key-value store only" in log.info.call_args_list[0][0][0]


def test_key_value_failure_dead_letters(write_event, mock_minio, mock_mongodb, make_message):
    mock_mongodb.store_execution.side_effect = RuntimeError("mongo down")

    with pytest.raises(RuntimeError, match="dead-lettered"):
        write_event(make_message())

    mock_minio.move_to_dead_letter.assert_called_once_with(EVENT_KEY)
    mock_minio.move_to_archive.assert_not_called()


def test_invalid_event_dead_letters(write_event, mock_minio, mock_mongodb):
    with pytest.raises(RuntimeError, match="dead-lettered"):
        write_event({"cumulus_meta": {}})

    mock_minio.move_to_dead_letter.assert_called_once_with(EVENT_KEY)
    mock_mongodb.store_execution.assert_not_called()


def test_relational_failure_is_logged_not_dead_lettered(write_event, mock_minio, make_message):
    message = make_message(granules=[{"files": []}])
    log = Mock()

    summary = write_event(message, log=log)

    assert summary["relational_errors"]
    log.warning.assert_called()
    mock_minio.move_to_archive.assert_called_once_with(EVENT_KEY)


def test_strict_mode_dead_letters_relational_failure(write_event, mock_minio, make_message):
    strict = DualWriteResource(minimum_version="9.0.0", dead_letter_on_relational_failure=True)

    with pytest.raises(RuntimeError, match="dead-lettered"):
        write_event(make_message(granules=[{"files": []}]), dual_write=strict)

    mock_minio.move_to_dead_letter.assert_called_once_with(EVENT_KEY)


# =============================================================================
# Test: Op
# =============================================================================


def test_write_completion_event_op(mock_minio, mock_mongodb, mock_postgres, dual_write, make_message):
    mock_minio.get_event.return_value = make_message()
    context = build_op_context(
        resources={
            "minio": mock_minio,
            "mongodb": mock_mongodb,
            "postgres": mock_postgres,
            "dual_write": dual_write,
        },
    )

    summary = write_completion_event_op(context, config=CompletionEventConfig(event_key=EVENT_KEY))

    assert summary["execution_arn"].endswith(":exec-1")
    mock_minio.get_event.assert_called_once_with(EVENT_KEY)
    mock_minio.move_to_archive.assert_called_once_with(EVENT_KEY)

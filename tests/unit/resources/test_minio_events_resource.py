"""
Unit tests for MinIOResource.

Tests all methods with mocked minio.Minio client to avoid network calls.
"""

import json
from unittest.mock import Mock, patch

import pytest
from minio.error import S3Error

from services.dagster.migration_pipelines.resources import MinIOResource


MINIO_PATH = "services.dagster.migration_pipelines.resources.minio_resource.Minio"


def _s3_error(code, resource):
    # Keywords only: the positional order of S3Error differs between minio releases.
    return S3Error(
        code=code,
        message="error",
        resource=resource,
        request_id="test",
        host_id="test",
        response=Mock(status=404),
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def minio_resource():
    """Create a MinIOResource instance with test configuration."""
    return MinIOResource(
        endpoint="localhost:9000",
        access_key="test_access",
        secret_key="test_secret",
        use_ssl=False,
        landing_bucket="test-landing",
        archive_bucket="test-system",
    )


@pytest.fixture
def mock_client():
    with patch(MINIO_PATH) as mock_minio:
        client = Mock()
        mock_minio.return_value = client
        yield client


# =============================================================================
# Test: get_client
# =============================================================================


def test_get_client(minio_resource):
    with patch(MINIO_PATH) as mock_minio:
        minio_resource.get_client()

    mock_minio.assert_called_once_with(
        "localhost:9000",
        access_key="test_access",
        secret_key="test_secret",
        secure=False,
    )


# =============================================================================
# Test: list_events
# =============================================================================


def test_list_events_returns_json_files_only(minio_resource, mock_client):
    names = ["events/exec-1.json", "events/2024/exec-2.json", "events/readme.txt"]
    mock_client.list_objects.return_value = [Mock(object_name=n) for n in names]

    assert minio_resource.list_events() == ["events/exec-1.json", "events/2024/exec-2.json"]
    mock_client.list_objects.assert_called_once_with(
        "test-landing", prefix="events/", recursive=True
    )


def test_list_events_raises_on_missing_bucket(minio_resource, mock_client):
    mock_client.list_objects.side_effect = _s3_error("NoSuchBucket", "test-landing")

    with pytest.raises(RuntimeError, match="Landing bucket 'test-landing' does not exist"):
        minio_resource.list_events()


# =============================================================================
# Test: get_event
# =============================================================================


def test_get_event_parses_json(minio_resource, mock_client):
    event = {"cumulus_meta": {"execution_name": "exec-1"}}
    response = Mock()
    response.read.return_value = json.dumps(event).encode()
    mock_client.get_object.return_value = response

    assert minio_resource.get_event("events/exec-1.json") == event
    mock_client.get_object.assert_called_once_with("test-landing", "events/exec-1.json")
    response.close.assert_called_once()
    response.release_conn.assert_called_once()


def test_get_event_raises_on_missing_object(minio_resource, mock_client):
    mock_client.get_object.side_effect = _s3_error("NoSuchKey", "events/missing.json")

    with pytest.raises(RuntimeError, match="Event 'events/missing.json' not found"):
        minio_resource.get_event("events/missing.json")


def test_get_event_raises_on_invalid_json(minio_resource, mock_client):
    response = Mock()
    response.read.return_value = b"not valid json {{"
    mock_client.get_object.return_value = response

    with pytest.raises(RuntimeError, match="contains invalid JSON"):
        minio_resource.get_event("events/bad.json")


# =============================================================================
# Test: archive / dead-letter
# =============================================================================


def test_move_to_archive_copies_and_deletes(minio_resource, mock_client):
    assert minio_resource.move_to_archive("events/exec-1.json") == "archive/events/exec-1.json"

    bucket, destination, source = mock_client.copy_object.call_args[0]
    assert bucket == "test-landing"
    assert destination == "archive/events/exec-1.json"
    assert source.bucket_name == "test-landing"
    assert source.object_name == "events/exec-1.json"
    mock_client.remove_object.assert_called_once_with("test-landing", "events/exec-1.json")


def test_move_to_dead_letter(minio_resource, mock_client):
    assert minio_resource.move_to_dead_letter("events/exec-1.json") == "dead-letter/events/exec-1.json"
    assert mock_client.copy_object.call_args[0][1] == "dead-letter/events/exec-1.json"


def test_move_tolerates_already_removed_original(minio_resource, mock_client):
    mock_client.remove_object.side_effect = _s3_error("NoSuchKey", "events/exec-1.json")

    assert minio_resource.move_to_archive("events/exec-1.json") == "archive/events/exec-1.json"


def test_move_propagates_other_errors(minio_resource, mock_client):
    mock_client.remove_object.side_effect = _s3_error("AccessDenied", "events/exec-1.json")

    with pytest.raises(S3Error):
        minio_resource.move_to_archive("events/exec-1.json")


# =============================================================================
# Test: upload_error_archive
# =============================================================================


def test_upload_error_archive(minio_resource, mock_client, tmp_path):
    log_file = tmp_path / "executionsErrorLog.json"
    log_file.write_text('{"errors": []}')

    minio_resource.upload_error_archive(log_file, "stack/data-migration2-executions-errors-ts.json")

    args, kwargs = mock_client.put_object.call_args
    assert args[0] == "test-system"
    assert args[1] == "stack/data-migration2-executions-errors-ts.json"
    assert kwargs == {"length": len('{"errors": []}'), "content_type": "application/json"}


def test_upload_error_archive_missing_file(minio_resource, mock_client, tmp_path):
    with pytest.raises(FileNotFoundError):
        minio_resource.upload_error_archive(tmp_path / "missing.json", "key.json")
    mock_client.put_object.assert_not_called()

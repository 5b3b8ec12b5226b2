"""Completion event sensor for workflow completion messages in MinIO.

Each new event under ``events/`` in the landing bucket becomes one
``dual_write_job`` run. The run itself archives or dead-letters the event.
"""

import json

from dagster import (
    sensor,
    RunRequest,
    SkipReason,
    SensorEvaluationContext,
    DefaultSensorStatus,
)

from ..resources import MinIOResource

__all__ = [
    "completion_event_sensor",
    "build_cursor",
    "build_run_request",
    "merge_requested_keys",
    "parse_cursor",
]

DUAL_WRITE_JOB = "dual_write_job"
DUAL_WRITE_OP = "write_completion_event_op"


# =============================================================================
# Cursor Format
# =============================================================================

CURSOR_VERSION = 1
MAX_CURSOR_KEYS = 500


def merge_requested_keys(existing: list[str], new: list[str]) -> list[str]:
    """
    Append newly requested keys, moving repeats to the end.

    Args:
        existing: Keys already in the cursor, oldest first
        new: Keys requested in this evaluation

    Returns:
        Unique keys, most recently requested last
    """
    new_keys = set(new)
    result = [key for key in existing if key not in new_keys]
    result.extend(dict.fromkeys(new))
    return result


def parse_cursor(cursor: str | None) -> list[str]:
    """
    Parse the sensor cursor into the ordered list of requested event keys.

    An unreadable cursor is treated as empty; run keys still prevent
    duplicate runs for events requested before.
    """
    if not cursor:
        return []

    try:
        cursor_data = json.loads(cursor)
    except json.JSONDecodeError:
        return []
    if not isinstance(cursor_data, dict) or cursor_data.get("v") != CURSOR_VERSION:
        return []

    keys = cursor_data.get("requested_keys", [])
    if not isinstance(keys, list):
        return []
    return list(dict.fromkeys(k for k in keys if isinstance(k, str) and k.strip()))


def build_cursor(requested_keys: list[str]) -> str:
    """Build the JSON cursor, keeping the MAX_CURSOR_KEYS most recent keys."""
    return json.dumps({
        "v": CURSOR_VERSION,
        "requested_keys": requested_keys[-MAX_CURSOR_KEYS:],
        "max_keys": MAX_CURSOR_KEYS,
    })


def build_run_request(event_key: str) -> RunRequest:
    """Build the dual-write RunRequest for one event (run_key = event key)."""
    return RunRequest(
        run_key=event_key,
        job_name=DUAL_WRITE_JOB,
        run_config={
            "ops": {
                DUAL_WRITE_OP: {
                    "config": {"event_key": event_key},
                }
            }
        },
        tags={"event_key": event_key},
    )


# =============================================================================
# Sensor Implementation
# =============================================================================

@sensor(
    minimum_interval_seconds=30,
    default_status=DefaultSensorStatus.RUNNING,
    name="completion_event_sensor",
    job_name=DUAL_WRITE_JOB,
    description="Polls MinIO landing zone for workflow completion events and triggers dual writes",
)
def completion_event_sensor(context: SensorEvaluationContext, minio: MinIOResource):
    """
    Poll landing-zone/events/ for new completion events.

    Flow:
    1. List all .json files under events/
    2. Drop keys already requested (cursor)
    3. Yield one RunRequest per new event
    4. Record the requested keys in the cursor

    Yields:
        RunRequest: For each new event
        SkipReason: If no new events are found or listing fails
    """
    try:
        events = minio.list_events()
    except Exception as e:
        context.log.error(f"Failed to list completion events: {e}")
        yield SkipReason(f"Error listing completion events: {e}")
        return

    requested = parse_cursor(context.cursor)
    requested_set = set(requested)
    new_events = [key for key in events if key not in requested_set]

    if not new_events:
        yield SkipReason("No new completion events found")
        return

    for event_key in new_events:
        yield build_run_request(event_key)
    context.log.info(f"Requested dual write for {len(new_events)} completion event(s)")

    context.update_cursor(build_cursor(merge_requested_keys(requested, new_events)))

"""Steady-state dual-write job, one run per completion event."""

from dagster import job

from ..ops import write_completion_event_op


@job(
    name="dual_write_job",
    description="Writes one workflow completion event to the relational and key-value stores",
)
def dual_write_job():
    """Triggered by completion_event_sensor with the event key in run config."""
    write_completion_event_op()

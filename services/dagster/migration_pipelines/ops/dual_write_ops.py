# =============================================================================
# Dual-Write Ops - Steady-State Completion Messages
# =============================================================================
# Writes the records carried by one workflow completion event to the
# relational store (when eligible) and to the key-value store, then archives
# or dead-letters the event.
# =============================================================================

"""Dual-write ops for workflow completion events."""

from dagster import Config, OpExecutionContext, op
from pydantic import Field

from libs.migration import DualWriter, MigrationError

from ..resources import DualWriteResource, MinIOResource, MongoDBResource, PostgresResource

__all__ = ["CompletionEventConfig", "write_completion_event_op"]


class CompletionEventConfig(Config):
    """Run config for ``dual_write_job``."""

    event_key: str = Field(..., description="Object key of the completion event in the landing bucket")


def _write_completion_event(
    minio: MinIOResource,
    mongodb: MongoDBResource,
    postgres: PostgresResource,
    dual_write: DualWriteResource,
    event_key: str,
    log,
) -> dict:
    """
    Dual-write one completion event.

    The event is archived once the key-value write succeeded (and, in strict
    mode, the relational write too). Otherwise it is moved to the dead-letter
    prefix and the op fails.

    Args:
        minio: Event inbox
        mongodb: Key-value store
        postgres: Relational store
        dual_write: Gate configuration
        event_key: Object key of the event
        log: Logger instance (context.log)

    Returns:
        Outcome summary

    Raises:
        RuntimeError: If the event was dead-lettered
    """
    settings = dual_write.get_settings()
    writer = DualWriter(
        engine=postgres.get_engine(),
        kv_store=mongodb,
        gate=dual_write.get_gate(),
        dead_letter_on_relational_failure=settings.dead_letter_on_relational_failure,
    )

    raw_message = minio.get_event(event_key)
    try:
        outcome = writer.process(raw_message)
    except MigrationError as exc:
        dead_letter_key = minio.move_to_dead_letter(event_key)
        log.error(f"Completion event {event_key} is invalid, dead-lettered to {dead_letter_key}: {exc}")
        raise RuntimeError(f"Completion event {event_key} dead-lettered: {exc}") from exc

    summary = outcome.summary()
    if not summary["eligible"]:
        log.info(
            f"Execution {outcome.execution_arn} written to key-value store only: "
            f"{'; '.join(summary['gate_reasons']) or 'not eligible'}"
        )
    for error in outcome.relational_errors:
        log.warning(f"Relational write of {outcome.execution_arn} failed: {error}")

    if outcome.should_dead_letter(settings.dead_letter_on_relational_failure):
        dead_letter_key = minio.move_to_dead_letter(event_key)
        log.error(f"Completion event {event_key} dead-lettered to {dead_letter_key}: {summary}")
        raise RuntimeError(f"Completion event {event_key} dead-lettered")

    archive_key = minio.move_to_archive(event_key)
    log.info(f"Completion event {event_key} processed, archived to {archive_key}")
    return summary


@op(required_resource_keys={"minio", "mongodb", "postgres", "dual_write"})
def write_completion_event_op(context: OpExecutionContext, config: CompletionEventConfig) -> dict:
    """Dual-write the completion event named in the run config."""
    return _write_completion_event(
        minio=context.resources.minio,
        mongodb=context.resources.mongodb,
        postgres=context.resources.postgres,
        dual_write=context.resources.dual_write,
        event_key=config.event_key,
        log=context.log,
    )

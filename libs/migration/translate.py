# =============================================================================
# Record Translator
# =============================================================================
# Pure mapping from key-value source documents to typed relational rows.
# No I/O: references stay as natural keys on the row's ``references``.
# =============================================================================

"""Source-record to relational-row translation, one function per entity kind."""

from typing import Any, Callable, Mapping, Optional, Type, TypeVar
from urllib.parse import urlparse

from pydantic import ValidationError

from libs.models import (
    CollectionKey,
    EntityKind,
    ExecutionRecord,
    ExecutionReferences,
    FileRecord,
    GranuleRecord,
    GranuleReferences,
    PdrRecord,
    PdrReferences,
    PostgresExecution,
    PostgresFile,
    PostgresGranule,
    PostgresPdr,
    RowModel,
    SourceRecord,
)

from .errors import SchemaValidationError

__all__ = [
    "translate",
    "translate_execution",
    "translate_granule",
    "translate_file",
    "translate_pdr",
    "parse_s3_uri",
    "record_key",
]

RecordT = TypeVar("RecordT", bound=SourceRecord)


def _validate(model: Type[RecordT], record: Mapping[str, Any], label: str) -> RecordT:
    try:
        return model.model_validate(dict(record))
    except ValidationError as exc:
        raise SchemaValidationError(f"Invalid {label} record: {exc}") from exc


def parse_s3_uri(uri: str) -> tuple[Optional[str], Optional[str]]:
    """
    Split ``s3://bucket/key`` into bucket and key.

    Returns ``(None, None)`` for anything that is not an S3 URI.

    Example:
        >>> parse_s3_uri("s3://protected/MOD09GQ/granule.hdf")
        ('protected', 'MOD09GQ/granule.hdf')
    """
    parsed = urlparse(uri)
    if parsed.scheme != "s3" or not parsed.netloc:
        return None, None
    key = parsed.path.lstrip("/")
    return parsed.netloc, key or None


def record_key(kind: EntityKind, record: Mapping[str, Any]) -> Optional[str]:
    """Natural key of a raw source record, for logging and error entries."""
    field = {
        EntityKind.EXECUTION: "arn",
        EntityKind.GRANULE: "granuleId",
        EntityKind.PDR: "pdrName",
        EntityKind.FILE: "fileName",
    }[EntityKind(kind)]
    value = record.get(field)
    if value is None and kind == EntityKind.FILE:
        value = record.get("filename") or record.get("key")
    return None if value is None else str(value)


# =============================================================================
# Per-kind translation
# =============================================================================

def translate_execution(record: Mapping[str, Any]) -> PostgresExecution:
    """
    Translate an execution document.

    The console URL (``execution``) becomes ``url``; ``type`` is the
    workflow name. ``parentArn``, ``asyncOperationId`` and ``collectionId``
    are carried as unresolved references.

    Raises:
        SchemaValidationError: If the document fails validation
    """
    source = _validate(ExecutionRecord, record, "execution")
    collection = (
        CollectionKey.from_collection_id(source.collection_id)
        if source.collection_id
        else None
    )
    return PostgresExecution(
        arn=source.arn,
        name=source.name,
        status=source.status,
        url=source.execution,
        workflow_name=source.type,
        cumulus_version=source.cumulus_version,
        duration=source.duration,
        error=source.error,
        tasks=source.tasks,
        original_payload=source.original_payload,
        final_payload=source.final_payload,
        timestamp=source.timestamp,
        created_at=source.created_at,
        updated_at=source.updated_at,
        references=ExecutionReferences(
            collection=collection,
            parent_arn=source.parent_arn,
            async_operation_id=source.async_operation_id,
        ),
    )


def translate_granule(record: Mapping[str, Any]) -> PostgresGranule:
    """
    Translate a granule document (without its files).

    Files are translated one at a time with :func:`translate_file` so that a
    malformed file never fails its granule or its siblings.

    Raises:
        SchemaValidationError: If the document fails validation
    """
    source = _validate(GranuleRecord, record, "granule")
    return PostgresGranule(
        granule_id=source.granule_id,
        status=source.status,
        cmr_link=source.cmr_link,
        published=source.published,
        duration=source.duration,
        time_to_archive=source.time_to_archive,
        time_to_process=source.time_to_process,
        product_volume=source.product_volume,
        error=source.error,
        beginning_date_time=source.beginning_date_time,
        ending_date_time=source.ending_date_time,
        last_update_date_time=source.last_update_date_time,
        processing_start_date_time=source.processing_start_date_time,
        processing_end_date_time=source.processing_end_date_time,
        production_date_time=source.production_date_time,
        timestamp=source.timestamp,
        created_at=source.created_at,
        updated_at=source.updated_at,
        references=GranuleReferences(
            collection=CollectionKey.from_collection_id(source.collection_id),
            provider=source.provider,
            pdr_name=source.pdr_name,
            execution_url=source.execution,
        ),
    )


def translate_file(record: Mapping[str, Any]) -> PostgresFile:
    """
    Translate one file entry of a granule document.

    ``bucket``/``key`` fall back to the components of an ``s3://`` style
    ``filename``; ``file_name`` falls back to the last path segment of the key.

    Raises:
        SchemaValidationError: If the entry fails validation
    """
    source = _validate(FileRecord, record, "file")
    bucket, key = source.bucket, source.key
    if (bucket is None or key is None) and source.filename:
        parsed_bucket, parsed_key = parse_s3_uri(source.filename)
        bucket = bucket or parsed_bucket
        key = key or parsed_key
    file_name = source.file_name
    if file_name is None and key:
        file_name = key.rsplit("/", 1)[-1]
    if not (bucket and key) and not file_name:
        raise SchemaValidationError(
            "Invalid file record: no bucket/key and no file name to identify it"
        )
    return PostgresFile(
        bucket=bucket,
        key=key,
        file_name=file_name,
        file_size=source.size,
        checksum_type=source.checksum_type,
        checksum_value=source.checksum,
        source=source.source,
        path=source.path,
        type=source.type,
    )


def translate_pdr(record: Mapping[str, Any]) -> PostgresPdr:
    """
    Translate a PDR document.

    Raises:
        SchemaValidationError: If the document fails validation
    """
    source = _validate(PdrRecord, record, "pdr")
    return PostgresPdr(
        name=source.pdr_name,
        status=source.status,
        progress=source.progress,
        pan_sent=source.pan_sent,
        pan_message=source.pan_message,
        stats=source.stats,
        address=source.address,
        original_url=source.original_url,
        duration=source.duration,
        timestamp=source.timestamp,
        created_at=source.created_at,
        updated_at=source.updated_at,
        references=PdrReferences(
            collection=CollectionKey.from_collection_id(source.collection_id),
            provider=source.provider,
            execution_url=source.execution,
        ),
    )


_TRANSLATORS: dict[EntityKind, Callable[[Mapping[str, Any]], RowModel]] = {
    EntityKind.EXECUTION: translate_execution,
    EntityKind.GRANULE: translate_granule,
    EntityKind.FILE: translate_file,
    EntityKind.PDR: translate_pdr,
}


def translate(kind: EntityKind, record: Mapping[str, Any]) -> RowModel:
    """
    Translate ``record`` as an entity of ``kind``.

    Raises:
        SchemaValidationError: If the record fails validation
        ValueError: If ``kind`` is not a known entity kind
    """
    return _TRANSLATORS[EntityKind(kind)](record)

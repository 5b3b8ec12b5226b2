# =============================================================================
# Base Models and Shared Types
# =============================================================================
# Shared base models, entity kinds and coercing field types used by the
# source-record schemas and the translated relational rows.
# =============================================================================

"""Base models and shared field types for source records and relational rows."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

__all__ = [
    "EntityKind",
    "SourceRecord",
    "RowModel",
    "CollectionKey",
    "EpochOrIsoDateTime",
    "DecimalString",
    "ensure_utc",
    "COLLECTION_ID_SEPARATOR",
]

COLLECTION_ID_SEPARATOR = "___"


class EntityKind(str, Enum):
    """Entity kinds handled by the migration engine."""

    EXECUTION = "executions"
    GRANULE = "granules"
    FILE = "files"
    PDR = "pdrs"


# =============================================================================
# Coercing Types
# =============================================================================

def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to timezone-aware UTC.

    Naive datetimes are assumed to already be UTC (this is what SQLite hands
    back for columns written by this engine).
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _coerce_epoch_millis(value: Any) -> Any:
    # Numbers are always epoch milliseconds; pydantic would guess seconds
    # for small values.
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not a valid timestamp")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    if isinstance(value, str) and value.strip().isdigit():
        return datetime.fromtimestamp(int(value.strip()) / 1000, tz=timezone.utc)
    return value


def _coerce_decimal_string(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not a valid size")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"size must be a whole number, got {value}")
        value = int(value)
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"size must not be negative, got {value}")
        return str(value)
    if isinstance(value, str) and value.strip().isdigit():
        return value.strip()
    raise ValueError(f"size must be a non-negative integer, got {value!r}")


EpochOrIsoDateTime = Annotated[
    Optional[datetime],
    BeforeValidator(_coerce_epoch_millis),
    AfterValidator(ensure_utc),
]
"""Epoch milliseconds or ISO-8601 string, normalized to aware UTC."""

DecimalString = Annotated[Optional[str], BeforeValidator(_coerce_decimal_string)]
"""64-bit unsigned aggregate carried as a decimal string."""


# =============================================================================
# Collection Key
# =============================================================================

class CollectionKey(BaseModel):
    """
    Natural key of a collection.

    Source records reference collections by a single ``collectionId`` string
    of the form ``<name>___<version>``.
    """

    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)

    @classmethod
    def from_collection_id(cls, collection_id: str) -> "CollectionKey":
        """
        Split a ``name___version`` collection id.

        Raises:
            ValueError: If the id does not contain the separator
        """
        name, sep, version = collection_id.rpartition(COLLECTION_ID_SEPARATOR)
        if not sep or not name or not version:
            raise ValueError(
                f"collectionId '{collection_id}' is not of the form "
                f"'<name>{COLLECTION_ID_SEPARATOR}<version>'"
            )
        return cls(name=name, version=version)

    @property
    def collection_id(self) -> str:
        return f"{self.name}{COLLECTION_ID_SEPARATOR}{self.version}"

    def __str__(self) -> str:
        return self.collection_id


# =============================================================================
# Base Models
# =============================================================================

class SourceRecord(BaseModel):
    """
    Base for key-value source documents.

    Source documents use camelCase attribute names and routinely carry
    attributes this engine does not migrate; those are ignored.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class RowModel(BaseModel):
    """
    Base for translated relational rows.

    Column values are the model fields. Natural-key references that still
    need resolving to ``cumulus_id`` values live on ``references``, which is
    excluded from :meth:`columns`.
    """

    model_config = ConfigDict(use_enum_values=True)

    def columns(self) -> dict[str, Any]:
        """Column values ready for an INSERT or UPDATE."""
        return self.model_dump(exclude={"references"})

# =============================================================================
# Relational Table Contract
# =============================================================================
# SQLAlchemy Core description of the relational tables the migration engine
# reads and writes. The schema itself is owned elsewhere; this metadata is
# what the engine relies on (column names, natural keys, foreign keys).
# =============================================================================

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

__all__ = [
    "metadata",
    "collections",
    "providers",
    "async_operations",
    "executions",
    "pdrs",
    "granules",
    "files",
    "granules_executions",
    "REQUIRED_TABLES",
]

metadata = MetaData()

# BIGSERIAL on Postgres; SQLite only autoincrements INTEGER PRIMARY KEY.
CumulusId = BigInteger().with_variant(Integer, "sqlite")
JsonDocument = JSON().with_variant(JSONB, "postgresql")


def _cumulus_id() -> Column:
    return Column("cumulus_id", CumulusId, primary_key=True, autoincrement=True)


def _audit_columns() -> list[Column]:
    return [
        Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
        Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    ]


# -----------------------------------------------------------------------------
# Reference tables (read-only for this engine)
# -----------------------------------------------------------------------------

collections = Table(
    "collections",
    metadata,
    _cumulus_id(),
    Column("name", Text, nullable=False),
    Column("version", Text, nullable=False),
    *_audit_columns(),
    UniqueConstraint("name", "version", name="collections_name_version_unique"),
)

providers = Table(
    "providers",
    metadata,
    _cumulus_id(),
    Column("name", Text, nullable=False, unique=True),
    *_audit_columns(),
)

async_operations = Table(
    "async_operations",
    metadata,
    _cumulus_id(),
    Column("id", Text, nullable=False, unique=True),
    Column("status", Text),
    *_audit_columns(),
)

# -----------------------------------------------------------------------------
# Migrated tables
# -----------------------------------------------------------------------------

executions = Table(
    "executions",
    metadata,
    _cumulus_id(),
    Column("arn", Text, nullable=False, unique=True),
    Column("name", Text),
    Column("status", Text, nullable=False),
    Column("url", Text),
    Column("workflow_name", Text),
    Column("cumulus_version", Text),
    Column("duration", Float),
    Column("error", JsonDocument),
    Column("tasks", JsonDocument),
    Column("original_payload", JsonDocument),
    Column("final_payload", JsonDocument),
    Column("timestamp", DateTime(timezone=True)),
    Column("async_operation_cumulus_id", CumulusId, ForeignKey("async_operations.cumulus_id")),
    Column("collection_cumulus_id", CumulusId, ForeignKey("collections.cumulus_id")),
    Column("parent_cumulus_id", CumulusId, ForeignKey("executions.cumulus_id")),
    *_audit_columns(),
)

pdrs = Table(
    "pdrs",
    metadata,
    _cumulus_id(),
    Column("name", Text, nullable=False, unique=True),
    Column("status", Text, nullable=False),
    Column("progress", Float),
    Column("pan_sent", Boolean),
    Column("pan_message", Text),
    Column("stats", JsonDocument),
    Column("address", Text),
    Column("original_url", Text),
    Column("duration", Float),
    Column("timestamp", DateTime(timezone=True)),
    Column("collection_cumulus_id", CumulusId, ForeignKey("collections.cumulus_id"), nullable=False),
    Column("provider_cumulus_id", CumulusId, ForeignKey("providers.cumulus_id"), nullable=False),
    Column("execution_cumulus_id", CumulusId, ForeignKey("executions.cumulus_id")),
    *_audit_columns(),
)

granules = Table(
    "granules",
    metadata,
    _cumulus_id(),
    Column("granule_id", Text, nullable=False),
    Column("status", Text, nullable=False),
    Column("cmr_link", Text),
    Column("published", Boolean),
    Column("duration", Float),
    Column("time_to_archive", Float),
    Column("time_to_process", Float),
    Column("product_volume", BigInteger),
    Column("error", JsonDocument),
    Column("beginning_date_time", DateTime(timezone=True)),
    Column("ending_date_time", DateTime(timezone=True)),
    Column("last_update_date_time", DateTime(timezone=True)),
    Column("processing_start_date_time", DateTime(timezone=True)),
    Column("processing_end_date_time", DateTime(timezone=True)),
    Column("production_date_time", DateTime(timezone=True)),
    Column("timestamp", DateTime(timezone=True)),
    Column("collection_cumulus_id", CumulusId, ForeignKey("collections.cumulus_id"), nullable=False),
    Column("provider_cumulus_id", CumulusId, ForeignKey("providers.cumulus_id")),
    Column("pdr_cumulus_id", CumulusId, ForeignKey("pdrs.cumulus_id")),
    *_audit_columns(),
    UniqueConstraint("granule_id", "collection_cumulus_id", name="granules_granule_id_collection_cumulus_id_unique"),
)

files = Table(
    "files",
    metadata,
    _cumulus_id(),
    Column("granule_cumulus_id", CumulusId, ForeignKey("granules.cumulus_id"), nullable=False),
    Column("bucket", Text),
    Column("key", Text),
    Column("file_name", Text),
    Column("file_size", BigInteger),
    Column("checksum_type", Text),
    Column("checksum_value", Text),
    Column("source", Text),
    Column("path", Text),
    Column("type", Text),
    *_audit_columns(),
    UniqueConstraint("bucket", "key", name="files_bucket_key_unique"),
)

granules_executions = Table(
    "granules_executions",
    metadata,
    Column("granule_cumulus_id", CumulusId, ForeignKey("granules.cumulus_id"), nullable=False),
    Column("execution_cumulus_id", CumulusId, ForeignKey("executions.cumulus_id"), nullable=False),
    UniqueConstraint("granule_cumulus_id", "execution_cumulus_id", name="granules_executions_unique"),
)

REQUIRED_TABLES = tuple(metadata.tables)

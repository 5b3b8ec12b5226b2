# =============================================================================
# Data Models Library
# =============================================================================
# Pydantic models and schemas for the granule ledger migration engine.
# =============================================================================

"""
Data models for the migration engine.

This library provides:
- Source record schemas: ExecutionRecord, GranuleRecord, FileRecord, PdrRecord
- Relational rows: PostgresExecution, PostgresGranule, PostgresFile, PostgresPdr
- CompletionMessage: workflow completion message accessors
- Summary models: MigrationResult, MigrationReport, ErrorEntry
- Configuration models
"""

__version__ = "0.1.0"

# Shared types
from .base import (
    COLLECTION_ID_SEPARATOR,
    CollectionKey,
    DecimalString,
    EntityKind,
    EpochOrIsoDateTime,
    RowModel,
    SourceRecord,
    ensure_utc,
)

# Execution models
from .execution import (
    ExecutionRecord,
    ExecutionReferences,
    ExecutionStatus,
    PostgresExecution,
)

# Granule and file models
from .granule import (
    FileRecord,
    GranuleRecord,
    GranuleReferences,
    GranuleStatus,
    PostgresFile,
    PostgresGranule,
)

# PDR models
from .pdr import (
    PdrRecord,
    PdrReferences,
    PdrStatus,
    PostgresPdr,
)

# Completion message
from .message import (
    CompletionMessage,
    CumulusMeta,
    MessageMeta,
)

# Run parameters
from .params import (
    GranuleFilters,
    MigrationName,
    MigrationParams,
)

# Summary models
from .summary import (
    ErrorEntry,
    MigrationReport,
    MigrationResult,
)

# Configuration models
from .config import (
    DualWriteSettings,
    MinIOSettings,
    MongoSettings,
    PostgresSettings,
)

__all__ = [
    # Shared types
    "COLLECTION_ID_SEPARATOR",
    "CollectionKey",
    "DecimalString",
    "EntityKind",
    "EpochOrIsoDateTime",
    "RowModel",
    "SourceRecord",
    "ensure_utc",
    # Execution models
    "ExecutionRecord",
    "ExecutionReferences",
    "ExecutionStatus",
    "PostgresExecution",
    # Granule and file models
    "FileRecord",
    "GranuleRecord",
    "GranuleReferences",
    "GranuleStatus",
    "PostgresFile",
    "PostgresGranule",
    # PDR models
    "PdrRecord",
    "PdrReferences",
    "PdrStatus",
    "PostgresPdr",
    # Completion message
    "CompletionMessage",
    "CumulusMeta",
    "MessageMeta",
    # Run parameters
    "GranuleFilters",
    "MigrationName",
    "MigrationParams",
    # Summary models
    "ErrorEntry",
    "MigrationReport",
    "MigrationResult",
    # Configuration models
    "DualWriteSettings",
    "MinIOSettings",
    "MongoSettings",
    "PostgresSettings",
]

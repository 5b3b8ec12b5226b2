# =============================================================================
# Migration Writer
# =============================================================================
# Idempotent, monotonic relational writes shared by the bulk migration and
# the steady-state dual-write path.
# =============================================================================

"""
Idempotent relational writer.

Every write runs inside the caller's transaction:

1. Look up the existing row by natural key (``SELECT ... FOR UPDATE``).
2. No row: insert it → ``Committed(created=True)``.
3. Row exists and the incoming ``updated_at`` is not strictly newer:
   nothing happens → ``Skipped``.
4. Otherwise update it, guarded on the ``updated_at`` value read in step 1.
   Columns the incoming row leaves empty keep their stored value.
   Zero rows affected means a concurrent writer got there first →
   ``Failed(PostgresUpdateFailed)``.

Each INSERT/UPDATE runs in its own SAVEPOINT so that a rejected statement
leaves the surrounding transaction usable; this is what keeps one bad file
from rolling back its granule or its siblings.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional
import logging

from sqlalchemy import Table, and_, insert, select, update
from sqlalchemy.engine import Connection, Row
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.sql.elements import ColumnElement

from libs.models import (
    EntityKind,
    PostgresFile,
    RowModel,
    ensure_utc,
)

from . import tables
from .errors import (
    Committed,
    Failed,
    MigrationError,
    PostgresUpdateFailed,
    RecordAlreadyMigrated,
    SchemaValidationError,
    Skipped,
    WriteResult,
)
from .translate import record_key, translate_file

__all__ = [
    "MigrationWriter",
    "FileWriteResult",
    "GranuleWriteOutcome",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _TableSpec:
    table: Table
    natural_key: Callable[[Any, Mapping[str, Any]], list[ColumnElement]]
    label: Callable[[Any], str]
    versioned: bool = True


def _file_natural_key(row: PostgresFile, refs: Mapping[str, Any]) -> list[ColumnElement]:
    files = tables.files
    if row.bucket and row.key:
        return [files.c.bucket == row.bucket, files.c.key == row.key]
    # No bucket/key: identify by name within the granule.
    return [
        files.c.granule_cumulus_id == refs["granule_cumulus_id"],
        files.c.file_name == row.file_name,
        files.c.bucket.is_(None),
        files.c.key.is_(None),
    ]


_SPECS: dict[EntityKind, _TableSpec] = {
    EntityKind.EXECUTION: _TableSpec(
        table=tables.executions,
        natural_key=lambda row, refs: [tables.executions.c.arn == row.arn],
        label=lambda row: row.arn,
    ),
    EntityKind.GRANULE: _TableSpec(
        table=tables.granules,
        natural_key=lambda row, refs: [
            tables.granules.c.granule_id == row.granule_id,
            tables.granules.c.collection_cumulus_id == refs["collection_cumulus_id"],
        ],
        label=lambda row: row.granule_id,
    ),
    EntityKind.PDR: _TableSpec(
        table=tables.pdrs,
        natural_key=lambda row, refs: [tables.pdrs.c.name == row.name],
        label=lambda row: row.name,
    ),
    EntityKind.FILE: _TableSpec(
        table=tables.files,
        natural_key=_file_natural_key,
        label=lambda row: row.display_key,
        versioned=False,
    ),
}


@dataclass(frozen=True)
class FileWriteResult:
    """Outcome of writing one file of a granule."""

    key: Optional[str]
    result: WriteResult


@dataclass
class GranuleWriteOutcome:
    """Outcome of a granule write and its file fan-out."""

    granule: WriteResult
    files: list[FileWriteResult] = field(default_factory=list)
    joined_execution: bool = False

    @property
    def granule_cumulus_id(self) -> Optional[int]:
        if isinstance(self.granule, Committed):
            return self.granule.cumulus_id
        return None


class MigrationWriter:
    """
    Insert-or-update relational rows with idempotent, monotonic semantics.

    The writer never opens or commits transactions; callers own the
    transaction boundary (one per top-level record).
    """

    @staticmethod
    def _spec(kind: EntityKind) -> _TableSpec:
        return _SPECS[EntityKind(kind)]

    @staticmethod
    def _values(spec: _TableSpec, row: RowModel, refs: Mapping[str, Any]) -> dict[str, Any]:
        values = row.columns()
        values.update({k: v for k, v in refs.items() if k in spec.table.c})
        if spec.versioned and values.get("updated_at") is None:
            values["updated_at"] = values.get("timestamp")
        # NULL audit columns take the table default.
        for audit in ("created_at", "updated_at"):
            if audit in values and values[audit] is None:
                del values[audit]
        return values

    @staticmethod
    def _execute(conn: Connection, statement, label: str):
        try:
            with conn.begin_nested():
                return conn.execute(statement)
        except IntegrityError as exc:
            raise PostgresUpdateFailed(
                f"Write of {label} rejected by a constraint, "
                f"possibly a concurrent writer: {exc.orig}"
            ) from exc
        except DataError as exc:
            raise SchemaValidationError(
                f"Write of {label} rejected by the relational store: {exc.orig}"
            ) from exc

    def find_existing(
        self,
        kind: EntityKind,
        row: RowModel,
        refs: Mapping[str, Any],
        conn: Connection,
    ) -> Optional[Row]:
        """
        Lock and return ``(cumulus_id, updated_at)`` of the existing row, if any.
        """
        spec = self._spec(kind)
        table = spec.table
        query = (
            select(table.c.cumulus_id, table.c.updated_at)
            .where(and_(*spec.natural_key(row, refs)))
            .limit(1)
            .with_for_update()
        )
        return conn.execute(query).first()

    def write(
        self,
        kind: EntityKind,
        row: RowModel,
        refs: Mapping[str, Any],
        conn: Connection,
    ) -> WriteResult:
        """
        Insert or update ``row`` with its resolved foreign keys.

        Args:
            kind: Entity kind of ``row``
            row: Translated row
            refs: Resolved foreign keys (``*_cumulus_id``); keys that are not
                columns of the target table are ignored
            conn: Connection inside the caller's transaction

        Returns:
            ``Committed``, ``Skipped`` or ``Failed``

        Raises:
            sqlalchemy.exc.OperationalError: On transport failures, which are
                left to the caller
        """
        kind = EntityKind(kind)
        spec = self._spec(kind)
        label = f"{kind.value} {spec.label(row)}"
        values = self._values(spec, row, refs)

        try:
            existing = self.find_existing(kind, row, refs, conn)
            if existing is None:
                result = self._execute(conn, insert(spec.table).values(**values), label)
                cumulus_id = result.inserted_primary_key[0]
                logger.debug(f"Inserted {label} as cumulus_id={cumulus_id}")
                return Committed(cumulus_id=cumulus_id, created=True)

            if spec.versioned and not self._is_newer(values.get("updated_at"), existing.updated_at):
                return Skipped(
                    RecordAlreadyMigrated(
                        f"{label} already migrated and the source record is not newer"
                    )
                )
            return self._update(spec, existing, values, label, conn)
        except MigrationError as exc:
            logger.warning(f"Write of {label} failed: {exc}")
            return Failed(exc)

    @staticmethod
    def _is_newer(incoming: Optional[datetime], current: Optional[datetime]) -> bool:
        incoming = ensure_utc(incoming)
        current = ensure_utc(current)
        if incoming is None:
            return False
        return current is None or incoming > current

    def _update(
        self,
        spec: _TableSpec,
        existing: Row,
        values: dict[str, Any],
        label: str,
        conn: Connection,
    ) -> WriteResult:
        table = spec.table
        # Fields absent from the newer record keep their stored value.
        values = {k: v for k, v in values.items() if v is not None}
        conditions = [table.c.cumulus_id == existing.cumulus_id]
        if spec.versioned:
            conditions.append(table.c.updated_at == existing.updated_at)
        statement = update(table).where(and_(*conditions)).values(**values)
        result = self._execute(conn, statement, label)
        if result.rowcount == 0:
            return Failed(
                PostgresUpdateFailed(
                    f"Update of {label} affected no rows; it was modified concurrently"
                )
            )
        logger.debug(f"Updated {label} (cumulus_id={existing.cumulus_id})")
        return Committed(cumulus_id=existing.cumulus_id, created=False)

    # ------------------------------------------------------------------
    # Granules, files and join rows
    # ------------------------------------------------------------------

    def write_granule_execution(
        self,
        conn: Connection,
        granule_cumulus_id: int,
        execution_cumulus_id: int,
    ) -> bool:
        """
        Link a granule to an execution. Append-only.

        Returns:
            True if a new link was inserted, False if it already existed
        """
        join = tables.granules_executions
        existing = conn.execute(
            select(join.c.granule_cumulus_id).where(
                join.c.granule_cumulus_id == granule_cumulus_id,
                join.c.execution_cumulus_id == execution_cumulus_id,
            )
        ).first()
        if existing is not None:
            return False
        try:
            self._execute(
                conn,
                insert(join).values(
                    granule_cumulus_id=granule_cumulus_id,
                    execution_cumulus_id=execution_cumulus_id,
                ),
                f"granule/execution link {granule_cumulus_id}/{execution_cumulus_id}",
            )
        except PostgresUpdateFailed:
            # Inserted concurrently.
            return False
        return True

    def write_file(
        self,
        conn: Connection,
        granule_cumulus_id: int,
        record: Mapping[str, Any],
    ) -> FileWriteResult:
        """Translate and write one file of a granule. Never raises MigrationError."""
        try:
            file_row = translate_file(record)
        except SchemaValidationError as exc:
            return FileWriteResult(key=record_key(EntityKind.FILE, record), result=Failed(exc))
        result = self.write(
            EntityKind.FILE,
            file_row,
            {"granule_cumulus_id": granule_cumulus_id},
            conn,
        )
        return FileWriteResult(key=file_row.display_key, result=result)

    def write_granule_with_files(
        self,
        conn: Connection,
        row: RowModel,
        refs: Mapping[str, Any],
        files: Iterable[Mapping[str, Any]],
        execution_cumulus_id: Optional[int] = None,
    ) -> GranuleWriteOutcome:
        """
        Write a granule, then each of its files, then its execution link.

        Files and the link are only written when the granule row itself was
        inserted or updated. Each file is isolated: a failed file is reported
        on the outcome and never affects the granule or its siblings.

        Args:
            conn: Connection inside the granule's transaction
            row: Translated granule row
            refs: Resolved granule foreign keys
            files: Raw file documents of the granule
            execution_cumulus_id: Execution to link the granule to, if known
        """
        outcome = GranuleWriteOutcome(granule=self.write(EntityKind.GRANULE, row, refs, conn))
        granule_cumulus_id = outcome.granule_cumulus_id
        if granule_cumulus_id is None:
            return outcome

        for record in files:
            outcome.files.append(self.write_file(conn, granule_cumulus_id, record))

        if execution_cumulus_id is not None:
            outcome.joined_execution = self.write_granule_execution(
                conn, granule_cumulus_id, execution_cumulus_id
            )
        return outcome

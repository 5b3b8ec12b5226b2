# =============================================================================
# Reference Resolver
# =============================================================================
# Natural key → cumulus_id lookups, plus the recursive parent-execution
# migration used on the bulk path.
# =============================================================================

"""Resolve natural-key references to relational surrogate ids."""

from enum import Enum
from typing import Any, Callable, Optional
import logging

from sqlalchemy import select
from sqlalchemy.engine import Connection

from libs.models import (
    CollectionKey,
    ExecutionReferences,
    GranuleReferences,
    PdrReferences,
)

from . import tables
from .errors import CyclicReferenceError, UnresolvedReferenceError

__all__ = [
    "ReferenceKind",
    "ReferenceResolver",
    "ParentMigrator",
]

logger = logging.getLogger(__name__)

# Called with (conn, parent_arn, chain) when a parent execution is not yet in
# the relational store; returns the parent's cumulus_id.
ParentMigrator = Callable[[Connection, str, list[str]], int]


class ReferenceKind(str, Enum):
    """Kinds of entity a natural key can refer to."""

    COLLECTION = "collection"
    PROVIDER = "provider"
    ASYNC_OPERATION = "async_operation"
    EXECUTION = "execution"
    EXECUTION_URL = "execution_url"
    GRANULE = "granule"
    PDR = "pdr"


class ReferenceResolver:
    """
    Resolve natural keys to ``cumulus_id`` values inside a caller's connection.

    Lookups never create rows. ``None`` means "not present"; whether that is
    fatal is decided by the ``resolve_*_references`` helpers (bulk path) or by
    the dual-write gate (steady-state path).
    """

    def resolve_cumulus_id(
        self,
        kind: ReferenceKind,
        natural_key: Any,
        conn: Connection,
    ) -> Optional[int]:
        """
        Look up the ``cumulus_id`` for ``natural_key``.

        Args:
            kind: Referenced entity kind
            natural_key: ``CollectionKey`` for collections, ``(granule_id,
                CollectionKey)`` for granules, a string otherwise
            conn: Connection (usually inside the caller's transaction)

        Returns:
            The surrogate id, or ``None`` when the key is absent or unknown
        """
        if natural_key is None:
            return None
        kind = ReferenceKind(kind)

        if kind == ReferenceKind.COLLECTION:
            key = natural_key
            query = select(tables.collections.c.cumulus_id).where(
                tables.collections.c.name == key.name,
                tables.collections.c.version == key.version,
            )
        elif kind == ReferenceKind.PROVIDER:
            query = select(tables.providers.c.cumulus_id).where(
                tables.providers.c.name == natural_key
            )
        elif kind == ReferenceKind.ASYNC_OPERATION:
            query = select(tables.async_operations.c.cumulus_id).where(
                tables.async_operations.c.id == natural_key
            )
        elif kind == ReferenceKind.EXECUTION:
            query = select(tables.executions.c.cumulus_id).where(
                tables.executions.c.arn == natural_key
            )
        elif kind == ReferenceKind.EXECUTION_URL:
            query = select(tables.executions.c.cumulus_id).where(
                tables.executions.c.url == natural_key
            )
        elif kind == ReferenceKind.PDR:
            query = select(tables.pdrs.c.cumulus_id).where(
                tables.pdrs.c.name == natural_key
            )
        else:
            granule_id, collection_key = natural_key
            collection_cumulus_id = self.resolve_cumulus_id(
                ReferenceKind.COLLECTION, collection_key, conn
            )
            if collection_cumulus_id is None:
                return None
            query = select(tables.granules.c.cumulus_id).where(
                tables.granules.c.granule_id == granule_id,
                tables.granules.c.collection_cumulus_id == collection_cumulus_id,
            )

        return conn.execute(query.limit(1)).scalar_one_or_none()

    # ------------------------------------------------------------------
    # Bulk-path resolution
    # ------------------------------------------------------------------

    def _require_collection(self, key: CollectionKey, conn: Connection) -> int:
        cumulus_id = self.resolve_cumulus_id(ReferenceKind.COLLECTION, key, conn)
        if cumulus_id is None:
            raise UnresolvedReferenceError("collection", key.collection_id)
        return cumulus_id

    def resolve_execution_references(
        self,
        refs: ExecutionReferences,
        conn: Connection,
        *,
        migrate_parent: Optional[ParentMigrator] = None,
        chain: Optional[list[str]] = None,
    ) -> dict[str, Optional[int]]:
        """
        Resolve the foreign keys of an execution row.

        Missing collection or async operation leave the foreign key NULL.
        A missing parent is migrated first through ``migrate_parent`` when one
        is given (bulk path); otherwise the foreign key stays NULL.

        Args:
            refs: Unresolved references of the execution
            conn: Connection inside the record's transaction
            migrate_parent: Callback migrating a parent from the source store
            chain: ARNs already being migrated on this path, child first

        Raises:
            CyclicReferenceError: If the parent is already on ``chain``
        """
        chain = list(chain or [])
        parent_cumulus_id = None
        if refs.parent_arn is not None:
            if refs.parent_arn in chain:
                raise CyclicReferenceError(refs.parent_arn, chain)
            parent_cumulus_id = self.resolve_cumulus_id(
                ReferenceKind.EXECUTION, refs.parent_arn, conn
            )
            if parent_cumulus_id is None and migrate_parent is not None:
                logger.info(
                    f"Parent execution {refs.parent_arn} not migrated yet, "
                    f"migrating it first"
                )
                parent_cumulus_id = migrate_parent(conn, refs.parent_arn, chain)

        return {
            "collection_cumulus_id": self.resolve_cumulus_id(
                ReferenceKind.COLLECTION, refs.collection, conn
            ),
            "async_operation_cumulus_id": self.resolve_cumulus_id(
                ReferenceKind.ASYNC_OPERATION, refs.async_operation_id, conn
            ),
            "parent_cumulus_id": parent_cumulus_id,
        }

    def resolve_granule_references(
        self, refs: GranuleReferences, conn: Connection
    ) -> dict[str, Optional[int]]:
        """
        Resolve the foreign keys of a granule row.

        The collection is required; provider and PDR are optional.
        ``execution_cumulus_id`` is returned for the join row, not as a column.

        Raises:
            UnresolvedReferenceError: If the collection does not exist
        """
        return {
            "collection_cumulus_id": self._require_collection(refs.collection, conn),
            "provider_cumulus_id": self.resolve_cumulus_id(
                ReferenceKind.PROVIDER, refs.provider, conn
            ),
            "pdr_cumulus_id": self.resolve_cumulus_id(
                ReferenceKind.PDR, refs.pdr_name, conn
            ),
            "execution_cumulus_id": self.resolve_cumulus_id(
                ReferenceKind.EXECUTION_URL, refs.execution_url, conn
            ),
        }

    def resolve_pdr_references(
        self, refs: PdrReferences, conn: Connection
    ) -> dict[str, Optional[int]]:
        """
        Resolve the foreign keys of a PDR row.

        Raises:
            UnresolvedReferenceError: If the collection or provider does not exist
        """
        provider_cumulus_id = self.resolve_cumulus_id(
            ReferenceKind.PROVIDER, refs.provider, conn
        )
        if provider_cumulus_id is None:
            raise UnresolvedReferenceError("provider", refs.provider)
        return {
            "collection_cumulus_id": self._require_collection(refs.collection, conn),
            "provider_cumulus_id": provider_cumulus_id,
            "execution_cumulus_id": self.resolve_cumulus_id(
                ReferenceKind.EXECUTION_URL, refs.execution_url, conn
            ),
        }

"""MongoDB Resource - Key-value store of record."""

from __future__ import annotations

from functools import cached_property
from typing import Any, Dict, Mapping, Optional

from dagster import ConfigurableResource
from pydantic import Field
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.database import Database

from libs.migration import DEFAULT_PAGE_SIZE, ForwardCursor
from libs.models import EntityKind

__all__ = ["MongoDBResource"]


class MongoDBResource(ConfigurableResource):
    """
    Dagster resource for the key-value metadata collections.

    Serves two roles: the read side of bulk migration (cursors and parent
    execution lookups) and the key-value half of the steady-state dual write
    (idempotent upserts keyed by natural key).
    """

    connection_string: str = Field(..., description="MongoDB connection URI")
    database: str = Field("cumulus", description="MongoDB database name")
    executions_collection: str = Field("executions", description="Executions collection name")
    granules_collection: str = Field("granules", description="Granules collection name")
    pdrs_collection: str = Field("pdrs", description="PDRs collection name")

    @cached_property
    def _client(self) -> MongoClient:
        return MongoClient(self.connection_string)

    def _get_db(self) -> Database:
        return self._client[self.database]

    def _get_collection(self, name: str) -> Collection:
        return self._get_db()[name]

    @staticmethod
    def _strip_object_id(doc: Dict) -> Dict:
        stripped = dict(doc)
        stripped.pop("_id", None)
        return stripped

    def collection_for(self, kind: EntityKind) -> Collection:
        """Return the source collection holding records of ``kind``."""
        names = {
            EntityKind.EXECUTION: self.executions_collection,
            EntityKind.GRANULE: self.granules_collection,
            EntityKind.PDR: self.pdrs_collection,
        }
        kind = EntityKind(kind)
        if kind not in names:
            raise ValueError(f"No source collection for '{kind.value}'")
        return self._get_collection(names[kind])

    # ------------------------------------------------------------------
    # Migration source
    # ------------------------------------------------------------------

    def open_cursor(
        self,
        kind: EntityKind,
        query: Optional[Mapping[str, Any]] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        start_after: Any = None,
    ) -> ForwardCursor:
        """
        Open a forward cursor over one source collection.

        Args:
            kind: Entity kind to scan
            query: Optional filter document
            page_size: Records fetched per round trip
            start_after: Continuation token of a previous pass
        """
        return ForwardCursor(
            self.collection_for(kind),
            query=query,
            page_size=page_size,
            start_after=start_after,
        )

    def get_execution(self, arn: str) -> Optional[Dict[str, Any]]:
        """Load one execution record by ARN (None if absent)."""
        document = self.collection_for(EntityKind.EXECUTION).find_one({"arn": arn})
        if not document:
            return None
        return self._strip_object_id(document)

    # ------------------------------------------------------------------
    # Key-value writes
    # ------------------------------------------------------------------

    def _upsert(self, kind: EntityKind, key_field: str, record: Mapping[str, Any]) -> bool:
        """
        Merge ``record`` into the stored document with the same natural key.

        Only a strictly newer ``updatedAt`` overwrites an existing document,
        so late or replayed events leave it untouched. Fields missing from
        ``record`` keep their stored values.

        Returns:
            True if the document was inserted or updated
        """
        key = record.get(key_field)
        if not key:
            raise ValueError(f"{kind.value} record is missing '{key_field}'")
        collection = self.collection_for(kind)
        document = self._strip_object_id(dict(record))
        updated_at = document.get("updatedAt")

        if updated_at is None:
            result = collection.update_one({key_field: key}, {"$set": document}, upsert=True)
            return result.modified_count > 0 or result.upserted_id is not None

        result = collection.update_one(
            {
                key_field: key,
                "$or": [
                    {"updatedAt": {"$lt": updated_at}},
                    {"updatedAt": {"$exists": False}},
                ],
            },
            {"$set": document},
        )
        if result.matched_count:
            return True

        # No older document matched: insert unless one already exists.
        result = collection.update_one(
            {key_field: key},
            {"$setOnInsert": document},
            upsert=True,
        )
        return result.upserted_id is not None

    def store_execution(self, record: Mapping[str, Any]) -> bool:
        """Upsert an execution record keyed by ``arn``."""
        return self._upsert(EntityKind.EXECUTION, "arn", record)

    def store_pdr(self, record: Mapping[str, Any]) -> bool:
        """Upsert a PDR record keyed by ``pdrName``."""
        return self._upsert(EntityKind.PDR, "pdrName", record)

    def store_granule(self, record: Mapping[str, Any]) -> bool:
        """Upsert a granule record keyed by ``granuleId``."""
        return self._upsert(EntityKind.GRANULE, "granuleId", record)

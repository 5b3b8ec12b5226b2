# =============================================================================
# Forward Cursor
# =============================================================================
# Lazy, restartable, single-pass iterator over a source collection.
# =============================================================================

"""Paging cursor over a MongoDB source collection."""

from collections import deque
from typing import Any, Iterator, Mapping, Optional
import logging

from pymongo import ASCENDING
from pymongo.collection import Collection

__all__ = ["ForwardCursor", "DEFAULT_PAGE_SIZE"]

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


class ForwardCursor:
    """
    Page through a source collection without loading it into memory.

    Records are fetched in pages of ``page_size`` ordered by ``_id``, which is
    the store-native continuation token: the next page starts strictly after
    the last ``_id`` handed out. Delivery is at-least-once; a restarted pass
    resumes from ``start_after`` (usually a previous :attr:`position`).

    The caller protocol is peek → process → advance. A record that raised
    during processing is not advanced past, so a retried pass sees it again.

    Args:
        collection: Source collection
        query: Optional filter document narrowing the scan
        page_size: Records fetched per round trip
        start_after: Continuation token to resume after

    Example:
        >>> cursor = ForwardCursor(db["granules"], {"collectionId": "MOD09GQ___006"})
        >>> while (record := cursor.peek()) is not None:
        ...     migrate(record)
        ...     cursor.advance()
    """

    def __init__(
        self,
        collection: Collection,
        query: Optional[Mapping[str, Any]] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        start_after: Any = None,
    ):
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        self._collection = collection
        self._query = dict(query or {})
        self._page_size = page_size
        self._last_fetched = start_after
        self._position = start_after
        self._buffer: deque[dict[str, Any]] = deque()
        self._exhausted = False
        self.pages_fetched = 0

    @property
    def position(self) -> Any:
        """Continuation token of the last record advanced past."""
        return self._position

    def _page_query(self) -> dict[str, Any]:
        if self._last_fetched is None:
            return self._query
        after = {"_id": {"$gt": self._last_fetched}}
        if not self._query:
            return after
        return {"$and": [self._query, after]}

    def _fill(self) -> None:
        page = list(
            self._collection.find(self._page_query())
            .sort("_id", ASCENDING)
            .limit(self._page_size)
        )
        self.pages_fetched += 1
        if not page:
            self._exhausted = True
            return
        self._last_fetched = page[-1]["_id"]
        self._buffer.extend(page)
        logger.debug(
            f"Fetched page {self.pages_fetched} of {len(page)} record(s) "
            f"from '{self._collection.name}'"
        )
        if len(page) < self._page_size:
            self._exhausted = True

    def peek(self) -> Optional[dict[str, Any]]:
        """Current record without consuming it, or ``None`` when exhausted."""
        if not self._buffer and not self._exhausted:
            self._fill()
        if not self._buffer:
            return None
        record = dict(self._buffer[0])
        record.pop("_id", None)
        return record

    def advance(self) -> None:
        """Move past the current record. No-op when exhausted."""
        if not self._buffer and not self._exhausted:
            self._fill()
        if self._buffer:
            self._position = self._buffer.popleft()["_id"]

    def __iter__(self) -> Iterator[dict[str, Any]]:
        while (record := self.peek()) is not None:
            yield record
            self.advance()

"""
Abstract Storage interface for the hospitality backend.

A small generic row store: select/insert/update/delete over named tables,
rows as plain dicts. Typed access lives in storage.repositories; nothing
outside the storage package should call these methods with raw table names
except tests and maintenance tooling.

Every write goes through transaction(): a batch of Write operations that
commits as a whole or not at all. insert/insert_many/update/delete are
single-purpose batches built on it.

Implementations publish a post-commit ChangeEvent to the attached feed for
every row they insert, update or delete. A write that fails publishes
nothing.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from hospitality.realtime import EVENT_DELETE, EVENT_INSERT, EVENT_UPDATE, ChangeEvent, ChangeFeed

Row = Dict[str, Any]
Filters = Mapping[str, Any]


@dataclass(frozen=True)
class Write:
    """One operation inside a Storage.transaction batch."""

    op: str  # insert | update | delete
    table: str
    row: Optional[Row] = None
    filters: Optional[Filters] = None
    patch: Optional[Mapping[str, Any]] = None
    # When set, matching no rows abandons the whole batch
    required: bool = False

    @classmethod
    def insert(cls, table: str, row: Row) -> "Write":
        return cls(EVENT_INSERT, table, row=row)

    @classmethod
    def update(cls, table: str, filters: Filters, patch: Mapping[str, Any], required: bool = False) -> "Write":
        return cls(EVENT_UPDATE, table, filters=filters, patch=patch, required=required)

    @classmethod
    def delete(cls, table: str, filters: Filters, required: bool = False) -> "Write":
        return cls(EVENT_DELETE, table, filters=filters, required=required)


class Storage(ABC):
    """Abstract base class for storage implementations."""

    def __init__(self, feed: Optional[ChangeFeed] = None):
        self.feed = feed

    def attach_feed(self, feed: Optional[ChangeFeed]) -> None:
        self.feed = feed

    def _publish(self, table: str, event_type: str, new: Optional[Row] = None, old: Optional[Row] = None) -> None:
        if self.feed is None:
            return
        source = new if new is not None else old
        restaurant_id = source.get("restaurant_id") if source else None
        self.feed.publish(ChangeEvent(table, event_type, new=new, old=old, restaurant_id=restaurant_id))

    def _publish_changes(self, writes: Sequence[Write], changes: Sequence[List[Tuple[Optional[Row], Optional[Row]]]]):
        for write, pairs in zip(writes, changes):
            for old, new in pairs:
                self._publish(write.table, write.op, new=new, old=old)

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        exclude: Optional[Mapping[str, Iterable[Any]]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """
        Return rows whose columns equal every value in `filters` and whose
        columns are not in any of the value sets in `exclude`.
        """
        ...

    def get(self, table: str, row_id: str) -> Optional[Row]:
        """Get a single row by id, or None."""
        rows = self.select(table, {"id": row_id}, limit=1)
        return rows[0] if rows else None

    @abstractmethod
    def transaction(self, writes: Sequence[Write]) -> Optional[List[List[Row]]]:
        """
        Apply `writes` in order, atomically.

        Returns one list per write: the inserted row, the updated rows (new
        images) or the deleted rows (old images). Returns None, with nothing
        stored, when a `required` write matched no rows. Any exception also
        leaves storage untouched.
        """
        ...

    def insert(self, table: str, rows: Sequence[Row]) -> List[Row]:
        """Insert rows (ids generated when absent). Returns stored rows."""
        return self.insert_many([(table, row) for row in rows])

    def insert_many(self, writes: Sequence[Tuple[str, Row]]) -> List[Row]:
        """
        Insert rows into several tables atomically: either every row is
        stored or none is. Returns stored rows in the order given.
        """
        results = self.transaction([Write.insert(table, row) for table, row in writes])
        return [rows[0] for rows in results]

    def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> List[Row]:
        """Apply `patch` to every matching row. Returns the updated rows."""
        return self.transaction([Write.update(table, filters, patch)])[0]

    def delete(self, table: str, filters: Filters) -> List[Row]:
        """Delete matching rows. Returns the deleted rows."""
        return self.transaction([Write.delete(table, filters)])[0]

    @abstractmethod
    def clear(self) -> None:
        """Clear all state."""
        ...

    def close(self) -> None:
        """Release resources (connections, files)."""
        return None

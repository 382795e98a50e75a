"""
In-memory storage implementation.

Tables are dicts of id -> row kept in insertion order. Good for development
and tests; nothing survives a restart.
"""

import copy
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from uuid import uuid4

from hospitality.errors import ConflictError, ValidationError
from hospitality.realtime import EVENT_DELETE, EVENT_INSERT, EVENT_UPDATE
from .base import Filters, Row, Storage, Write


def _matches(row: Row, filters: Optional[Filters], exclude: Optional[Mapping[str, Iterable[Any]]]) -> bool:
    for column, value in (filters or {}).items():
        if row.get(column) != value:
            return False
    for column, values in (exclude or {}).items():
        if row.get(column) in set(values):
            return False
    return True


def _sort_key(column: str):
    def key(row: Row):
        value = row.get(column)
        # None sorts first ascending, last descending
        return (value is not None, value if value is not None else "")
    return key


class InMemoryStorage(Storage):
    """In-memory storage using dictionaries."""

    def __init__(self, feed=None):
        super().__init__(feed)
        self._tables: Dict[str, Dict[str, Row]] = defaultdict(dict)

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        exclude: Optional[Mapping[str, Iterable[Any]]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        rows = [
            copy.deepcopy(row)
            for row in self._tables.get(table, {}).values()
            if _matches(row, filters, exclude)
        ]
        if order_by:
            rows.sort(key=_sort_key(order_by), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    @staticmethod
    def _apply(rows: Dict[str, Row], write: Write) -> list:
        """Apply one write to a staged table. Rows are replaced, never mutated."""
        if write.op == EVENT_INSERT:
            stored = copy.deepcopy(dict(write.row))
            stored.setdefault("id", str(uuid4()))
            if stored["id"] in rows:
                raise ConflictError(f"Duplicate id {stored['id']} in {write.table}")
            rows[stored["id"]] = stored
            return [(None, stored)]

        matching = [row_id for row_id, row in rows.items() if _matches(row, write.filters, None)]
        if write.op == EVENT_UPDATE:
            changes = []
            for row_id in matching:
                old = rows[row_id]
                new = {**old, **copy.deepcopy(dict(write.patch))}
                rows[row_id] = new
                changes.append((old, new))
            return changes
        if write.op == EVENT_DELETE:
            return [(rows.pop(row_id), None) for row_id in matching]
        raise ValidationError(f"Unknown write operation '{write.op}'")

    def transaction(self, writes: Sequence[Write]) -> Optional[List[List[Row]]]:
        # Stage on shallow table copies; nothing is visible until the swap below
        staged: Dict[str, Dict[str, Row]] = {}
        changes = []
        for write in writes:
            if write.table not in staged:
                staged[write.table] = dict(self._tables.get(write.table, {}))
            pairs = self._apply(staged[write.table], write)
            if write.required and not pairs:
                return None
            changes.append(pairs)

        self._tables.update(staged)
        changes = [[(copy.deepcopy(old), copy.deepcopy(new)) for old, new in pairs] for pairs in changes]
        self._publish_changes(writes, changes)
        return [
            [copy.deepcopy(new if new is not None else old) for old, new in pairs]
            for pairs in changes
        ]

    def clear(self) -> None:
        """Clear all state."""
        self._tables.clear()

"""
Realtime synchronizer: keeps a view's local record list consistent with the
store using snapshot + change events.

Mount order is subscribe first, then fetch. Events that arrive while the
snapshot is in flight are buffered and replayed on top of it, so nothing
committed between the two steps is lost. The feed keeps no history, so every
reconnect re-fetches the snapshot instead of trusting missed events.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from hospitality import config
from hospitality.errors import UpstreamError
from hospitality.realtime import ChangeEvent, ChangeFeed, EVENT_DELETE, EVENT_INSERT, EVENT_UPDATE
from hospitality.schemas import KitchenTicket, TicketStatus, normalize_line_items
from hospitality.stats import OrderStats, compute_stats

logger = logging.getLogger(__name__)


class RecordSynchronizer:
    """
    Local, newest-first list of one restaurant's records of one table.

    Args:
        feed: change feed to subscribe to
        table: storage table name ("kitchen_tickets", "orders")
        restaurant_id: scope of the subscription and snapshot
        fetch_snapshot: callable returning rows (sync or awaitable)
        model: pydantic record type rows are validated into
        active_only: drop records once they reach a terminal status
        on_change: called as on_change(action, record) after each local change;
            action is "init", "insert", "update" or "delete"
        on_notify: front-of-house notification callback
        on_error: called with UpstreamError once resync retries are exhausted
    """

    def __init__(
        self,
        feed: ChangeFeed,
        table: str,
        restaurant_id: str,
        fetch_snapshot: Callable[[], Any],
        model=KitchenTicket,
        active_only: bool = True,
        on_change: Optional[Callable[[str, Any], None]] = None,
        on_notify: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_error: Optional[Callable[[UpstreamError], None]] = None,
        max_attempts: Optional[int] = None,
        retry_delay: Optional[float] = None,
    ):
        self.feed = feed
        self.table = table
        self.restaurant_id = restaurant_id
        self.fetch_snapshot = fetch_snapshot
        self.model = model
        self.active_only = active_only
        self.on_change = on_change
        self.on_notify = on_notify
        self.on_error = on_error
        self.max_attempts = max(1, max_attempts if max_attempts is not None else config.SYNC_MAX_ATTEMPTS)
        self.retry_delay = config.SYNC_RETRY_DELAY if retry_delay is None else retry_delay

        self._records: List[Any] = []
        self._mounted = False
        self._generation = 0
        self._buffer: Optional[List[ChangeEvent]] = None
        self._dispose_changes: Optional[Callable[[], None]] = None
        self._dispose_notifications: Optional[Callable[[], None]] = None
        self.reconnect_task: Optional[asyncio.Task] = None

    # ---------- Lifecycle ----------

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def mount(self) -> bool:
        """Subscribe and load the initial snapshot. Returns False if it failed."""
        self._mounted = True
        if self.on_notify is not None and self._dispose_notifications is None:
            self._dispose_notifications = self.feed.subscribe_notifications(self.restaurant_id, self._handle_notify)
        return await self._sync_with_retries()

    async def reconnect(self) -> bool:
        """Re-subscribe and re-fetch the snapshot, retrying on failure."""
        if not self._mounted:
            return False
        logger.info("Resyncing %s for restaurant %s", self.table, self.restaurant_id)
        return await self._sync_with_retries()

    def unmount(self) -> None:
        """Stop listening. Any fetch still in flight is discarded when it lands."""
        self._mounted = False
        self._generation += 1
        self._buffer = None
        self._unsubscribe()
        if self._dispose_notifications is not None:
            self._dispose_notifications()
            self._dispose_notifications = None
        task = self.reconnect_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _unsubscribe(self) -> None:
        if self._dispose_changes is not None:
            self._dispose_changes()
            self._dispose_changes = None

    async def _sync_with_retries(self) -> bool:
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            if not self._mounted:
                return False
            try:
                return await self._sync_once()
            except Exception as e:
                last_error = e
                logger.warning("Snapshot fetch for %s failed (attempt %d/%d): %s",
                               self.table, attempt, self.max_attempts, e)
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.retry_delay)

        self._unsubscribe()
        self._buffer = None
        error = UpstreamError(
            f"Could not load {self.table} after {self.max_attempts} attempts",
            str(last_error),
        )
        logger.error("%s", error.message)
        if self.on_error is not None and self._mounted:
            self.on_error(error)
        return False

    async def _sync_once(self) -> bool:
        self._generation += 1
        generation = self._generation

        self._unsubscribe()
        self._buffer = []
        self._dispose_changes = self.feed.subscribe(
            self.table, self.restaurant_id, self._handle_event, on_disconnect=self._handle_disconnect
        )

        rows = self.fetch_snapshot()
        if inspect.isawaitable(rows):
            rows = await rows

        if not self._mounted or generation != self._generation:
            logger.debug("Discarding stale %s snapshot", self.table)
            return False

        buffered, self._buffer = self._buffer or [], None
        self._seed(rows or [])
        for event in buffered:
            self._apply(event)
        self._emit("init", None)
        return True

    def _handle_disconnect(self) -> None:
        self._dispose_changes = None
        if not self._mounted:
            return
        logger.warning("Change feed dropped %s subscription for restaurant %s", self.table, self.restaurant_id)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop; call reconnect() to resync %s", self.table)
            return
        self.reconnect_task = loop.create_task(self.reconnect())

    # ---------- Event handling ----------

    def _handle_event(self, event: ChangeEvent) -> None:
        if not self._mounted:
            return
        if self._buffer is not None:
            self._buffer.append(event)
            return
        self._apply(event)

    def _handle_notify(self, message: Dict[str, Any]) -> None:
        if self._mounted and self.on_notify is not None:
            self.on_notify(message)

    def _coerce(self, row: Any):
        """Validate a raw row into a record, or None if it cannot be salvaged."""
        if not isinstance(row, dict) or not row.get("id"):
            logger.warning("Dropping %s row without id: %r", self.table, row)
            return None
        row = dict(row)
        try:
            items, corrections = normalize_line_items(row.get("items"))
            if corrections:
                logger.warning("Normalized %d item field(s) on %s %s", corrections, self.table, row["id"])
            row["items"] = items
            row.setdefault("restaurant_id", self.restaurant_id)
            return self.model.model_validate(row)
        except PydanticValidationError as e:
            logger.warning("Dropping malformed %s row %s: %s", self.table, row["id"], e.errors())
            return None
        except (TypeError, ValueError, ArithmeticError) as e:
            logger.warning("Dropping unreadable %s row %s: %s", self.table, row["id"], e)
            return None

    def _keep(self, record) -> bool:
        return not (self.active_only and record.is_terminal)

    def _index(self, record_id: str) -> int:
        for i, record in enumerate(self._records):
            if record.id == record_id:
                return i
        return -1

    def _seed(self, rows) -> None:
        records = []
        seen = set()
        for row in rows:
            record = self._coerce(row)
            if record is None or record.id in seen or not self._keep(record):
                continue
            seen.add(record.id)
            records.append(record)
        records.sort(key=lambda r: r.created_at or "", reverse=True)
        self._records = records

    def _apply(self, event: ChangeEvent) -> None:
        if event.event_type == EVENT_DELETE:
            row = event.old or event.new or {}
            idx = self._index(row.get("id")) if isinstance(row, dict) else -1
            if idx >= 0:
                removed = self._records.pop(idx)
                self._emit("delete", removed)
            return

        if event.event_type not in (EVENT_INSERT, EVENT_UPDATE):
            logger.warning("Ignoring unknown %s event type %r", self.table, event.event_type)
            return

        record = self._coerce(event.new)
        if record is None:
            return
        idx = self._index(record.id)

        if not self._keep(record):
            if idx >= 0:
                self._records.pop(idx)
                self._emit("delete", record)
            return

        if idx >= 0:
            if event.event_type == EVENT_INSERT:
                return  # already present
            self._records[idx] = record
            self._emit("update", record)
        else:
            # Updates for unknown ids self-heal a missed insert
            self._records.insert(0, record)
            self._emit("insert", record)

    def _emit(self, action: str, record) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(action, record)
        except Exception:
            logger.exception("on_change handler failed for %s %s", self.table, action)

    # ---------- Views ----------

    @property
    def records(self) -> list:
        return list(self._records)

    def grouped_by_status(self) -> Dict[str, list]:
        groups: Dict[str, list] = {status.value: [] for status in TicketStatus}
        for record in self._records:
            groups[record.status.value].append(record)
        return groups

    def stats(self) -> OrderStats:
        return compute_stats(self._records)

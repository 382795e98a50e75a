"""
Realtime change feed and websocket connection registry.

ChangeFeed is the in-process stand-in for a hosted realtime service: storage
backends publish post-commit row images to it and subscribers (the view
synchronizers) receive them synchronously, in publish order. The feed keeps
no history, so a subscriber that was disconnected must re-fetch.
"""

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)

EVENT_INSERT = "insert"
EVENT_UPDATE = "update"
EVENT_DELETE = "delete"


@dataclass
class ChangeEvent:
    table: str
    event_type: str  # insert | update | delete
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None
    restaurant_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "table": self.table,
            "eventType": self.event_type,
            "new": self.new,
            "old": self.old,
        }


@dataclass
class _Subscription:
    sub_id: int
    table: Optional[str]
    restaurant_id: Optional[str]
    callback: Callable[[Any], None]
    on_disconnect: Optional[Callable[[], None]] = None
    active: bool = field(default=True)


class ChangeFeed:
    """Per-table, per-restaurant publish/subscribe."""

    def __init__(self):
        self._ids = itertools.count(1)
        self._subscriptions: Dict[int, _Subscription] = {}
        self._notification_subs: Dict[int, _Subscription] = {}

    def subscribe(
        self,
        table: str,
        restaurant_id: Optional[str],
        callback: Callable[[ChangeEvent], None],
        on_disconnect: Optional[Callable[[], None]] = None,
    ) -> Callable[[], None]:
        """
        Subscribe to changes of one table for one restaurant.

        restaurant_id=None receives every restaurant's events (admin tooling).
        Returns a disposer; calling it more than once is harmless.
        """
        sub = _Subscription(next(self._ids), table, restaurant_id, callback, on_disconnect)
        self._subscriptions[sub.sub_id] = sub
        return self._disposer(self._subscriptions, sub)

    def subscribe_notifications(
        self,
        restaurant_id: Optional[str],
        callback: Callable[[Dict[str, Any]], None],
    ) -> Callable[[], None]:
        sub = _Subscription(next(self._ids), None, restaurant_id, callback)
        self._notification_subs[sub.sub_id] = sub
        return self._disposer(self._notification_subs, sub)

    @staticmethod
    def _disposer(registry: Dict[int, _Subscription], sub: _Subscription) -> Callable[[], None]:
        def dispose() -> None:
            sub.active = False
            registry.pop(sub.sub_id, None)
        return dispose

    @staticmethod
    def _matches(sub: _Subscription, restaurant_id: Optional[str]) -> bool:
        return sub.restaurant_id is None or sub.restaurant_id == restaurant_id

    def publish(self, event: ChangeEvent) -> None:
        """Deliver an event to every matching subscriber."""
        for sub in list(self._subscriptions.values()):
            if not sub.active or sub.table != event.table or not self._matches(sub, event.restaurant_id):
                continue
            try:
                sub.callback(event)
            except Exception:
                logger.exception("Change subscriber %s failed on %s %s", sub.sub_id, event.table, event.event_type)

    def notify(self, restaurant_id: Optional[str], message: Dict[str, Any]) -> None:
        """Front-of-house notifications (order ready and similar)."""
        for sub in list(self._notification_subs.values()):
            if not sub.active or not self._matches(sub, restaurant_id):
                continue
            try:
                sub.callback(message)
            except Exception:
                logger.exception("Notification subscriber %s failed", sub.sub_id)

    def disconnect(self, restaurant_id: Optional[str] = None) -> int:
        """
        Drop table subscriptions (all, or one restaurant's) and fire their
        on_disconnect hooks. Returns the number of dropped subscriptions.
        """
        dropped = [
            sub for sub in list(self._subscriptions.values())
            if restaurant_id is None or sub.restaurant_id == restaurant_id
        ]
        for sub in dropped:
            sub.active = False
            self._subscriptions.pop(sub.sub_id, None)
        logger.warning("Change feed disconnected %d subscription(s)", len(dropped))
        for sub in dropped:
            if sub.on_disconnect is None:
                continue
            try:
                sub.on_disconnect()
            except Exception:
                logger.exception("on_disconnect hook for subscription %s failed", sub.sub_id)
        return len(dropped)

    def subscriber_count(self, table: Optional[str] = None) -> int:
        if table is None:
            return len(self._subscriptions)
        return sum(1 for sub in self._subscriptions.values() if sub.table == table)


class ConnectionManager:
    """Websocket clients grouped by (restaurant, view)."""

    def __init__(self):
        self.active_connections: Dict[tuple, List[WebSocket]] = {}

    async def connect(self, restaurant_id: str, view: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.setdefault((restaurant_id, view), []).append(websocket)
        logger.info("%s view connected for restaurant %s (%d clients)",
                    view, restaurant_id, len(self.active_connections[(restaurant_id, view)]))

    def disconnect(self, restaurant_id: str, view: str, websocket: WebSocket) -> None:
        conns = self.active_connections.get((restaurant_id, view), [])
        if websocket in conns:
            conns.remove(websocket)
        logger.info("%s view disconnected for restaurant %s (%d clients left)", view, restaurant_id, len(conns))

    async def broadcast(self, restaurant_id: str, view: str, message: Dict[str, Any]) -> None:
        """Send JSON message to all clients of a view, remove dead connections."""
        conns = self.active_connections.get((restaurant_id, view), [])
        alive = []
        for ws in conns:
            try:
                await ws.send_json(message)
                alive.append(ws)
            except Exception:
                # Connection closed or errored, drop it
                pass
        self.active_connections[(restaurant_id, view)] = alive

    def clear(self) -> None:
        self.active_connections.clear()
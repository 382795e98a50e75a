"""Tests for the realtime record synchronizer."""

import asyncio

import pytest

from hospitality.errors import UpstreamError
from hospitality.realtime import ChangeEvent
from hospitality.schemas import Order, TicketStatus, UNKNOWN_ITEM_NAME
from hospitality.storage.repositories import TicketRepository
from hospitality.sync import RecordSynchronizer


@pytest.fixture
def tickets(storage):
    return TicketRepository(storage)


def _ticket(tickets, restaurant_id="r1", created_at=None, **fields):
    row = tickets.build_row(restaurant_id, items=[{"name": "Pizza", "quantity": 1, "unit_price": 250}], **fields)
    if created_at:
        row["created_at"] = created_at
    return row


def _fetcher(tickets, restaurant_id="r1"):
    return lambda: [t.model_dump() for t in tickets.list_active(restaurant_id)]


def _sync(feed, tickets, **kwargs):
    kwargs.setdefault("retry_delay", 0)
    return RecordSynchronizer(feed, "kitchen_tickets", "r1", _fetcher(tickets), **kwargs)


@pytest.mark.asyncio
async def test_mount_seeds_active_records_newest_first(storage, feed, tickets):
    storage.insert("kitchen_tickets", [
        _ticket(tickets, created_at="2026-01-01T10:00:00.000000Z", source="old"),
        _ticket(tickets, created_at="2026-01-01T11:00:00.000000Z", source="new"),
        _ticket(tickets, created_at="2026-01-01T12:00:00.000000Z", source="done", status="completed"),
        _ticket(tickets, "r2", source="elsewhere"),
    ])
    sync = _sync(feed, tickets)

    assert await sync.mount() is True
    assert [t.source for t in sync.records] == ["new", "old"]
    assert feed.subscriber_count("kitchen_tickets") == 1


@pytest.mark.asyncio
async def test_insert_prepends_and_is_idempotent(storage, feed, tickets):
    sync = _sync(feed, tickets)
    await sync.mount()

    row = storage.insert("kitchen_tickets", [_ticket(tickets, source="Table 1")])[0]
    storage.insert("kitchen_tickets", [_ticket(tickets, source="Table 2")])
    # Duplicate delivery of the same insert
    feed.publish(ChangeEvent("kitchen_tickets", "insert", new=row, restaurant_id="r1"))

    assert [t.source for t in sync.records] == ["Table 2", "Table 1"]


@pytest.mark.asyncio
async def test_update_replaces_by_id(storage, feed, tickets):
    row = storage.insert("kitchen_tickets", [_ticket(tickets)])[0]
    sync = _sync(feed, tickets)
    await sync.mount()

    storage.update("kitchen_tickets", {"id": row["id"]}, {"status": "preparing"})

    assert len(sync.records) == 1
    assert sync.records[0].status == TicketStatus.PREPARING


@pytest.mark.asyncio
async def test_update_for_unknown_record_self_heals(feed, tickets):
    sync = _sync(feed, tickets)
    await sync.mount()

    missed = _ticket(tickets, id="t-missed", status="preparing")
    feed.publish(ChangeEvent("kitchen_tickets", "update", new=missed, restaurant_id="r1"))

    assert [t.id for t in sync.records] == ["t-missed"]


@pytest.mark.asyncio
async def test_terminal_status_and_delete_remove_record(storage, feed, tickets):
    first, second = storage.insert("kitchen_tickets", [_ticket(tickets), _ticket(tickets)])
    changes = []
    sync = _sync(feed, tickets, on_change=lambda action, record: changes.append((action, record.id if record else None)))
    await sync.mount()

    storage.update("kitchen_tickets", {"id": first["id"]}, {"status": "cancelled"})
    storage.delete("kitchen_tickets", {"id": second["id"]})

    assert sync.records == []
    assert changes == [("init", None), ("delete", first["id"]), ("delete", second["id"])]


@pytest.mark.asyncio
async def test_all_records_view_keeps_terminal_records(storage, feed):
    row = {"id": "o1", "restaurant_id": "r1", "items": [], "status": "ready", "subtotal": 500.0}
    sync = RecordSynchronizer(feed, "orders", "r1", lambda: [row], model=Order, active_only=False)
    await sync.mount()

    feed.publish(ChangeEvent("orders", "update", new={**row, "status": "completed"}, restaurant_id="r1"))

    assert sync.records[0].status == TicketStatus.COMPLETED
    assert sync.stats().revenue == 500.0
    assert sync.grouped_by_status()["completed"][0].id == "o1"


@pytest.mark.asyncio
async def test_malformed_rows_are_normalized_not_raised(feed, tickets, caplog):
    sync = _sync(feed, tickets)
    await sync.mount()

    feed.publish(ChangeEvent("kitchen_tickets", "insert", restaurant_id="r1", new={
        "id": "t-bad",
        "restaurant_id": "r1",
        "status": "new",
        "items": [{"quantity": "lots"}, "Garlic bread", 42, {"name": "Soup", "notes": "no salt"}],
    }))
    feed.publish(ChangeEvent("kitchen_tickets", "insert", restaurant_id="r1", new={"status": "new"}))
    feed.publish(ChangeEvent("kitchen_tickets", "insert", restaurant_id="r1",
                             new={"id": "t-weird", "status": "exploded"}))

    assert [t.id for t in sync.records] == ["t-bad"]
    items = sync.records[0].items
    assert [(i.name, i.quantity, i.notes) for i in items] == [
        (UNKNOWN_ITEM_NAME, 1, []),
        ("Garlic bread", 1, []),
        ("Soup", 1, ["no salt"]),
    ]
    assert "Dropping" in caplog.text


@pytest.mark.asyncio
async def test_one_unreadable_row_does_not_blank_the_snapshot(feed):
    good = {"id": "o1", "restaurant_id": "r1", "status": "completed", "subtotal": 500.0,
            "items": [{"name": "Pizza", "quantity": 2, "unit_price": 250}]}
    huge = {"id": "o2", "restaurant_id": "r1", "status": "new",
            "items": [{"name": "Rice", "quantity": 10 ** 400}, {"name": "Dal", "quantity": float("inf")}]}
    endless = {"id": "o3", "restaurant_id": "r1", "status": "completed", "subtotal": float("inf")}
    errors = []

    sync = RecordSynchronizer(feed, "orders", "r1", lambda: [good, huge, endless], model=Order,
                              active_only=False, on_error=errors.append, retry_delay=0)

    assert await sync.mount() is True
    assert errors == []
    assert {o.id for o in sync.records} == {"o1", "o2"}
    rice, dal = next(o for o in sync.records if o.id == "o2").items
    assert (rice.quantity, dal.quantity) == (1, 1)
    assert sync.stats().revenue == 500.0


@pytest.mark.asyncio
async def test_events_during_snapshot_fetch_are_not_lost(storage, feed, tickets):
    existing = storage.insert("kitchen_tickets", [_ticket(tickets, source="existing")])[0]

    async def slow_fetch():
        snapshot = [t.model_dump() for t in tickets.list_active("r1")]
        # Committed after the snapshot was read but before it was applied
        storage.insert("kitchen_tickets", [_ticket(tickets, source="late")])
        storage.update("kitchen_tickets", {"id": existing["id"]}, {"status": "preparing"})
        await asyncio.sleep(0)
        return snapshot

    sync = RecordSynchronizer(feed, "kitchen_tickets", "r1", slow_fetch)
    await sync.mount()

    by_source = {t.source: t for t in sync.records}
    assert set(by_source) == {"existing", "late"}
    assert by_source["existing"].status == TicketStatus.PREPARING


@pytest.mark.asyncio
async def test_disconnect_triggers_refetch(storage, feed, tickets):
    sync = _sync(feed, tickets)
    await sync.mount()

    feed.disconnect("r1")
    # Missed while disconnected; the feed does not replay it
    storage.insert("kitchen_tickets", [_ticket(tickets, source="missed")])
    assert sync.records == []

    assert await sync.reconnect_task is True
    assert [t.source for t in sync.records] == ["missed"]
    assert feed.subscriber_count("kitchen_tickets") == 1


@pytest.mark.asyncio
async def test_retries_exhausted_reports_upstream_error(feed):
    calls = []
    errors = []

    def failing_fetch():
        calls.append(1)
        raise ConnectionError("backend unavailable")

    sync = RecordSynchronizer(feed, "kitchen_tickets", "r1", failing_fetch,
                              on_error=errors.append, max_attempts=3, retry_delay=0)

    assert await sync.mount() is False
    assert len(calls) == 3
    assert len(errors) == 1
    assert isinstance(errors[0], UpstreamError)
    assert feed.subscriber_count("kitchen_tickets") == 0


@pytest.mark.asyncio
async def test_retry_recovers_after_transient_failure(feed, storage, tickets):
    storage.insert("kitchen_tickets", [_ticket(tickets)])
    attempts = []

    def flaky_fetch():
        attempts.append(1)
        if len(attempts) == 1:
            raise ConnectionError("blip")
        return [t.model_dump() for t in tickets.list_active("r1")]

    sync = RecordSynchronizer(feed, "kitchen_tickets", "r1", flaky_fetch, retry_delay=0)
    assert await sync.mount() is True
    assert len(sync.records) == 1


@pytest.mark.asyncio
async def test_unmount_discards_in_flight_fetch_and_later_events(storage, feed, tickets):
    storage.insert("kitchen_tickets", [_ticket(tickets)])
    release = asyncio.Event()
    changes = []

    async def blocked_fetch():
        await release.wait()
        return [t.model_dump() for t in tickets.list_active("r1")]

    sync = RecordSynchronizer(feed, "kitchen_tickets", "r1", blocked_fetch,
                              on_change=lambda action, record: changes.append(action))
    mounting = asyncio.create_task(sync.mount())
    await asyncio.sleep(0)

    sync.unmount()
    release.set()

    assert await mounting is False
    storage.insert("kitchen_tickets", [_ticket(tickets)])
    assert sync.records == []
    assert changes == []
    assert feed.subscriber_count() == 0


@pytest.mark.asyncio
async def test_notifications_reach_mounted_view_only(feed, tickets):
    received = []
    sync = _sync(feed, tickets, on_notify=received.append)
    await sync.mount()

    feed.notify("r1", {"type": "order_ready"})
    feed.notify("r2", {"type": "order_ready"})
    sync.unmount()
    feed.notify("r1", {"type": "order_ready"})

    assert received == [{"type": "order_ready"}]


@pytest.mark.asyncio
async def test_grouped_by_status_and_stats(storage, feed, tickets):
    storage.insert("kitchen_tickets", [
        _ticket(tickets, status="new"),
        _ticket(tickets, status="preparing"),
        _ticket(tickets, status="preparing"),
    ])
    sync = _sync(feed, tickets)
    await sync.mount()

    groups = sync.grouped_by_status()
    assert len(groups["new"]) == 1
    assert len(groups["preparing"]) == 2
    assert groups["ready"] == []
    stats = sync.stats()
    assert (stats.total, stats.pending, stats.completed, stats.revenue) == (3, 3, 0, 0.0)

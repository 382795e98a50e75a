"""Tests for POS order submission, edits, cancellation and bills."""

import pytest

from conftest import place_order, signup_owner


def _pizza(menu, quantity=2, **extra):
    return [{"menu_item_id": menu["Pizza"], "quantity": quantity, **extra}]


@pytest.mark.asyncio
async def test_submit_prices_order_and_creates_ticket(async_client, cashier, menu):
    data = await place_order(async_client, cashier, _pizza(menu, notes=["extra cheese"]), table_label="4")

    order = data["order"]
    assert order["status"] == "new"
    assert order["subtotal"] == 500.0
    assert order["tax"] == 50.0
    assert order["total"] == 550.0
    assert order["items"][0]["unit_price"] == 250.0
    assert order["items"][0]["notes"] == ["extra cheese"]

    ticket = data["ticket"]
    assert ticket["order_id"] == order["id"]
    assert ticket["source"] == "Table 4"
    assert ticket["status"] == "new"
    assert [i["name"] for i in ticket["items"]] == ["Pizza"]


@pytest.mark.asyncio
async def test_ticket_source_falls_back_to_customer_name(async_client, cashier, menu):
    data = await place_order(async_client, cashier, _pizza(menu), customer_name="Asha")
    assert data["ticket"]["source"] == "Asha"

    data = await place_order(async_client, cashier, _pizza(menu))
    assert data["order"]["customer_name"] == "Guest"
    assert data["ticket"]["source"] == "Guest"


@pytest.mark.asyncio
async def test_price_is_captured_at_submission(async_client, owner, cashier, menu):
    data = await place_order(async_client, cashier, _pizza(menu, quantity=1))

    response = await async_client.put(
        f"/api/menu/{menu['Pizza']}", json={"price": 300}, headers=owner["headers"]
    )
    assert response.status_code == 200

    response = await async_client.get(f"/api/orders/{data['order']['id']}", headers=cashier["headers"])
    assert response.json()["order"]["items"][0]["unit_price"] == 250.0
    assert response.json()["order"]["subtotal"] == 250.0


@pytest.mark.asyncio
async def test_invalid_carts_are_rejected(async_client, owner, cashier, menu):
    response = await async_client.post("/api/orders", json={"items": []}, headers=cashier["headers"])
    assert response.status_code == 400
    assert response.json()["error"] == "Validation error"

    response = await async_client.post(
        "/api/orders", json={"items": _pizza(menu, quantity=0)}, headers=cashier["headers"]
    )
    assert response.status_code == 400

    response = await async_client.post(
        "/api/orders", json={"items": [{"menu_item_id": "missing", "quantity": 1}]}, headers=cashier["headers"]
    )
    assert response.status_code == 404

    await async_client.put(f"/api/menu/{menu['Coke']}", json={"is_available": False}, headers=owner["headers"])
    response = await async_client.post(
        "/api/orders", json={"items": [{"menu_item_id": menu["Coke"]}]}, headers=cashier["headers"]
    )
    assert response.status_code == 404

    response = await async_client.get("/api/orders", headers=cashier["headers"])
    assert response.json() == []


@pytest.mark.asyncio
async def test_get_order_includes_ticket_and_history(async_client, cashier, kitchen, menu):
    data = await place_order(async_client, cashier, _pizza(menu))
    await async_client.post(
        f"/api/kitchen/tickets/{data['ticket']['id']}/status", json={"status": "preparing"},
        headers=kitchen["headers"],
    )

    response = await async_client.get(f"/api/orders/{data['order']['id']}", headers=cashier["headers"])
    assert response.status_code == 200
    body = response.json()
    assert body["order"]["status"] == "preparing"
    assert body["ticket"]["status"] == "preparing"
    assert [(h["from_status"], h["to_status"]) for h in body["history"]] == [
        (None, "new"), ("new", "preparing"),
    ]


@pytest.mark.asyncio
async def test_list_and_filter_orders(async_client, cashier, menu):
    first = await place_order(async_client, cashier, _pizza(menu))
    second = await place_order(async_client, cashier, _pizza(menu, quantity=1))
    await async_client.post(f"/api/orders/{first['order']['id']}/cancel", headers=cashier["headers"])

    response = await async_client.get("/api/orders", headers=cashier["headers"])
    assert {o["id"] for o in response.json()} == {first["order"]["id"], second["order"]["id"]}

    response = await async_client.get("/api/orders", params={"status": "cancelled"}, headers=cashier["headers"])
    assert [o["id"] for o in response.json()] == [first["order"]["id"]]

    response = await async_client.get("/api/orders", params={"status": "lost"}, headers=cashier["headers"])
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_cancel_order_cancels_ticket(async_client, cashier, kitchen, menu):
    data = await place_order(async_client, cashier, _pizza(menu))

    response = await async_client.post(f"/api/orders/{data['order']['id']}/cancel", headers=cashier["headers"])
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    response = await async_client.get("/api/kitchen/tickets", headers=kitchen["headers"])
    assert response.json() == []

    # Terminal: nothing moves a cancelled order
    response = await async_client.post(f"/api/orders/{data['order']['id']}/cancel", headers=cashier["headers"])
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_order_status_cannot_regress(async_client, owner, menu):
    data = await place_order(async_client, owner, _pizza(menu))
    order_id = data["order"]["id"]

    for status in ("preparing", "ready"):
        response = await async_client.post(
            f"/api/orders/{order_id}/status", json={"status": status}, headers=owner["headers"]
        )
        assert response.status_code == 200

    response = await async_client.post(
        f"/api/orders/{order_id}/status", json={"status": "preparing"}, headers=owner["headers"]
    )
    assert response.status_code == 409
    assert response.json()["details"] == {"current": "ready", "target": "preparing"}

    response = await async_client.get(f"/api/orders/{order_id}", headers=owner["headers"])
    assert response.json()["order"]["status"] == "ready"
    assert response.json()["ticket"]["status"] == "ready"


@pytest.mark.asyncio
async def test_ready_order_cannot_be_completed_without_payment(async_client, owner, cashier, kitchen, menu):
    data = await place_order(async_client, cashier, _pizza(menu))
    order_id = data["order"]["id"]
    for status in ("preparing", "ready"):
        await async_client.post(
            f"/api/kitchen/tickets/{data['ticket']['id']}/status", json={"status": status},
            headers=kitchen["headers"],
        )

    for staff in (cashier, owner):
        response = await async_client.post(
            f"/api/orders/{order_id}/status", json={"status": "completed"}, headers=staff["headers"]
        )
        assert response.status_code == 409
        assert response.json()["details"] == {"current": "ready", "target": "completed"}

    response = await async_client.get(f"/api/orders/{order_id}", headers=cashier["headers"])
    assert response.json()["order"]["status"] == "ready"
    assert response.json()["order"]["paid_at"] is None

    response = await async_client.get("/api/orders/stats", headers=cashier["headers"])
    assert response.json()["revenue"] == 0.0


@pytest.mark.asyncio
async def test_update_items_only_before_kitchen(async_client, cashier, menu):
    held = await place_order(async_client, cashier, _pizza(menu), send_to_kitchen=False)
    assert held["ticket"] is None

    response = await async_client.put(
        f"/api/orders/{held['order']['id']}/items",
        json={"items": [{"menu_item_id": menu["Pasta"], "quantity": 3}]},
        headers=cashier["headers"],
    )
    assert response.status_code == 200
    assert response.json()["subtotal"] == 599.97
    assert response.json()["total"] == 659.97

    sent = await place_order(async_client, cashier, _pizza(menu))
    response = await async_client.put(
        f"/api/orders/{sent['order']['id']}/items",
        json={"items": [{"menu_item_id": menu["Coke"], "quantity": 1}]},
        headers=cashier["headers"],
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Order has already been sent to the kitchen"


@pytest.mark.asyncio
async def test_bill_and_receipt(async_client, cashier, menu):
    data = await place_order(async_client, cashier, _pizza(menu), table_label="4")

    response = await async_client.get(f"/api/orders/{data['order']['id']}/bill", headers=cashier["headers"])
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "new"
    assert (body["bill"]["subtotal"], body["bill"]["tax"], body["bill"]["total"]) == (500.0, 50.0, 550.0)
    assert body["bill"]["items"][0]["line_total"] == 500.0
    assert "Test Bistro" in body["receipt"]
    assert "For: Table 4" in body["receipt"]
    assert "Tax (10%)" in body["receipt"]


@pytest.mark.asyncio
async def test_orders_are_scoped_to_restaurant(async_client, cashier, menu):
    data = await place_order(async_client, cashier, _pizza(menu))
    rival = await signup_owner(async_client, username="rival", restaurant_name="Rival Diner")

    response = await async_client.get(f"/api/orders/{data['order']['id']}", headers=rival["headers"])
    assert response.status_code == 404

    response = await async_client.post(
        f"/api/orders/{data['order']['id']}/cancel", headers=rival["headers"]
    )
    assert response.status_code == 404

    response = await async_client.post(
        "/api/orders", json={"items": _pizza(menu)}, headers=rival["headers"]
    )
    assert response.status_code == 404

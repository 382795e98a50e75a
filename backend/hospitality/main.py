# backend/hospitality/main.py
import asyncio
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hospitality import config
from hospitality.api import (
    auth_router,
    customers_router,
    kitchen_router,
    menu_router,
    orders_router,
    roles_router,
)
from hospitality.db.dependencies import actor_for_profile, profile_from_token
from hospitality.errors import AuthError, AuthorizationError, HospitalityError, validation_details
from hospitality.realtime import ChangeFeed, ConnectionManager
from hospitality.schemas import KitchenTicket, Order
from hospitality.services.order_service import OrderService
from hospitality.storage import Storage, create_storage
from hospitality.sync import RecordSynchronizer

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(levelname)s - %(name)s - %(message)s'
)
logger = logging.getLogger(__name__)

# view -> (table, record model, drop terminal records)
VIEWS = {
    "kitchen": ("kitchen_tickets", KitchenTicket, True),
    "pos": ("orders", Order, True),
    "orders": ("orders", Order, False),
}
FRONT_OF_HOUSE = ("pos", "orders")
ORDERS_VIEW_LIMIT = 200


# ---------- Error handlers ----------

async def hospitality_error_handler(request: Request, exc: HospitalityError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "details": validation_details(exc.errors())},
    )


# ---------- Websocket helpers ----------

def _frame(action: str, record, sync: RecordSynchronizer) -> Dict[str, Any]:
    frame = {"action": action, "stats": sync.stats().to_dict()}
    if action == "init":
        frame["items"] = [r.model_dump(mode="json") for r in sync.records]
    elif action == "delete":
        frame["id"] = record.id
    else:
        frame["item"] = record.model_dump(mode="json")
    return frame


def _snapshot_fetcher(service: OrderService, view: str, restaurant_id: str):
    def fetch():
        if view == "kitchen":
            records = service.active_tickets(restaurant_id)
        elif view == "pos":
            records = service.active_orders(restaurant_id)
        else:
            records = service.orders.list_recent(restaurant_id, limit=ORDERS_VIEW_LIMIT)
        return [r.model_dump() for r in records]
    return fetch


async def _pump(queue: asyncio.Queue, websocket: WebSocket) -> None:
    """Forward queued frames to the socket in order."""
    while True:
        frame = await queue.get()
        await websocket.send_json(frame)


def create_app(storage: Optional[Storage] = None, feed: Optional[ChangeFeed] = None) -> FastAPI:
    """
    Build the FastAPI app. Each app owns its storage, change feed and
    websocket registry, so tests can create isolated instances.
    """
    feed = feed or ChangeFeed()
    if storage is None:
        storage = create_storage(feed=feed)
    else:
        storage.attach_feed(feed)

    app = FastAPI(title="Hospitality Order Backend")
    app.state.storage = storage
    app.state.feed = feed
    app.state.manager = ConnectionManager()
    # Fan-out tasks stay referenced until they finish
    app.state.background_tasks = set()

    # Allow CORS for local dev (adjust CORS_ORIGINS in production)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(HospitalityError, hospitality_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    for module in (auth_router, menu_router, orders_router, kitchen_router, customers_router, roles_router):
        app.include_router(module.router)

    def forward_notification(message: Dict[str, Any]) -> None:
        """Push "order ready" notices to front-of-house views."""
        restaurant_id = message.get("restaurant_id")
        if restaurant_id is None:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No event loop, dropping notification %s", message.get("type"))
            return
        for view in FRONT_OF_HOUSE:
            task = asyncio.create_task(
                app.state.manager.broadcast(restaurant_id, view, {"action": "notify", **message})
            )
            app.state.background_tasks.add(task)
            task.add_done_callback(app.state.background_tasks.discard)

    feed.subscribe_notifications(None, forward_notification)

    @app.get("/health", summary="Liveness check")
    async def health():
        return {
            "status": "ok",
            "storage": type(app.state.storage).__name__,
            "subscriptions": app.state.feed.subscriber_count(),
        }

    @app.websocket("/ws/{view}")
    async def view_ws(websocket: WebSocket, view: str, token: Optional[str] = Query(None)):
        """
        Live view of kitchen tickets (kitchen) or orders (pos, orders).

        Server -> client:
          {action: "init", items: [...], stats}
          {action: "insert"|"update", item: {...}, stats}
          {action: "delete", id: "...", stats}
          {action: "notify", ...}                  (pos/orders only)
          {action: "error", error: "...", details}
        Client -> server:
          {action: "resync"}
          {action: "transition", ticket_id | order_id, status}
        """
        view = view.lower()
        storage = websocket.app.state.storage
        feed = websocket.app.state.feed
        manager = websocket.app.state.manager
        if view not in VIEWS:
            await websocket.close(code=4001)
            return
        try:
            profile = profile_from_token(storage, token)
            if not profile.get("restaurant_id"):
                raise AuthorizationError("No restaurant associated with user")
        except HospitalityError:
            await websocket.close(code=4001)
            return

        restaurant_id = profile["restaurant_id"]
        actor = actor_for_profile(storage, profile)
        service = OrderService(storage, feed)
        table, model, active_only = VIEWS[view]

        await manager.connect(restaurant_id, view, websocket)
        queue: asyncio.Queue = asyncio.Queue()
        loop = asyncio.get_running_loop()

        def push(frame: Dict[str, Any]) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, frame)

        sync = RecordSynchronizer(
            feed, table, restaurant_id,
            _snapshot_fetcher(service, view, restaurant_id),
            model=model,
            active_only=active_only,
            on_change=lambda action, record: push(_frame(action, record, sync)),
            on_error=lambda error: push({"action": "error", **error.to_dict()}),
        )
        sender = asyncio.create_task(_pump(queue, websocket))

        try:
            await sync.mount()
            while True:
                data = await websocket.receive_json()
                if not isinstance(data, dict) or "action" not in data:
                    push({"action": "error", "error": "invalid message"})
                    continue

                action = data.get("action")
                if action == "resync":
                    await sync.reconnect()
                    continue

                if action == "transition":
                    try:
                        if data.get("ticket_id"):
                            service.advance_ticket(restaurant_id, data["ticket_id"], data.get("status"), actor)
                        elif data.get("order_id"):
                            service.advance_order(restaurant_id, data["order_id"], data.get("status"), actor)
                        else:
                            push({"action": "error", "error": "ticket_id or order_id is required"})
                    except HospitalityError as e:
                        push({"action": "error", **e.to_dict()})
                    continue

                push({"action": "error", "error": "unknown action"})

        except WebSocketDisconnect:
            pass
        except Exception:
            logger.exception("%s websocket for restaurant %s failed", view, restaurant_id)
            try:
                await websocket.close()
            except Exception:
                pass
        finally:
            sync.unmount()
            manager.disconnect(restaurant_id, view, websocket)
            sender.cancel()

    return app


app = create_app()

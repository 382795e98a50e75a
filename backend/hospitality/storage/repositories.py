"""
Typed repositories over the generic Storage interface.

Every query is scoped by restaurant_id; a record belonging to another
restaurant is indistinguishable from a missing one. Orders and tickets come
back as pydantic records (hospitality.schemas), the smaller entities as
plain row dicts.
"""

import logging
from uuid import uuid4
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from hospitality.schemas import KitchenTicket, Order, StatusTransitionRecord, TERMINAL_STATUSES
from hospitality.utils.time_utils import iso_utc
from .base import Row, Storage, Write

logger = logging.getLogger(__name__)

TERMINAL_VALUES = [status.value for status in TERMINAL_STATUSES]


class _Repository:
    table: str = ""

    def __init__(self, storage: Storage):
        self.storage = storage

    def get_row(self, restaurant_id: str, row_id: str) -> Optional[Row]:
        rows = self.storage.select(self.table, {"id": row_id, "restaurant_id": restaurant_id}, limit=1)
        return rows[0] if rows else None

    def update_row(self, restaurant_id: str, row_id: str, patch: Mapping[str, Any]) -> Optional[Row]:
        rows = self.storage.update(self.table, {"id": row_id, "restaurant_id": restaurant_id}, patch)
        return rows[0] if rows else None


class _StatusRecordRepository(_Repository):
    """Shared queries for orders and kitchen tickets."""

    model = None

    def _to_record(self, row: Optional[Row]):
        return self.model.model_validate(row) if row is not None else None

    def get(self, restaurant_id: str, record_id: str):
        return self._to_record(self.get_row(restaurant_id, record_id))

    def list_active(self, restaurant_id: str) -> list:
        """Non-terminal records, newest first."""
        rows = self.storage.select(
            self.table,
            {"restaurant_id": restaurant_id},
            exclude={"status": TERMINAL_VALUES},
            order_by="created_at",
            descending=True,
        )
        return [self._to_record(row) for row in rows]

    def list_recent(self, restaurant_id: str, limit: int = 100, status: Optional[str] = None) -> list:
        """Records of any status, newest first."""
        filters = {"restaurant_id": restaurant_id}
        if status is not None:
            filters["status"] = status
        rows = self.storage.select(self.table, filters, order_by="created_at", descending=True, limit=limit)
        return [self._to_record(row) for row in rows]

    def compare_and_set_status(
        self,
        restaurant_id: str,
        record_id: str,
        expected: str,
        new: str,
        extra_patch: Optional[Mapping[str, Any]] = None,
        also: Sequence[Write] = (),
    ):
        """
        Set status to `new` only if the stored status is still `expected`.

        `also` holds writes (the audit row) committed in the same transaction;
        none of them is stored when the compare-and-set loses.

        Returns the updated record, or None when the record is gone or another
        writer changed its status first.
        """
        patch = dict(extra_patch or {})
        patch.update({"status": new, "updated_at": iso_utc()})
        results = self.storage.transaction([
            Write.update(
                self.table,
                {"id": record_id, "restaurant_id": restaurant_id, "status": expected},
                patch,
                required=True,
            ),
            *also,
        ])
        if results is None:
            logger.info("Status compare-and-set lost on %s %s (expected %s)", self.table, record_id, expected)
            return None
        return self._to_record(results[0][0])


class OrderRepository(_StatusRecordRepository):
    table = "orders"
    model = Order

    def build_row(self, restaurant_id: str, **fields) -> Row:
        now = iso_utc()
        row = {
            "restaurant_id": restaurant_id,
            "customer_name": "Guest",
            "table_label": None,
            "items": [],
            "subtotal": 0.0,
            "tax": 0.0,
            "total": 0.0,
            "status": "new",
            "payment_method": None,
            "customer_id": None,
            "created_at": now,
            "updated_at": now,
            "paid_at": None,
        }
        row.update(fields)
        return row

    def update(self, restaurant_id: str, order_id: str, patch: Mapping[str, Any]) -> Optional[Order]:
        patch = dict(patch)
        patch.setdefault("updated_at", iso_utc())
        return self._to_record(self.update_row(restaurant_id, order_id, patch))


class TicketRepository(_StatusRecordRepository):
    table = "kitchen_tickets"
    model = KitchenTicket

    def build_row(self, restaurant_id: str, **fields) -> Row:
        now = iso_utc()
        row = {
            "restaurant_id": restaurant_id,
            "order_id": None,
            "source": "Walk-in",
            "items": [],
            "status": "new",
            "created_at": now,
            "updated_at": now,
        }
        row.update(fields)
        return row

    def get_for_order(self, restaurant_id: str, order_id: str) -> Optional[KitchenTicket]:
        rows = self.storage.select(
            self.table,
            {"restaurant_id": restaurant_id, "order_id": order_id},
            order_by="created_at",
            descending=True,
            limit=1,
        )
        return self._to_record(rows[0]) if rows else None


class TransitionLogRepository(_Repository):
    table = "status_transitions"

    def build_row(
        self,
        restaurant_id: str,
        record_table: str,
        record_id: str,
        from_status: Optional[str],
        to_status: str,
        actor_id: Optional[str],
        actor_kind: str,
    ) -> Row:
        return {
            "restaurant_id": restaurant_id,
            "record_table": record_table,
            "record_id": record_id,
            "from_status": from_status,
            "to_status": to_status,
            "actor_id": actor_id,
            "actor_kind": actor_kind,
            "created_at": iso_utc(),
        }

    def entry(self, *args) -> Write:
        """An audit row as a Write, for batching with the change it records."""
        return Write.insert(self.table, self.build_row(*args))

    def history(self, restaurant_id: str, record_id: str) -> List[StatusTransitionRecord]:
        rows = self.storage.select(
            self.table,
            {"restaurant_id": restaurant_id, "record_id": record_id},
            order_by="created_at",
        )
        return [StatusTransitionRecord.model_validate(row) for row in rows]


class MenuRepository(_Repository):
    table = "menu_items"

    def list(self, restaurant_id: str, available_only: bool = False) -> List[Row]:
        filters = {"restaurant_id": restaurant_id}
        if available_only:
            filters["is_available"] = True
        return self.storage.select(self.table, filters, order_by="name")

    def create(self, restaurant_id: str, name: str, price: float, category: Optional[str] = None,
               description: Optional[str] = None, is_available: bool = True) -> Row:
        now = iso_utc()
        row = {
            "restaurant_id": restaurant_id,
            "name": name,
            "price": price,
            "category": category,
            "description": description,
            "is_available": is_available,
            "created_at": now,
            "updated_at": now,
        }
        return self.storage.insert(self.table, [row])[0]

    def update(self, restaurant_id: str, item_id: str, patch: Mapping[str, Any]) -> Optional[Row]:
        patch = dict(patch)
        patch["updated_at"] = iso_utc()
        return self.update_row(restaurant_id, item_id, patch)


class RestaurantRepository:
    table = "restaurants"

    def __init__(self, storage: Storage):
        self.storage = storage

    def create(self, name: str) -> Row:
        return self.storage.insert(self.table, [{"name": name, "created_at": iso_utc()}])[0]

    def get(self, restaurant_id: str) -> Optional[Row]:
        return self.storage.get(self.table, restaurant_id)


class ProfileRepository:
    """Profiles are looked up globally (login), then scoped by their restaurant."""

    table = "profiles"

    def __init__(self, storage: Storage):
        self.storage = storage

    def get(self, profile_id: str) -> Optional[Row]:
        return self.storage.get(self.table, profile_id)

    def get_by_username(self, username: str) -> Optional[Row]:
        rows = self.storage.select(self.table, {"username": username}, limit=1)
        return rows[0] if rows else None

    def create(self, username: str, password_hash: str, restaurant_id: Optional[str] = None,
               role_id: Optional[str] = None, full_name: Optional[str] = None) -> Row:
        row = {
            "username": username,
            "password_hash": password_hash,
            "full_name": full_name,
            "restaurant_id": restaurant_id,
            "role_id": role_id,
            "created_at": iso_utc(),
        }
        return self.storage.insert(self.table, [row])[0]

    def list_for_role(self, restaurant_id: str, role_id: str) -> List[Row]:
        return self.storage.select(self.table, {"restaurant_id": restaurant_id, "role_id": role_id})


class RoleRepository(_Repository):
    table = "roles"

    def list(self, restaurant_id: str) -> List[Row]:
        return self.storage.select(self.table, {"restaurant_id": restaurant_id}, order_by="created_at")

    def get(self, restaurant_id: str, role_id: str) -> Optional[Row]:
        return self.get_row(restaurant_id, role_id)

    def get_by_name(self, restaurant_id: str, name: str) -> Optional[Row]:
        rows = self.storage.select(self.table, {"restaurant_id": restaurant_id, "name": name}, limit=1)
        return rows[0] if rows else None

    def build_row(self, restaurant_id: str, name: str, description: Optional[str] = None,
                  is_deletable: bool = True) -> Row:
        return {
            "restaurant_id": restaurant_id,
            "name": name,
            "description": description,
            "is_deletable": is_deletable,
            "created_at": iso_utc(),
        }

    def create(self, restaurant_id: str, name: str, description: Optional[str] = None,
               is_deletable: bool = True, component_ids: Sequence[str] = ()) -> Row:
        """Insert the role and its component grants in one write."""
        role = self.build_row(restaurant_id, name, description, is_deletable)
        role["id"] = str(uuid4())
        grants = [("role_components", {"role_id": role["id"], "component_id": cid}) for cid in component_ids]
        return self.storage.insert_many([(self.table, role)] + grants)[0]

    def update(self, restaurant_id: str, role_id: str, patch: Mapping[str, Any],
               component_ids: Optional[Iterable[str]] = None) -> Optional[Row]:
        """Apply `patch` and, when given, replace the role's grants in one write."""
        scope = {"id": role_id, "restaurant_id": restaurant_id}
        writes = [Write.update(self.table, scope, patch, required=True)] if patch else []
        if component_ids is not None:
            writes.append(Write.delete("role_components", {"role_id": role_id}))
            writes.extend(
                Write.insert("role_components", {"role_id": role_id, "component_id": cid}) for cid in component_ids
            )
        if not writes or self.storage.transaction(writes) is None:
            return None
        return self.get(restaurant_id, role_id)

    def delete(self, restaurant_id: str, role_id: str) -> bool:
        """Remove the role and its grants in one write."""
        return self.storage.transaction([
            Write.delete("role_components", {"role_id": role_id}),
            Write.delete(self.table, {"id": role_id, "restaurant_id": restaurant_id}, required=True),
        ]) is not None

    def component_ids(self, role_id: str) -> List[str]:
        return [row["component_id"] for row in self.storage.select("role_components", {"role_id": role_id})]

    # Components are global (shared by every restaurant)

    def list_components(self) -> List[Row]:
        return self.storage.select("components", order_by="name")

    def missing_components(self, component_ids: Iterable[str]) -> List[str]:
        known = {row["id"] for row in self.list_components()}
        return [cid for cid in component_ids if cid not in known]

    def ensure_components(self, names: Iterable[str]) -> Dict[str, str]:
        """Create any missing components by name. Returns name -> id."""
        existing = {row["name"]: row["id"] for row in self.list_components()}
        missing = [{"name": name} for name in names if name not in existing]
        if missing:
            for row in self.storage.insert("components", missing):
                existing[row["name"]] = row["id"]
        return existing


class CustomerRepository(_Repository):
    table = "customers"

    def list(self, restaurant_id: str) -> List[Row]:
        return self.storage.select(self.table, {"restaurant_id": restaurant_id}, order_by="name")

    def get(self, restaurant_id: str, customer_id: str) -> Optional[Row]:
        return self.get_row(restaurant_id, customer_id)

    def get_by_phone(self, restaurant_id: str, phone: str) -> Optional[Row]:
        rows = self.storage.select(self.table, {"restaurant_id": restaurant_id, "phone": phone}, limit=1)
        return rows[0] if rows else None

    def create(self, restaurant_id: str, name: str, phone: Optional[str] = None,
               email: Optional[str] = None, loyalty_enrolled: bool = False) -> Row:
        row = {
            "restaurant_id": restaurant_id,
            "name": name,
            "phone": phone,
            "email": email,
            "total_spent": 0.0,
            "visit_count": 0,
            "average_order_value": 0.0,
            "loyalty_enrolled": loyalty_enrolled,
            "loyalty_points": 0,
            "last_visit_date": None,
            "created_at": iso_utc(),
        }
        return self.storage.insert(self.table, [row])[0]

    def update(self, restaurant_id: str, customer_id: str, patch: Mapping[str, Any]) -> Optional[Row]:
        return self.update_row(restaurant_id, customer_id, patch)

    def record_loyalty(self, restaurant_id: str, customer_id: str, transaction_type: str, points: int,
                       source: Optional[str] = None, source_id: Optional[str] = None,
                       notes: Optional[str] = None) -> Row:
        row = {
            "restaurant_id": restaurant_id,
            "customer_id": customer_id,
            "transaction_type": transaction_type,
            "points": points,
            "source": source,
            "source_id": source_id,
            "notes": notes,
            "created_at": iso_utc(),
        }
        return self.storage.insert("loyalty_transactions", [row])[0]

    def loyalty_history(self, restaurant_id: str, customer_id: str) -> List[Row]:
        return self.storage.select(
            "loyalty_transactions",
            {"restaurant_id": restaurant_id, "customer_id": customer_id},
            order_by="created_at",
        )

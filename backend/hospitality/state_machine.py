"""
Order/ticket status state machine.

    new -> preparing -> ready -> completed
     |         |          |
     +---------+----------+---> cancelled

Status only moves forward; completed and cancelled are terminal. Each edge
lists the actor kinds allowed to take it. ready -> completed belongs to the
system actor alone: records are completed by taking payment, never by a
direct status request. Persistence goes through the repository's
compare_and_set_status, so two requests racing on the same record cannot
both win and the loser never regresses the status. The audit row is written
in the same transaction as the status change.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from hospitality.errors import AuthorizationError, InvalidTransition, NotFoundError, ValidationError
from hospitality.realtime import ChangeFeed
from hospitality.schemas import TicketStatus

logger = logging.getLogger(__name__)


class ActorKind(str, Enum):
    KITCHEN = "kitchen"
    CASHIER = "cashier"
    MANAGER = "manager"
    STAFF = "staff"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    id: Optional[str]
    kind: ActorKind


SYSTEM_ACTOR = Actor(None, ActorKind.SYSTEM)

_ANY_STAFF = frozenset(ActorKind)
_SYSTEM_ONLY = frozenset({ActorKind.SYSTEM})

TRANSITIONS: Dict[Tuple[TicketStatus, TicketStatus], FrozenSet[ActorKind]] = {
    (TicketStatus.NEW, TicketStatus.PREPARING): frozenset({ActorKind.KITCHEN, ActorKind.MANAGER}),
    (TicketStatus.PREPARING, TicketStatus.READY): frozenset({ActorKind.KITCHEN, ActorKind.MANAGER}),
    (TicketStatus.READY, TicketStatus.COMPLETED): _SYSTEM_ONLY,
    (TicketStatus.NEW, TicketStatus.CANCELLED): _ANY_STAFF,
    (TicketStatus.PREPARING, TicketStatus.CANCELLED): _ANY_STAFF,
    (TicketStatus.READY, TicketStatus.CANCELLED): _ANY_STAFF,
}

# Role names (roles table) -> actor kind. Unknown custom roles act as generic staff.
_ROLE_KINDS = {
    "owner": ActorKind.MANAGER,
    "admin": ActorKind.MANAGER,
    "manager": ActorKind.MANAGER,
    "kitchen": ActorKind.KITCHEN,
    "chef": ActorKind.KITCHEN,
    "cook": ActorKind.KITCHEN,
    "cashier": ActorKind.CASHIER,
    "waiter": ActorKind.CASHIER,
}


def actor_for_role(role_name: Optional[str]) -> ActorKind:
    if not role_name:
        return ActorKind.STAFF
    return _ROLE_KINDS.get(role_name.strip().lower(), ActorKind.STAFF)


def parse_status(value) -> TicketStatus:
    """Coerce a status string, raising ValidationError for unknown values."""
    if isinstance(value, TicketStatus):
        return value
    try:
        return TicketStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError(
            f"Unknown status '{value}'",
            {"allowed": [status.value for status in TicketStatus]},
        )


def can_transition(current, target) -> bool:
    return (TicketStatus(current), TicketStatus(target)) in TRANSITIONS


def allowed_targets(current) -> list:
    current = TicketStatus(current)
    return [target for (source, target) in TRANSITIONS if source == current]


def check_transition(current, target, actor: Actor) -> None:
    """Raise InvalidTransition or AuthorizationError if the edge is not allowed."""
    current = TicketStatus(current)
    target = TicketStatus(target)
    allowed = TRANSITIONS.get((current, target))
    if allowed is None:
        raise InvalidTransition(current.value, target.value)
    if actor.kind not in allowed:
        if allowed == _SYSTEM_ONLY:
            raise InvalidTransition(
                current.value, target.value,
                f"Records become '{target.value}' when payment is taken, not by a status change",
            )
        raise AuthorizationError(
            f"{actor.kind.value} cannot move a record from '{current.value}' to '{target.value}'",
            {"allowed_actors": sorted(kind.value for kind in allowed)},
        )


class StatusMachine:
    """Apply transitions to one status-carrying table (orders or tickets)."""

    def __init__(self, repository, log, feed: Optional[ChangeFeed] = None):
        self.repository = repository
        self.log = log
        self.feed = feed

    def transition(self, restaurant_id: str, record_id: str, target, actor: Actor, extra_patch=None):
        """
        Move a record to `target` and return the updated record.

        A request that loses the compare-and-set is judged again against the
        status the winner left, and retried once if the edge is still legal.

        Raises ValidationError, NotFoundError, InvalidTransition or
        AuthorizationError; on any of them the stored status is unchanged.
        """
        target = parse_status(target)
        for _ in range(2):
            record = self.repository.get(restaurant_id, record_id)
            if record is None:
                raise NotFoundError(f"{self.repository.table} record {record_id} not found")

            current = record.status
            check_transition(current, target, actor)

            audit = self.log.entry(
                restaurant_id, self.repository.table, record_id,
                current.value, target.value, actor.id, actor.kind.value,
            )
            updated = self.repository.compare_and_set_status(
                restaurant_id, record_id, current.value, target.value, extra_patch, also=[audit]
            )
            if updated is not None:
                break
        else:
            # Lost twice; report the state that keeps winning
            fresh = self.repository.get(restaurant_id, record_id)
            if fresh is None:
                raise NotFoundError(f"{self.repository.table} record {record_id} not found")
            raise InvalidTransition(fresh.status.value, target.value)

        logger.info("%s %s: %s -> %s by %s", self.repository.table, record_id,
                    current.value, target.value, actor.kind.value)

        if target == TicketStatus.READY and self.feed is not None:
            self.feed.notify(restaurant_id, self._ready_message(updated))
        return updated

    def _ready_message(self, record) -> dict:
        source = getattr(record, "source", None) or getattr(record, "customer_name", None) or "Order"
        return {
            "type": "order_ready",
            "restaurant_id": record.restaurant_id,
            "table": self.repository.table,
            "record_id": record.id,
            "order_id": getattr(record, "order_id", None) or (record.id if self.repository.table == "orders" else None),
            "source": source,
            "message": f"Order for {source} is ready",
        }

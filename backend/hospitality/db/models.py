"""
Canonical relational database models for the hospitality backend.

These models represent the full relational schema and are used by Alembic
for migration generation. Every table uses string UUID primary keys and
ISO-8601 UTC timestamp strings, so rows round-trip unchanged between the
in-memory and SQLAlchemy storage backends.
"""

from uuid import uuid4

from sqlalchemy import Boolean, Column, Float, ForeignKey, Index, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship

from hospitality.utils.time_utils import iso_utc

Base = declarative_base()


def _uuid() -> str:
    return str(uuid4())


def _now() -> str:
    return iso_utc()


class RowMixin:
    """Plain-dict conversion shared by every model."""

    def to_dict(self):
        row = {}
        for column in self.__table__.columns:
            value = getattr(self, column.key)
            if isinstance(value, (list, dict)):
                value = _copy_json(value)
            row[column.name] = value
        return row


def _copy_json(value):
    if isinstance(value, list):
        return [_copy_json(v) for v in value]
    if isinstance(value, dict):
        return {k: _copy_json(v) for k, v in value.items()}
    return value


class Restaurant(RowMixin, Base):
    __tablename__ = "restaurants"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    created_at = Column(String(32), default=_now, nullable=False)

    roles = relationship("Role", back_populates="restaurant")

    def __repr__(self):
        return f"<Restaurant(id={self.id}, name={self.name})>"


class Component(RowMixin, Base):
    """A screen/feature a role can be granted (orders, kitchen, pos, ...)."""

    __tablename__ = "components"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(255), nullable=True)


class Role(RowMixin, Base):
    __tablename__ = "roles"

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    is_deletable = Column(Boolean, default=True, nullable=False)  # built-in roles are not
    created_at = Column(String(32), default=_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "name", name="uq_roles_restaurant_name"),
    )

    restaurant = relationship("Restaurant", back_populates="roles")

    def __repr__(self):
        return f"<Role(id={self.id}, name={self.name})>"


class RoleComponent(RowMixin, Base):
    __tablename__ = "role_components"

    id = Column(String(36), primary_key=True, default=_uuid)
    role_id = Column(String(36), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    component_id = Column(String(36), ForeignKey("components.id"), nullable=False)


class Profile(RowMixin, Base):
    """Authenticated staff user, scoped to one restaurant."""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=_uuid)
    username = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=True, index=True)
    role_id = Column(String(36), ForeignKey("roles.id"), nullable=True, index=True)
    created_at = Column(String(32), default=_now, nullable=False)

    def __repr__(self):
        return f"<Profile(id={self.id}, username={self.username})>"


class MenuItem(RowMixin, Base):
    __tablename__ = "menu_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False)  # rupees, 2 dp
    is_available = Column(Boolean, default=True, nullable=False)
    created_at = Column(String(32), default=_now, nullable=False)
    updated_at = Column(String(32), default=_now, nullable=False)

    def __repr__(self):
        return f"<MenuItem(id={self.id}, name={self.name}, price={self.price})>"


class Order(RowMixin, Base):
    """Customer-facing order. Totals are derived from the items JSON."""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    customer_name = Column(String(255), nullable=False, default="Guest")
    table_label = Column(String(50), nullable=True)
    items = Column(JSON, nullable=False, default=list)  # [{name, quantity, unit_price, notes}]
    subtotal = Column(Float, nullable=False, default=0.0)
    tax = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False, default=0.0)
    status = Column(String(20), nullable=False, default="new")
    payment_method = Column(String(20), nullable=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=True)
    created_at = Column(String(32), default=_now, nullable=False)
    updated_at = Column(String(32), default=_now, nullable=False)
    paid_at = Column(String(32), nullable=True)

    __table_args__ = (
        Index("idx_orders_restaurant_status", "restaurant_id", "status"),
        Index("idx_orders_created", "created_at"),
    )

    tickets = relationship("KitchenTicket", back_populates="order")

    def __repr__(self):
        return f"<Order(id={self.id}, status={self.status}, total={self.total})>"


class KitchenTicket(RowMixin, Base):
    """Production-facing copy of an order for the kitchen display."""

    __tablename__ = "kitchen_tickets"

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=True, index=True)
    source = Column(String(255), nullable=False)  # table number / takeaway / customer name
    items = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="new")
    created_at = Column(String(32), default=_now, nullable=False)
    updated_at = Column(String(32), default=_now, nullable=False)

    __table_args__ = (
        Index("idx_tickets_restaurant_status", "restaurant_id", "status"),
        Index("idx_tickets_created", "created_at"),
    )

    order = relationship("Order", back_populates="tickets")

    def __repr__(self):
        return f"<KitchenTicket(id={self.id}, source={self.source}, status={self.status})>"


class StatusTransition(RowMixin, Base):
    """Audit trail: who moved which order/ticket, from what, to what, when."""

    __tablename__ = "status_transitions"

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(36), nullable=False, index=True)
    record_table = Column(String(50), nullable=False)
    record_id = Column(String(36), nullable=False, index=True)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    actor_id = Column(String(36), nullable=True)
    actor_kind = Column(String(20), nullable=False)
    created_at = Column(String(32), default=_now, nullable=False)


class Customer(RowMixin, Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(36), ForeignKey("restaurants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True, index=True)
    email = Column(String(255), nullable=True)
    total_spent = Column(Float, nullable=False, default=0.0)
    visit_count = Column(Integer, nullable=False, default=0)
    average_order_value = Column(Float, nullable=False, default=0.0)
    loyalty_enrolled = Column(Boolean, nullable=False, default=False)
    loyalty_points = Column(Integer, nullable=False, default=0)
    last_visit_date = Column(String(32), nullable=True)
    created_at = Column(String(32), default=_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("restaurant_id", "phone", name="uq_customers_restaurant_phone"),
    )


class LoyaltyTransaction(RowMixin, Base):
    __tablename__ = "loyalty_transactions"

    id = Column(String(36), primary_key=True, default=_uuid)
    restaurant_id = Column(String(36), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=False, index=True)
    transaction_type = Column(String(20), nullable=False)  # earn / redeem
    points = Column(Integer, nullable=False)
    source = Column(String(50), nullable=True)
    source_id = Column(String(36), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(String(32), default=_now, nullable=False)


MODELS_BY_TABLE = {
    model.__tablename__: model
    for model in (
        Restaurant, Component, Role, RoleComponent, Profile, MenuItem,
        Order, KitchenTicket, StatusTransition, Customer, LoyaltyTransaction,
    )
}

"""initial schema: restaurants, roles, menu, orders, kitchen tickets, customers

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column("id", sa.String(36), primary_key=True)


def _stamp(name="created_at", nullable=False):
    return sa.Column(name, sa.String(32), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "restaurants",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        _stamp(),
    )
    op.create_table(
        "components",
        _id(),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.String(255), nullable=True),
    )
    op.create_table(
        "roles",
        _id(),
        sa.Column("restaurant_id", sa.String(36), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("name", sa.String(50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_deletable", sa.Boolean(), nullable=False),
        _stamp(),
        sa.UniqueConstraint("restaurant_id", "name", name="uq_roles_restaurant_name"),
    )
    op.create_index("ix_roles_restaurant_id", "roles", ["restaurant_id"])
    op.create_table(
        "role_components",
        _id(),
        sa.Column("role_id", sa.String(36), sa.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
        sa.Column("component_id", sa.String(36), sa.ForeignKey("components.id"), nullable=False),
    )
    op.create_index("ix_role_components_role_id", "role_components", ["role_id"])
    op.create_table(
        "profiles",
        _id(),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("restaurant_id", sa.String(36), sa.ForeignKey("restaurants.id"), nullable=True),
        sa.Column("role_id", sa.String(36), sa.ForeignKey("roles.id"), nullable=True),
        _stamp(),
    )
    op.create_index("ix_profiles_username", "profiles", ["username"], unique=True)
    op.create_index("ix_profiles_restaurant_id", "profiles", ["restaurant_id"])
    op.create_index("ix_profiles_role_id", "profiles", ["role_id"])
    op.create_table(
        "menu_items",
        _id(),
        sa.Column("restaurant_id", sa.String(36), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False),
        _stamp(),
        _stamp("updated_at"),
    )
    op.create_index("ix_menu_items_restaurant_id", "menu_items", ["restaurant_id"])
    op.create_table(
        "customers",
        _id(),
        sa.Column("restaurant_id", sa.String(36), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("total_spent", sa.Float(), nullable=False),
        sa.Column("visit_count", sa.Integer(), nullable=False),
        sa.Column("average_order_value", sa.Float(), nullable=False),
        sa.Column("loyalty_enrolled", sa.Boolean(), nullable=False),
        sa.Column("loyalty_points", sa.Integer(), nullable=False),
        _stamp("last_visit_date", nullable=True),
        _stamp(),
        sa.UniqueConstraint("restaurant_id", "phone", name="uq_customers_restaurant_phone"),
    )
    op.create_index("ix_customers_restaurant_id", "customers", ["restaurant_id"])
    op.create_index("ix_customers_phone", "customers", ["phone"])
    op.create_table(
        "orders",
        _id(),
        sa.Column("restaurant_id", sa.String(36), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("table_label", sa.String(50), nullable=True),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("subtotal", sa.Float(), nullable=False),
        sa.Column("tax", sa.Float(), nullable=False),
        sa.Column("total", sa.Float(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("payment_method", sa.String(20), nullable=True),
        sa.Column("customer_id", sa.String(36), sa.ForeignKey("customers.id"), nullable=True),
        _stamp(),
        _stamp("updated_at"),
        _stamp("paid_at", nullable=True),
    )
    op.create_index("ix_orders_restaurant_id", "orders", ["restaurant_id"])
    op.create_index("idx_orders_restaurant_status", "orders", ["restaurant_id", "status"])
    op.create_index("idx_orders_created", "orders", ["created_at"])
    op.create_table(
        "kitchen_tickets",
        _id(),
        sa.Column("restaurant_id", sa.String(36), sa.ForeignKey("restaurants.id"), nullable=False),
        sa.Column("order_id", sa.String(36), sa.ForeignKey("orders.id"), nullable=True),
        sa.Column("source", sa.String(255), nullable=False),
        sa.Column("items", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        _stamp(),
        _stamp("updated_at"),
    )
    op.create_index("ix_kitchen_tickets_restaurant_id", "kitchen_tickets", ["restaurant_id"])
    op.create_index("ix_kitchen_tickets_order_id", "kitchen_tickets", ["order_id"])
    op.create_index("idx_tickets_restaurant_status", "kitchen_tickets", ["restaurant_id", "status"])
    op.create_index("idx_tickets_created", "kitchen_tickets", ["created_at"])
    op.create_table(
        "status_transitions",
        _id(),
        sa.Column("restaurant_id", sa.String(36), nullable=False),
        sa.Column("record_table", sa.String(50), nullable=False),
        sa.Column("record_id", sa.String(36), nullable=False),
        sa.Column("from_status", sa.String(20), nullable=True),
        sa.Column("to_status", sa.String(20), nullable=False),
        sa.Column("actor_id", sa.String(36), nullable=True),
        sa.Column("actor_kind", sa.String(20), nullable=False),
        _stamp(),
    )
    op.create_index("ix_status_transitions_restaurant_id", "status_transitions", ["restaurant_id"])
    op.create_index("ix_status_transitions_record_id", "status_transitions", ["record_id"])
    op.create_table(
        "loyalty_transactions",
        _id(),
        sa.Column("restaurant_id", sa.String(36), nullable=False),
        sa.Column("customer_id", sa.String(36), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("transaction_type", sa.String(20), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("source", sa.String(50), nullable=True),
        sa.Column("source_id", sa.String(36), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _stamp(),
    )
    op.create_index("ix_loyalty_transactions_restaurant_id", "loyalty_transactions", ["restaurant_id"])
    op.create_index("ix_loyalty_transactions_customer_id", "loyalty_transactions", ["customer_id"])


def downgrade() -> None:
    for table in (
        "loyalty_transactions", "status_transitions", "kitchen_tickets", "orders", "customers",
        "menu_items", "profiles", "role_components", "roles", "components", "restaurants",
    ):
        op.drop_table(table)

"""
Test suite for database initialization and migrations.

Verifies that init_db works with both Alembic and create_all modes and that
both produce the schema the models describe.
"""

import pytest
from sqlalchemy import create_engine, inspect

from hospitality.db import init_db
from hospitality.db.models import Base, MODELS_BY_TABLE
from hospitality.storage.repositories import OrderRepository
from hospitality.storage.sqlalchemy_adapter import SQLAlchemyStorage


def _columns(engine, table):
    return {col["name"] for col in inspect(engine).get_columns(table)}


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'migrations.db'}")
    yield engine
    engine.dispose()


class TestInitDBFallback:
    """init_db with use_alembic=False."""

    def test_creates_every_table(self, engine):
        init_db(engine, use_alembic=False, base=Base)

        tables = set(inspect(engine).get_table_names())
        assert set(MODELS_BY_TABLE) <= tables
        assert "alembic_version" not in tables

    def test_is_idempotent(self, engine):
        init_db(engine, use_alembic=False)
        init_db(engine, use_alembic=False)
        assert "orders" in inspect(engine).get_table_names()


class TestInitDBAlembic:
    """init_db with use_alembic=True."""

    def test_upgrade_creates_model_schema(self, engine):
        init_db(engine, use_alembic=True)

        tables = set(inspect(engine).get_table_names())
        assert "alembic_version" in tables
        for name, model in MODELS_BY_TABLE.items():
            assert name in tables, f"{name} table not created"
            assert _columns(engine, name) == set(model.__table__.columns.keys()), name

    def test_upgrade_twice_is_a_no_op(self, engine):
        init_db(engine, use_alembic=True)
        init_db(engine, use_alembic=True)
        assert "kitchen_tickets" in inspect(engine).get_table_names()

    def test_storage_on_migrated_database(self, tmp_path):
        storage = SQLAlchemyStorage(f"sqlite:///{tmp_path / 'migrated.db'}", use_alembic=True)
        try:
            row = storage.insert("orders", [OrderRepository(storage).build_row(
                "r1", items=[{"name": "Pizza", "quantity": 2, "unit_price": 250}], subtotal=500.0,
            )])[0]
            assert storage.get("orders", row["id"])["items"][0]["name"] == "Pizza"
        finally:
            storage.close()

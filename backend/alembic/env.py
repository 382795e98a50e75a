"""Alembic environment configuration for hospitality database migrations.

This script runs whenever Alembic command-line tools are run, and when
hospitality.db.init_db() upgrades a database in-process (in that case the
open connection is handed over in config.attributes["connection"]).
It targets the canonical models in hospitality.db.models.Base.metadata.
"""

from logging.config import fileConfig
import os
import sys
from sqlalchemy import engine_from_config, pool

# Add the backend directory to path so we can import hospitality modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from alembic import context
from hospitality.db.models import Base

# Load Alembic config
config = context.config
connection = config.attributes.get("connection")

# Alembic logging configuration (CLI only; in-process runs keep the app's logging)
if connection is None and config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

# Set target metadata for autogenerate
target_metadata = Base.metadata


def get_database_url() -> str:
    """Get database URL from environment or use default."""
    return os.getenv("DATABASE_URL", "sqlite:///./hospitality.db")


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    In offline mode, the engine is created from a URL string without
    actually making a database connection. This is useful for generating
    SQL without a running database.
    """
    context.configure(
        url=get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode.

    Uses the caller's connection when one was provided, otherwise opens
    one from DATABASE_URL.
    """
    if connection is not None:
        context.configure(connection=connection, target_metadata=target_metadata, render_as_batch=True)
        with context.begin_transaction():
            context.run_migrations()
        return

    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_database_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as conn:
        context.configure(
            connection=conn,
            target_metadata=target_metadata,
            render_as_batch=True,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

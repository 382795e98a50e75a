"""Database models and migrations for the hospitality backend."""

import logging
import os
from typing import Optional, Any

from sqlalchemy.engine import Engine

from hospitality.db.models import Base, MODELS_BY_TABLE

logger = logging.getLogger(__name__)

# backend/ (alembic.ini and the alembic/ directory live there)
BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def alembic_config(connection=None):
    """Build an Alembic Config pointing at backend/alembic.ini."""
    from alembic.config import Config

    alembic_ini = os.path.join(BACKEND_DIR, "alembic.ini")
    if not os.path.exists(alembic_ini):
        raise RuntimeError(f"alembic.ini not found at {alembic_ini}")
    config = Config(alembic_ini)
    config.set_main_option("script_location", os.path.join(BACKEND_DIR, "alembic"))
    if connection is not None:
        config.attributes["connection"] = connection
    return config


def init_db(engine: Engine, use_alembic: bool = True, base: Optional[Any] = None) -> None:
    """
    Initialize database schema using Alembic or create_all fallback.

    Args:
        engine: SQLAlchemy engine instance
        use_alembic: If True, run Alembic migrations; else use Base.metadata.create_all()
                    Useful for development: False gives instant schema, True tracks migrations
        base: SQLAlchemy declarative base to use. If None, uses hospitality.db.models.Base.

    Raises:
        RuntimeError: If Alembic migration fails or alembic directory not found
    """
    if base is None:
        base = Base

    if use_alembic:
        try:
            from alembic import command
        except ImportError:
            raise RuntimeError("Alembic not installed. Install with: pip install alembic")

        try:
            with engine.begin() as connection:
                command.upgrade(alembic_config(connection), "head")
        except Exception as e:
            raise RuntimeError(f"Alembic migration failed: {e}")
        logger.info("Alembic migrations applied")
    else:
        # Create only missing tables (preserve existing data for development)
        try:
            base.metadata.create_all(engine)
        except Exception as e:
            logger.error("Error creating tables: %s", e)
            raise RuntimeError(f"Failed to create database tables: {e}")
        logger.info("Schema synchronized from %s (no data was dropped)", base.__name__)


__all__ = ["Base", "MODELS_BY_TABLE", "init_db", "alembic_config"]

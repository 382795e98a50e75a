"""Storage abstraction layer for the hospitality backend."""

import logging
from typing import Optional

from hospitality import config
from hospitality.realtime import ChangeFeed
from .base import Storage, Write
from .inmemory import InMemoryStorage
from .sqlalchemy_adapter import SQLAlchemyStorage

logger = logging.getLogger(__name__)


def create_storage(
    backend: Optional[str] = None,
    database_url: Optional[str] = None,
    feed: Optional[ChangeFeed] = None,
) -> Storage:
    """
    Build the configured storage backend.

    STORAGE_BACKEND=sqlalchemy selects SQLAlchemyStorage on DATABASE_URL;
    anything else (including unknown values) falls back to InMemoryStorage.
    """
    backend = (backend or config.STORAGE_BACKEND).lower()
    if backend in ("sqlalchemy", "sqlite"):
        return SQLAlchemyStorage(database_url or config.DATABASE_URL, feed=feed, use_alembic=config.USE_ALEMBIC)
    if backend not in ("memory", "inmemory"):
        logger.warning("Unknown STORAGE_BACKEND '%s', using in-memory storage", backend)
    return InMemoryStorage(feed=feed)


__all__ = ["Storage", "Write", "InMemoryStorage", "SQLAlchemyStorage", "create_storage"]

"""
SQLAlchemy storage implementation over the canonical models in
hospitality.db.models.

Each public call opens its own session and commits before publishing change
events, so subscribers only ever see committed row images.
"""

import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence
from uuid import uuid4

from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session

from hospitality.db import init_db
from hospitality.db.models import Base, MODELS_BY_TABLE
from hospitality.errors import ConflictError, UpstreamError, ValidationError
from hospitality.realtime import EVENT_DELETE, EVENT_INSERT, EVENT_UPDATE
from .base import Filters, Row, Storage, Write

logger = logging.getLogger(__name__)


class _Abandoned(Exception):
    """Raised inside a session to roll back a batch whose required write matched nothing."""

    def __init__(self, table: str):
        super().__init__(table)
        self.table = table


class SQLAlchemyStorage(Storage):
    """SQLAlchemy-backed storage with one transaction per call."""

    def __init__(self, database_url: str = "sqlite:///hospitality.db", feed=None, use_alembic: bool = False):
        """
        Initialize SQLAlchemy storage.

        Args:
            database_url: SQLAlchemy database URL
            feed: change feed that receives post-commit events
            use_alembic: run migrations instead of create_all
        """
        super().__init__(feed)
        self.database_url = database_url

        # future=True: use SQLAlchemy 2.0 style execution
        # pool_pre_ping=True: verify connections before use (detect stale connections)
        self.engine = create_engine(
            self.database_url,
            connect_args={"check_same_thread": False} if "sqlite" in database_url else {},
            echo=False,
            future=True,
            pool_pre_ping=True,
        )
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        init_db(self.engine, use_alembic=use_alembic, base=Base)
        logger.info("SQLAlchemyStorage ready at %s", self.database_url)

    def _get_session(self) -> Session:
        """Get a new database session (caller must close)."""
        return self.SessionLocal()

    @staticmethod
    def _model(table: str):
        model = MODELS_BY_TABLE.get(table)
        if model is None:
            raise ValidationError(f"Unknown table '{table}'")
        return model

    @staticmethod
    def _column(model, name: str):
        column = getattr(model, name, None)
        if column is None or name not in model.__table__.columns:
            raise ValidationError(f"Unknown column '{name}' on {model.__tablename__}")
        return column

    def _filtered(self, model, filters: Optional[Filters], exclude: Optional[Mapping[str, Iterable[Any]]] = None):
        stmt = select(model)
        for name, value in (filters or {}).items():
            column = self._column(model, name)
            stmt = stmt.where(column.is_(None) if value is None else column == value)
        for name, values in (exclude or {}).items():
            stmt = stmt.where(self._column(model, name).not_in(list(values)))
        return stmt

    def _build(self, table: str, row: Row):
        model = self._model(table)
        data = dict(row)
        data.setdefault("id", str(uuid4()))
        unknown = set(data) - set(model.__table__.columns.keys())
        if unknown:
            raise ValidationError(f"Unknown column(s) {sorted(unknown)} on {table}")
        return model(**data)

    def _fail(self, session: Session, exc: SQLAlchemyError):
        session.rollback()
        if isinstance(exc, IntegrityError):
            logger.warning("Integrity error: %s", exc.orig)
            raise ConflictError("Write conflicts with existing data", str(exc.orig)) from exc
        logger.error("Database error: %s", exc)
        raise UpstreamError("Database operation failed", str(exc)) from exc

    def select(
        self,
        table: str,
        filters: Optional[Filters] = None,
        exclude: Optional[Mapping[str, Iterable[Any]]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Row]:
        model = self._model(table)
        stmt = self._filtered(model, filters, exclude)
        if order_by:
            column = self._column(model, order_by)
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        db_session = self._get_session()
        try:
            return [obj.to_dict() for obj in db_session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            self._fail(db_session, e)
        finally:
            db_session.close()

    def _prepare(self, write: Write):
        """Validate a write before the session opens. Returns the insert object or the model."""
        if write.op == EVENT_INSERT:
            return self._build(write.table, write.row)
        model = self._model(write.table)
        if write.op not in (EVENT_UPDATE, EVENT_DELETE):
            raise ValidationError(f"Unknown write operation '{write.op}'")
        for name in list(write.filters or {}) + list(write.patch or {}):
            self._column(model, name)
        return model

    def _apply(self, db_session: Session, write: Write, target) -> list:
        if write.op == EVENT_INSERT:
            db_session.add(target)
            # Flush in the given order so parent rows exist before children
            db_session.flush()
            return [(None, target)]

        changes = []
        for obj in db_session.execute(self._filtered(target, write.filters)).scalars().all():
            old = obj.to_dict()
            if write.op == EVENT_UPDATE:
                for name, value in write.patch.items():
                    setattr(obj, name, value)
                changes.append((old, obj))
            else:
                db_session.delete(obj)
                changes.append((old, None))
        db_session.flush()
        return changes

    def transaction(self, writes: Sequence[Write]) -> Optional[List[List[Row]]]:
        prepared = [(write, self._prepare(write)) for write in writes]
        db_session = self._get_session()
        applied = []
        try:
            with db_session.begin():
                for write, target in prepared:
                    pairs = self._apply(db_session, write, target)
                    if write.required and not pairs:
                        raise _Abandoned(write.table)
                    applied.append(pairs)
            changes = [
                [(old, obj.to_dict() if obj is not None else None) for old, obj in pairs]
                for pairs in applied
            ]
        except _Abandoned as e:
            logger.info("Transaction abandoned: required write on %s matched nothing", e.table)
            return None
        except SQLAlchemyError as e:
            self._fail(db_session, e)
        finally:
            db_session.close()

        self._publish_changes(writes, changes)
        return [[new if new is not None else old for old, new in pairs] for pairs in changes]

    def clear(self) -> None:
        """Delete every row in every table (children first)."""
        db_session = self._get_session()
        try:
            with db_session.begin():
                for table in reversed(Base.metadata.sorted_tables):
                    db_session.execute(table.delete())
        except SQLAlchemyError as e:
            self._fail(db_session, e)
        finally:
            db_session.close()

    def close(self) -> None:
        self.engine.dispose()

"""Data-store handle shared by all contexts.

``Database`` owns the engine and the session factory for the lifetime of
the process (or of a test). Services receive it explicitly; there is no
module-level connection.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from uuid import uuid4

import structlog
from sqlalchemy import create_engine, event
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from shared.errors import DineStreamError, ExternalDependencyError

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Database:
    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        engine_kwargs: dict = {"echo": echo}

        if url.startswith("sqlite"):
            engine_kwargs["connect_args"] = {"check_same_thread": False, "timeout": 30}
            if url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
        else:
            engine_kwargs["pool_pre_ping"] = True

        self.engine = create_engine(url, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            _serialize_sqlite_writers(self.engine)

        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @contextmanager
    def session(self) -> Iterator[Session]:
        """One unit of work: commit on success, roll back on any error.

        ``IntegrityError`` is re-raised untouched so callers can turn
        uniqueness collisions into domain errors; other data-store failures
        become ``ExternalDependencyError``.
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except (DineStreamError, IntegrityError):
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("data_store_failure", error=str(exc), exc_info=True)
            raise ExternalDependencyError("Data store unavailable") from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def insert(self, model):
        """Dialect-specific INSERT that supports ON CONFLICT clauses."""
        if self.dialect == "postgresql":
            return postgresql.insert(model)
        if self.dialect == "sqlite":
            return sqlite.insert(model)
        raise NotImplementedError(f"Upserts are not supported on {self.dialect}")

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


def _serialize_sqlite_writers(engine) -> None:
    """Take SQLite's write lock at BEGIN and enforce foreign keys.

    pysqlite defers BEGIN until the first write, so two read-then-write
    transactions can deadlock on lock upgrade. ``BEGIN IMMEDIATE`` makes the
    second one wait on the busy timeout instead.
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):  # noqa: ARG001
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

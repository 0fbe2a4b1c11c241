"""Engine setup and session helpers for the SQL backend.

`session_scope(engine)` centralizes creation/cleanup of `sqlmodel.Session`
instances so the stores don't repeat `with Session(engine) as session:`
everywhere. Objects stay readable after the session closes
(`expire_on_commit=False`), which lets stores hand detached rows back to the
request handlers.
"""
import logging
import os
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import event, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Register the tables on SQLModel.metadata before create_all runs.
from . import models  # noqa: F401

logger = logging.getLogger(__name__)


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _is_sqlite_memory(database_url: str) -> bool:
    return database_url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in database_url


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db(database_url: str) -> Engine:
    """Create and return SQLAlchemy engine. Creates all tables on startup."""
    if not database_url:
        raise ValueError("database_url is required")

    if _is_sqlite(database_url):
        try:
            if database_url.startswith("sqlite:///") and not _is_sqlite_memory(database_url):
                file_path = database_url[len("sqlite:///"):]
                dirpath = os.path.dirname(file_path)
                if dirpath and not os.path.exists(dirpath):
                    os.makedirs(dirpath, exist_ok=True)
        except Exception:
            logger.debug("Unable to prepare SQLite directory for %s", database_url)

        kwargs = {"connect_args": {"check_same_thread": False}}
        if _is_sqlite_memory(database_url):
            # every pooled connection would otherwise see its own empty database
            kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, echo=False, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)

        try:
            with engine.connect() as conn:
                conn.execute(text("PRAGMA journal_mode=WAL"))
                conn.execute(text("PRAGMA synchronous=NORMAL"))
        except Exception as e:
            logger.debug("Unable to set SQLite pragmas: %s", e)
    else:
        engine = create_engine(database_url, echo=False, pool_pre_ping=True)

    SQLModel.metadata.create_all(engine)
    logger.info("Database ready (%s)", engine.url.render_as_string(hide_password=True))
    return engine


@contextmanager
def session_scope(engine) -> Iterator[Session]:
    """Yield a short-lived SQLModel `Session` bound to `engine`.

    Caller is responsible for committing when appropriate. Uncommitted work
    is rolled back and the session is always closed on exit.
    """
    sess = Session(engine, expire_on_commit=False)
    logger.debug("Opening DB session %s", sess)
    try:
        yield sess
    except Exception:
        sess.rollback()
        raise
    finally:
        try:
            sess.close()
            logger.debug("Closed DB session %s", sess)
        except Exception as e:
            logger.exception("Failed to close DB session: %s", e)

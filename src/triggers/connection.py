"""SQLAlchemy engine for the trigger-report database.

One shared, lazily-created engine.  Every report query goes through
`readonly_connection`, which opens a READ ONLY transaction and applies the
configured statement timeout.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine (lazy-created, cached)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine(
            settings.database_url,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            echo=False,
        )
        logger.info("DB engine created  host=%s  db=%s", settings.postgres_host, settings.postgres_db)
    return _engine


def dispose_engine() -> None:
    """Drop the cached engine (used by tests and on shutdown)."""
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None


@contextmanager
def readonly_connection(timeout_ms: int | None = None) -> Generator[Connection, None, None]:
    """Yield a connection inside a READ ONLY transaction.

    The transaction is rolled back on exit; nothing is ever committed.
    """
    if timeout_ms is None:
        timeout_ms = get_settings().db_statement_timeout_ms
    conn = get_engine().connect()
    trans = conn.begin()
    try:
        conn.execute(text("SET TRANSACTION READ ONLY"))
        conn.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))
        yield conn
    finally:
        trans.rollback()
        conn.close()

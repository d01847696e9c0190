"""
Database engine and session management.

The engine (and its bounded connection pool) is created once per
application and stored on app.state; nothing reaches it through module
globals, so tests can inject an in-memory engine.
"""

import logging
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from prodit.config.settings import normalize_database_url
from prodit import models  # noqa: F401  (registers tables on Base.metadata)
from prodit.db_base import Base

logger = logging.getLogger(__name__)

POOL_SIZE = 20
POOL_TIMEOUT_SECONDS = 2


def create_db_engine(database_url: str) -> Engine:
    """Create an engine with a bounded pool (PostgreSQL) or a plain SQLite engine."""
    url = normalize_database_url(database_url)
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=POOL_SIZE,
        pool_timeout=POOL_TIMEOUT_SECONDS,
    )


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_schema(engine: Engine) -> None:
    """Create missing tables. Production schemas are managed by migrations."""
    Base.metadata.create_all(bind=engine)
    logger.info("Database schema ensured", extra={"dialect": engine.dialect.name})


def get_db_session(request: Request) -> Iterator[Session]:
    """FastAPI dependency yielding a session from the application's factory."""
    session = request.app.state.session_factory()
    try:
        yield session
    finally:
        session.close()

"""Engine and session factory for the dispatch database."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rider_dispatch.config import settings


def build_engine(database_url: str, *, busy_timeout_s: float | None = None) -> Engine:
    """Engine for ``database_url``.

    Claims run on threadpool workers with a session each. On SQLite the
    connection may move between threads, and a writer waits up to
    ``busy_timeout_s`` for the file lock held by a competing claim instead of
    failing at once. An in-memory database lives on a single shared connection.
    """
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)

    timeout = settings.sqlite_busy_timeout_s if busy_timeout_s is None else busy_timeout_s
    engine_kwargs: dict = {
        "connect_args": {"check_same_thread": False, "timeout": timeout},
    }
    if ":memory:" in database_url:
        engine_kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **engine_kwargs)


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

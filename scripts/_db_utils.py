from __future__ import annotations

import os
from contextlib import contextmanager
from collections.abc import Generator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.adsmanager.db import DEFAULT_DATABASE_URL, enable_sqlite_foreign_keys


def resolve_database_url(database_url: str | None = None) -> str:
    """Explicit URL, else DATABASE_URL, else the local SQLite file."""
    return (database_url or os.environ.get("DATABASE_URL") or DEFAULT_DATABASE_URL).strip()


def create_script_engine(db_url: str) -> Engine:
    engine = create_engine(db_url, future=True, pool_pre_ping=True, pool_recycle=1800)
    if db_url.startswith("sqlite"):
        enable_sqlite_foreign_keys(engine)
    return engine


@contextmanager
def script_session(database_url: str | None = None) -> Generator[Session, None, None]:
    """
    Session for release/maintenance scripts that run without the Flask app.
    Commits on success, rolls back on error, and disposes the engine either way.
    """
    engine = create_script_engine(resolve_database_url(database_url))
    s: Session = sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from billing.core.config import get_settings

settings = get_settings()

DATABASE_URL = settings.database_url  # fail fast if missing


def engine_options(url: str, *, echo: bool = False) -> Dict[str, Any]:
    """
    Keyword arguments for create_engine. SQLite (local runs, tests) needs
    cross-thread connections and has no use for pre-ping; Postgres gets it.
    """
    opts: Dict[str, Any] = {"echo": echo, "future": True}
    if url.startswith("sqlite"):
        opts["connect_args"] = {"check_same_thread": False}
    else:
        opts["pool_pre_ping"] = True
    return opts


engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL, echo=settings.db_echo))

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)


def get_db():
    """One session per request, closed when the response is done."""
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()

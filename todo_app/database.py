"""Database helpers for the user and session tables."""
from __future__ import annotations

from typing import Any

from sqlalchemy.engine import Engine, make_url
from sqlmodel import SQLModel, create_engine

from .config import settings


def _ensure_sqlite_directory(database_url: str) -> None:
    """Create the parent directory for SQLite databases when needed."""

    try:
        url = make_url(database_url)
    except Exception:
        return

    if not url.drivername.startswith("sqlite"):
        return

    database = url.database
    if not database or database in {":memory:", ""}:
        return

    path = settings.resolve_data_path(database)
    path.parent.mkdir(parents=True, exist_ok=True)


def build_engine(database_url: str | None = None) -> Engine:
    """Return an engine for ``database_url`` (defaults to ``DATABASE_URL``)."""

    url = database_url or settings.DATABASE_URL
    _ensure_sqlite_directory(url)
    connect_args: dict[str, Any] = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args)


def init_storage(engine: Engine) -> None:
    """Ensure the ``users`` and ``sessions`` tables exist."""

    from .auth import models  # noqa: F401  registers the tables

    SQLModel.metadata.create_all(engine)


__all__ = ["build_engine", "init_storage"]

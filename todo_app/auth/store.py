"""Server-side session stores keyed by opaque session identifiers.

Stores hold raw ``bytes`` per key; typed access lives in
:mod:`todo_app.auth.session`.  Every mutation (``set``, ``remove``,
``delete``, ``rotate``) is atomic at the store level, and ``rotate`` makes the
old identifier unusable before it returns.
"""
from __future__ import annotations

import abc
import base64
import logging
import secrets
import time
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Dict, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from ..errors import SessionBackendFailure
from .models import SessionRecord

logger = logging.getLogger(__name__)

_Clock = Callable[[], float]

SESSION_ID_BYTES = 32


class SessionNotFound(LookupError):
    """The session identifier is unknown or its entry has expired."""


class SessionStore(abc.ABC):
    """Key/value storage scoped to a session identifier, with expiry."""

    def __init__(
        self,
        *,
        ttl_seconds: int,
        sliding: bool = True,
        clock: Optional[_Clock] = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be greater than zero")
        self.ttl_seconds = ttl_seconds
        self.sliding = sliding
        self._clock: _Clock = clock or time.time

    def _now(self) -> float:
        return self._clock()

    def _expiry(self, now: float) -> float:
        return now + self.ttl_seconds

    @staticmethod
    def _new_session_id() -> str:
        return secrets.token_urlsafe(SESSION_ID_BYTES)

    @abc.abstractmethod
    def create(self) -> str:
        """Mint an empty session and return its identifier."""

    @abc.abstractmethod
    def get(self, session_id: str, key: str) -> Optional[bytes]:
        """Return the value stored under ``key`` or ``None``."""

    @abc.abstractmethod
    def set(self, session_id: str, key: str, value: bytes) -> None:
        """Store ``value`` under ``key``; raise :class:`SessionNotFound` if absent."""

    @abc.abstractmethod
    def remove(self, session_id: str, key: str) -> None:
        """Drop a single key from the session, if present."""

    @abc.abstractmethod
    def delete(self, session_id: str) -> None:
        """Destroy the session."""

    @abc.abstractmethod
    def rotate(self, session_id: str) -> str:
        """Move the session's data to a new identifier and return it.

        Unknown or expired identifiers rotate into a fresh empty session.
        """

    @abc.abstractmethod
    def purge_expired(self) -> int:
        """Drop expired sessions and return how many were removed."""


@dataclass
class _Entry:
    expires_at: float
    data: Dict[str, bytes] = field(default_factory=dict)


class MemorySessionStore(SessionStore):
    """In-process store guarded by a lock.

    Expired entries are swept at most once per TTL when new sessions are
    minted, in addition to any explicit :meth:`purge_expired` call.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._entries: Dict[str, _Entry] = {}
        self._lock = Lock()
        self._next_sweep = float("-inf")

    def _live_entry_locked(self, session_id: str, *, now: float) -> Optional[_Entry]:
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        if entry.expires_at <= now:
            self._entries.pop(session_id, None)
            return None
        if self.sliding:
            entry.expires_at = self._expiry(now)
        return entry

    def _create_locked(self, *, now: float, data: Optional[Dict[str, bytes]] = None) -> str:
        if now >= self._next_sweep:
            self._purge_locked(now)
            self._next_sweep = now + self.ttl_seconds
        session_id = self._new_session_id()
        while session_id in self._entries:
            session_id = self._new_session_id()
        self._entries[session_id] = _Entry(expires_at=self._expiry(now), data=data or {})
        return session_id

    def create(self) -> str:
        with self._lock:
            return self._create_locked(now=self._now())

    def get(self, session_id: str, key: str) -> Optional[bytes]:
        with self._lock:
            entry = self._live_entry_locked(session_id, now=self._now())
            return entry.data.get(key) if entry else None

    def set(self, session_id: str, key: str, value: bytes) -> None:
        with self._lock:
            entry = self._live_entry_locked(session_id, now=self._now())
            if entry is None:
                raise SessionNotFound(session_id)
            entry.data[key] = bytes(value)

    def remove(self, session_id: str, key: str) -> None:
        with self._lock:
            entry = self._live_entry_locked(session_id, now=self._now())
            if entry is not None:
                entry.data.pop(key, None)

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._entries.pop(session_id, None)

    def rotate(self, session_id: str) -> str:
        with self._lock:
            now = self._now()
            entry = self._live_entry_locked(session_id, now=now)
            self._entries.pop(session_id, None)
            return self._create_locked(now=now, data=entry.data if entry else None)

    def _purge_locked(self, now: float) -> int:
        expired = [sid for sid, entry in self._entries.items() if entry.expires_at <= now]
        for session_id in expired:
            del self._entries[session_id]
        return len(expired)

    def purge_expired(self) -> int:
        with self._lock:
            return self._purge_locked(self._now())

    def __len__(self) -> int:
        return len(self._entries)


def _encode(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _decode(value: str) -> bytes:
    return base64.b64decode(value.encode("ascii"))


class DatabaseSessionStore(SessionStore):
    """Store backed by the ``sessions`` table."""

    def __init__(self, engine: Engine, **kwargs) -> None:
        super().__init__(**kwargs)
        self._engine = engine

    def _live_record(self, session: Session, session_id: str, *, now: float, lock: bool = False):
        statement = select(SessionRecord).where(SessionRecord.session_id == session_id)
        if lock:
            statement = statement.with_for_update()
        record = session.exec(statement).first()
        if record is None:
            return None
        if record.expires_at <= now:
            session.delete(record)
            return None
        if self.sliding:
            record.expires_at = self._expiry(now)
        return record

    def create(self) -> str:
        session_id = self._new_session_id()
        try:
            with Session(self._engine) as session:
                session.add(
                    SessionRecord(session_id=session_id, data={}, expires_at=self._expiry(self._now()))
                )
                session.commit()
        except SQLAlchemyError as exc:
            raise SessionBackendFailure("could not create session") from exc
        return session_id

    def get(self, session_id: str, key: str) -> Optional[bytes]:
        try:
            with Session(self._engine) as session:
                record = self._live_record(session, session_id, now=self._now())
                value = record.data.get(key) if record is not None else None
                session.commit()
        except SQLAlchemyError as exc:
            raise SessionBackendFailure("could not read session") from exc
        return _decode(value) if value is not None else None

    def set(self, session_id: str, key: str, value: bytes) -> None:
        try:
            with Session(self._engine) as session:
                record = self._live_record(session, session_id, now=self._now(), lock=True)
                if record is None:
                    session.commit()
                    raise SessionNotFound(session_id)
                record.data = {**record.data, key: _encode(value)}
                session.commit()
        except SQLAlchemyError as exc:
            raise SessionBackendFailure("could not write session") from exc

    def remove(self, session_id: str, key: str) -> None:
        try:
            with Session(self._engine) as session:
                record = self._live_record(session, session_id, now=self._now(), lock=True)
                if record is not None and key in record.data:
                    record.data = {k: v for k, v in record.data.items() if k != key}
                session.commit()
        except SQLAlchemyError as exc:
            raise SessionBackendFailure("could not write session") from exc

    def delete(self, session_id: str) -> None:
        try:
            with Session(self._engine) as session:
                record = session.get(SessionRecord, session_id)
                if record is not None:
                    session.delete(record)
                    session.commit()
        except SQLAlchemyError as exc:
            raise SessionBackendFailure("could not delete session") from exc

    def rotate(self, session_id: str) -> str:
        new_id = self._new_session_id()
        try:
            with Session(self._engine) as session:
                now = self._now()
                record = self._live_record(session, session_id, now=now, lock=True)
                data: Dict[str, str] = {}
                if record is not None:
                    data = dict(record.data)
                    session.delete(record)
                session.add(SessionRecord(session_id=new_id, data=data, expires_at=self._expiry(now)))
                session.commit()
        except SQLAlchemyError as exc:
            raise SessionBackendFailure("could not rotate session") from exc
        return new_id

    def purge_expired(self) -> int:
        """Delete expired rows and return how many were removed."""

        try:
            with Session(self._engine) as session:
                expired = session.exec(
                    select(SessionRecord).where(SessionRecord.expires_at <= self._now())
                ).all()
                for record in expired:
                    session.delete(record)
                session.commit()
        except SQLAlchemyError as exc:
            raise SessionBackendFailure("could not purge sessions") from exc
        return len(expired)


def build_session_store(backend: str, *, ttl_seconds: int, sliding: bool, engine: Optional[Engine] = None) -> SessionStore:
    """Return the store named by ``backend`` (``memory`` or ``database``)."""

    if backend == "memory":
        return MemorySessionStore(ttl_seconds=ttl_seconds, sliding=sliding)
    if backend == "database":
        if engine is None:
            raise ValueError("the database session backend needs an engine")
        return DatabaseSessionStore(engine, ttl_seconds=ttl_seconds, sliding=sliding)
    raise ValueError(f"unknown session backend {backend!r}")


__all__ = [
    "DatabaseSessionStore",
    "MemorySessionStore",
    "SessionNotFound",
    "SessionStore",
    "build_session_store",
]

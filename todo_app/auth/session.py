"""Typed, per-request view over a :class:`SessionStore`."""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi.concurrency import run_in_threadpool

from ..config import settings
from .store import SessionNotFound, SessionStore

logger = logging.getLogger(__name__)

# Cookies ------------------------------------------------------------------
SESSION_COOKIE_NAME = "todo_session"
SESSION_COOKIE_PATH = "/"
SESSION_COOKIE_SAMESITE = "lax"

USER_SESSION_KEY = "user_session"


@dataclass(frozen=True)
class SessionPayload:
    """Identity stored in an authenticated session."""

    user_id: uuid.UUID
    username: str

    def to_bytes(self) -> bytes:
        payload = {"user_id": str(self.user_id), "username": self.username}
        return json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, raw: bytes) -> Optional["SessionPayload"]:
        try:
            payload = json.loads(raw.decode("utf-8"))
            return cls(user_id=uuid.UUID(payload["user_id"]), username=str(payload["username"]))
        except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError):
            return None


class SessionHandle:
    """Session access bound to one request's identifier.

    ``session_id`` starts as whatever the client sent.  It only changes when
    the handle mints, cycles or flushes the session, and callers use
    :func:`apply_session_cookie` to hand the new value back to the client.
    """

    def __init__(self, store: SessionStore, session_id: Optional[str]) -> None:
        self._store = store
        self._session_id = session_id or None
        self._received_id = self._session_id

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def changed(self) -> bool:
        return self._session_id != self._received_id

    async def get(self, key: str) -> Optional[bytes]:
        if self._session_id is None:
            return None
        return await run_in_threadpool(self._store.get, self._session_id, key)

    async def insert(self, key: str, value: bytes) -> None:
        if self._session_id is not None:
            try:
                await run_in_threadpool(self._store.set, self._session_id, key, value)
                return
            except SessionNotFound:
                logger.debug("session expired or unknown; minting a new one")
        self._session_id = await run_in_threadpool(self._store.create)
        await run_in_threadpool(self._store.set, self._session_id, key, value)

    async def remove(self, key: str) -> None:
        if self._session_id is not None:
            await run_in_threadpool(self._store.remove, self._session_id, key)

    async def cycle(self) -> None:
        """Move the session to a fresh identifier; the old one stops working."""

        if self._session_id is None:
            self._session_id = await run_in_threadpool(self._store.create)
        else:
            self._session_id = await run_in_threadpool(self._store.rotate, self._session_id)

    async def flush(self) -> None:
        """Destroy the session and forget its identifier."""

        if self._session_id is not None:
            await run_in_threadpool(self._store.delete, self._session_id)
        self._session_id = None

    # Typed helpers -------------------------------------------------------

    async def get_user(self) -> Optional[SessionPayload]:
        raw = await self.get(USER_SESSION_KEY)
        if raw is None:
            return None
        payload = SessionPayload.from_bytes(raw)
        if payload is None:
            logger.warning("discarding unreadable %s entry", USER_SESSION_KEY)
        return payload

    async def insert_user(self, payload: SessionPayload) -> None:
        await self.insert(USER_SESSION_KEY, payload.to_bytes())

    async def remove_user(self) -> None:
        await self.remove(USER_SESSION_KEY)


def set_session_cookie(response, session_id: str) -> None:
    """Attach ``session_id`` to ``response`` as a secure cookie."""

    response.set_cookie(
        SESSION_COOKIE_NAME,
        session_id,
        max_age=settings.SESSION_TTL_SECONDS,
        path=SESSION_COOKIE_PATH,
        httponly=True,
        secure=settings.cookies_secure,
        samesite=SESSION_COOKIE_SAMESITE,
    )


def clear_session_cookie(response) -> None:
    """Expire the session cookie on ``response``."""

    response.delete_cookie(
        SESSION_COOKIE_NAME,
        path=SESSION_COOKIE_PATH,
        httponly=True,
        secure=settings.cookies_secure,
        samesite=SESSION_COOKIE_SAMESITE,
    )


def apply_session_cookie(response, handle: SessionHandle) -> None:
    """Reflect any identifier change made through ``handle`` on ``response``."""

    if not handle.changed:
        return
    if handle.session_id is None:
        clear_session_cookie(response)
    else:
        set_session_cookie(response, handle.session_id)


__all__ = [
    "SESSION_COOKIE_NAME",
    "USER_SESSION_KEY",
    "SessionHandle",
    "SessionPayload",
    "apply_session_cookie",
    "clear_session_cookie",
    "set_session_cookie",
]

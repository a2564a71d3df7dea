from __future__ import annotations

import sys
import uuid
from contextlib import ExitStack
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from todo_app.auth.models import User
from todo_app.auth.passwords import PasswordHasher
from todo_app.auth.store import MemorySessionStore
from todo_app.auth.throttling import LoginThrottle
from todo_app.auth.users import DuplicateKeyError
from todo_app.config import settings
from todo_app.errors import RecordStoreFailure


class InMemoryUserStore:
    """User store double that records every call it receives."""

    def __init__(self) -> None:
        self.users: Dict[uuid.UUID, User] = {}
        self.calls: List[Tuple[str, object]] = []
        self.fail = False

    def _check(self, name: str, arg: object) -> None:
        self.calls.append((name, arg))
        if self.fail:
            raise RecordStoreFailure("record store unavailable")

    def find_user_by_email(self, email: str) -> Optional[User]:
        self._check("find_user_by_email", email)
        return next((u for u in self.users.values() if u.email == email), None)

    def find_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        self._check("find_user_by_id", user_id)
        return self.users.get(user_id)

    def insert_user(self, *, email: str, username: str, password_hash: str) -> User:
        self._check("insert_user", email)
        if any(u.email == email for u in self.users.values()):
            raise DuplicateKeyError("email")
        if any(u.username == username for u in self.users.values()):
            raise DuplicateKeyError("username")
        user = User(email=email, username=username, password_hash=password_hash)
        self.users[user.user_id] = user
        return user

    def update_user(self, user_id, *, username=None, password_hash=None) -> User:
        self._check("update_user", user_id)
        user = self.users[user_id]
        if username is not None:
            if any(u.username == username and u.user_id != user_id for u in self.users.values()):
                raise DuplicateKeyError("username")
            user.username = username
        if password_hash is not None:
            user.password_hash = password_hash
        return user


@pytest.fixture()
def user_store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture()
def session_store() -> MemorySessionStore:
    return MemorySessionStore(ttl_seconds=3600)


@pytest.fixture()
def hasher():
    instance = PasswordHasher(max_workers=2)
    try:
        yield instance
    finally:
        instance.shutdown()


@pytest.fixture()
def make_client(monkeypatch: pytest.MonkeyPatch, user_store, session_store):
    """Return a factory building a ``TestClient`` around ``create_app``."""

    monkeypatch.setattr(settings, "PUBLIC_BASE", "https://testserver")
    from todo_app.main import create_app

    stack = ExitStack()

    def _make(**overrides) -> TestClient:
        overrides.setdefault("user_store", user_store)
        overrides.setdefault("session_store", session_store)
        overrides.setdefault(
            "login_throttle",
            LoginThrottle(max_attempts=50, window_seconds=60, block_seconds=60),
        )
        return stack.enter_context(
            TestClient(create_app(**overrides), base_url="https://testserver")
        )

    with stack:
        yield _make


@pytest.fixture()
def client(make_client) -> TestClient:
    return make_client()


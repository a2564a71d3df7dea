"""Credential verification, registration and account updates."""
from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from fastapi.concurrency import run_in_threadpool
from pydantic import SecretStr

from ..errors import DuplicateField, InvalidCredentials, ValidationFailed
from .models import User
from .passwords import PasswordHasher
from .session import SessionPayload
from .users import DuplicateKeyError, UserStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    email: str
    password: SecretStr = field(repr=False)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_username(username: str) -> str:
    return (username or "").strip()


class Authenticator:
    """Check credentials against the user store.

    The authenticator never touches sessions or cookies: callers turn the
    returned :class:`SessionPayload` or the raised :class:`InvalidCredentials`
    into a session and a response.
    """

    def __init__(self, users: UserStore, hasher: PasswordHasher) -> None:
        self._users = users
        self._hasher = hasher
        self._decoy_hash: Optional[str] = None

    async def authenticate(self, credential: Credential) -> SessionPayload:
        """Return the payload for a matching user or raise ``InvalidCredentials``."""

        email = normalize_email(credential.email)
        user = await run_in_threadpool(self._users.find_user_by_email, email) if email else None
        if user is None:
            # unknown accounts still pay for one verification
            await self._hasher.verify(credential.password, await self._decoy())
            logger.debug("login rejected: no matching account")
            raise InvalidCredentials()

        if not await self._hasher.verify(credential.password, user.password_hash):
            logger.debug("login rejected: password mismatch for user %s", user.user_id)
            raise InvalidCredentials()

        if self._hasher.needs_rehash(user.password_hash):
            new_hash = await self._hasher.hash(credential.password)
            await run_in_threadpool(self._update, user.user_id, None, new_hash)
            logger.info("upgraded password hash for user %s", user.user_id)

        return SessionPayload(user_id=user.user_id, username=user.username)

    async def register(self, username: str, email: str, password: SecretStr) -> User:
        """Create an account or raise ``ValidationFailed`` naming the bad fields."""

        username = normalize_username(username)
        email = normalize_email(email)
        problems = _registration_problems(username, email, password)
        if problems:
            raise ValidationFailed.from_pairs(problems)

        password_hash = await self._hasher.hash(password)
        try:
            user = await run_in_threadpool(
                self._insert, email, username, password_hash
            )
        except DuplicateKeyError as exc:
            raise DuplicateField(exc.field) from exc
        logger.info("registered user %s (%s)", user.user_id, user.username)
        return user

    async def update_account(
        self,
        user_id: uuid.UUID,
        *,
        username: str,
        prev_password: SecretStr,
        new_password: SecretStr,
    ) -> SessionPayload:
        """Change username and password after re-checking ``prev_password``."""

        username = normalize_username(username)
        problems: List[Tuple[str, str]] = []
        if not username:
            problems.append(("username", "username cannot be empty"))
        if not new_password.get_secret_value():
            problems.append(("new_password", "password cannot be empty"))
        if problems:
            raise ValidationFailed.from_pairs(problems)

        user = await run_in_threadpool(self._users.find_user_by_id, user_id)
        if user is None or not await self._hasher.verify(prev_password, user.password_hash):
            raise InvalidCredentials()

        new_hash = await self._hasher.hash(new_password)
        try:
            updated = await run_in_threadpool(self._update, user.user_id, username, new_hash)
        except DuplicateKeyError as exc:
            raise DuplicateField(exc.field) from exc
        return SessionPayload(user_id=updated.user_id, username=updated.username)

    def _insert(self, email: str, username: str, password_hash: str) -> User:
        return self._users.insert_user(email=email, username=username, password_hash=password_hash)

    def _update(self, user_id: uuid.UUID, username: Optional[str], password_hash: str) -> User:
        return self._users.update_user(user_id, username=username, password_hash=password_hash)

    async def _decoy(self) -> str:
        if self._decoy_hash is None:
            self._decoy_hash = await self._hasher.hash(SecretStr(secrets.token_urlsafe(16)))
        return self._decoy_hash


def _registration_problems(username: str, email: str, password: SecretStr) -> List[Tuple[str, str]]:
    problems: List[Tuple[str, str]] = []
    if not username:
        problems.append(("username", "username cannot be empty"))
    if "@" not in email:
        problems.append(("email", "email is not a valid address"))
    if not password.get_secret_value():
        problems.append(("password", "password cannot be empty"))
    return problems


__all__ = ["Authenticator", "Credential", "normalize_email", "normalize_username"]

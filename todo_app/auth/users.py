"""User record storage consumed by the authenticator."""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, Optional, Protocol

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..errors import RecordStoreFailure
from .models import User

logger = logging.getLogger(__name__)

# field -> unique constraint name
UNIQUE_CONSTRAINTS: Dict[str, str] = {
    "email": "users_email_key",
    "username": "users_username_key",
}


class DuplicateKeyError(Exception):
    """Raised by a user store when a uniqueness rule rejects a write."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"duplicate value for {field}")


class UserStore(Protocol):
    """Record storage contract for user accounts."""

    def find_user_by_email(self, email: str) -> Optional[User]:
        """Return the user registered with ``email``."""

    def find_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        """Return the user identified by ``user_id``."""

    def insert_user(self, *, email: str, username: str, password_hash: str) -> User:
        """Persist a new user or raise :class:`DuplicateKeyError`."""

    def update_user(
        self,
        user_id: uuid.UUID,
        *,
        username: Optional[str] = None,
        password_hash: Optional[str] = None,
    ) -> User:
        """Change username and/or hash or raise :class:`DuplicateKeyError`."""


def duplicate_field(exc: IntegrityError) -> Optional[str]:
    """Return the field whose unique constraint ``exc`` reports, if any."""

    message = str(exc.orig)
    for field, constraint in UNIQUE_CONSTRAINTS.items():
        if constraint in message or f"users.{field}" in message:
            return field
    return None


class SQLUserStore:
    """:class:`UserStore` backed by the ``users`` table."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def find_user_by_email(self, email: str) -> Optional[User]:
        return self._first(select(User).where(User.email == email))

    def find_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return self._first(select(User).where(User.user_id == user_id))

    def insert_user(self, *, email: str, username: str, password_hash: str) -> User:
        user = User(email=email, username=username, password_hash=password_hash)
        return self._save(user)

    def update_user(
        self,
        user_id: uuid.UUID,
        *,
        username: Optional[str] = None,
        password_hash: Optional[str] = None,
    ) -> User:
        try:
            with Session(self._engine) as session:
                user = session.get(User, user_id)
                if user is None:
                    raise RecordStoreFailure(f"user {user_id} vanished during update")
                if username is not None:
                    user.username = username
                if password_hash is not None:
                    user.password_hash = password_hash
                user.updated_at = datetime.now(timezone.utc)
                return self._commit(session, user)
        except SQLAlchemyError as exc:
            raise RecordStoreFailure("user update failed") from exc

    def _first(self, statement) -> Optional[User]:
        try:
            with Session(self._engine) as session:
                return session.exec(statement).first()
        except SQLAlchemyError as exc:
            raise RecordStoreFailure("user lookup failed") from exc

    def _save(self, user: User) -> User:
        try:
            with Session(self._engine) as session:
                session.add(user)
                return self._commit(session, user)
        except SQLAlchemyError as exc:
            raise RecordStoreFailure("user insert failed") from exc

    @staticmethod
    def _commit(session: Session, user: User) -> User:
        try:
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            field = duplicate_field(exc)
            if field is None:
                raise
            logger.debug("unique constraint rejected %s", field)
            raise DuplicateKeyError(field) from exc
        session.refresh(user)
        return user


__all__ = ["DuplicateKeyError", "SQLUserStore", "UNIQUE_CONSTRAINTS", "UserStore", "duplicate_field"]

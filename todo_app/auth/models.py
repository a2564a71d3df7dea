"""SQLModel tables for users and server-side sessions."""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict

from sqlalchemy import Column, DateTime, Float, JSON, String, UniqueConstraint
from sqlalchemy.sql import func
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def _timestamp_column(*, onupdate: bool = False) -> Column:
    return Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now() if onupdate else None,
    )


class User(SQLModel, table=True):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("email", name="users_email_key"),
        UniqueConstraint("username", name="users_username_key"),
    )

    user_id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(sa_column=Column(String(254), nullable=False, index=True))
    username: str = Field(sa_column=Column(String(64), nullable=False))
    password_hash: str = Field(sa_column=Column(String(255), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=_timestamp_column())
    updated_at: datetime = Field(
        default_factory=_utcnow, sa_column=_timestamp_column(onupdate=True)
    )

    def __repr__(self) -> str:
        return f"User(user_id={self.user_id!s}, username={self.username!r})"


class SessionRecord(SQLModel, table=True):
    """One server-side session; ``data`` maps keys to base64 encoded values."""

    __tablename__ = "sessions"

    session_id: str = Field(sa_column=Column(String(64), primary_key=True))
    data: Dict[str, str] = Field(
        default_factory=dict,
        sa_column=Column(JSON, nullable=False, default=dict),
    )
    expires_at: float = Field(sa_column=Column(Float, nullable=False, index=True))


__all__ = ["SessionRecord", "User"]

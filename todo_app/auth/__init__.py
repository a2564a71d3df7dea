"""Authentication helpers and models."""

from .flash import FlashLevel, FlashMessage, FlashNotifier, FlashSigner
from .passwords import PasswordHasher, hash_password, needs_rehash, verify_password
from .service import Authenticator, Credential
from .session import (
    SESSION_COOKIE_NAME,
    USER_SESSION_KEY,
    SessionHandle,
    SessionPayload,
    apply_session_cookie,
)
from .store import DatabaseSessionStore, MemorySessionStore, SessionNotFound, SessionStore

__all__ = [
    "Authenticator",
    "Credential",
    "DatabaseSessionStore",
    "FlashLevel",
    "FlashMessage",
    "FlashNotifier",
    "FlashSigner",
    "MemorySessionStore",
    "PasswordHasher",
    "SESSION_COOKIE_NAME",
    "SessionHandle",
    "SessionNotFound",
    "SessionPayload",
    "SessionStore",
    "USER_SESSION_KEY",
    "apply_session_cookie",
    "hash_password",
    "needs_rehash",
    "verify_password",
]

"""Password hashing helpers.

Hashes are Argon2id strings in the PHC format (``$argon2id$v=19$m=...``), so
every stored hash carries its own salt and cost parameters.  Hashing is slow
on purpose; :class:`PasswordHasher` runs it on a bounded worker pool so that
request coroutines only await the result.
"""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

from passlib.context import CryptContext
from pydantic import SecretStr

from ..errors import HashingBackendFailure

logger = logging.getLogger(__name__)

_context = CryptContext(schemes=["argon2"], deprecated="auto", argon2__type="ID")

_T = TypeVar("_T")


def hash_password(password: str) -> str:
    """Hash ``password`` with a fresh random salt."""

    if not isinstance(password, str):
        raise TypeError("password must be a string")
    return _context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    """Return ``True`` if ``password`` matches ``hashed_password``.

    Malformed or unrecognised hashes verify as ``False`` instead of raising.
    """

    if not password or not hashed_password:
        return False
    try:
        return _context.verify(password, hashed_password)
    except (TypeError, ValueError):
        logger.warning("stored password hash could not be parsed")
        return False


def needs_rehash(hashed_password: str) -> bool:
    """Return ``True`` if the hash should be upgraded."""

    if not hashed_password:
        return True
    try:
        return _context.needs_update(hashed_password)
    except (TypeError, ValueError):
        return True


class PasswordHasher:
    """Dispatch hashing work to a bounded thread pool."""

    def __init__(self, *, max_workers: int = 4) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be greater than zero")
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="password-hasher"
        )

    async def hash(self, password: SecretStr) -> str:
        return await self._run(hash_password, password.get_secret_value())

    async def verify(self, password: SecretStr, stored_hash: str) -> bool:
        return await self._run(verify_password, password.get_secret_value(), stored_hash)

    def needs_rehash(self, stored_hash: str) -> bool:
        return needs_rehash(stored_hash)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)

    async def _run(self, func: Callable[..., _T], *args: Any) -> _T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._executor, func, *args)
        except Exception as exc:
            raise HashingBackendFailure("password hashing worker failed") from exc


__all__ = ["PasswordHasher", "hash_password", "needs_rehash", "verify_password"]

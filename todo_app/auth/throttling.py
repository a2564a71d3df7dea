"""Cooldown for clients that keep failing to log in."""
from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Deque, Dict, Optional

_Clock = Callable[[], float]


@dataclass
class ThrottleState:
    blocked: bool
    retry_after: int = 0


@dataclass
class _Record:
    failures: Deque[float] = field(default_factory=deque)
    blocked_until: float = 0.0


class LoginThrottle:
    """Block a key for ``block_seconds`` after ``max_attempts`` failures in ``window_seconds``."""

    def __init__(
        self,
        *,
        max_attempts: int,
        window_seconds: int,
        block_seconds: int,
        clock: Optional[_Clock] = None,
    ) -> None:
        for name, value in (
            ("max_attempts", max_attempts),
            ("window_seconds", window_seconds),
            ("block_seconds", block_seconds),
        ):
            if value <= 0:
                raise ValueError(f"{name} must be greater than zero")
        self._max_attempts = max_attempts
        self._window = float(window_seconds)
        self._block = float(block_seconds)
        self._clock: _Clock = clock or time.monotonic
        self._records: Dict[str, _Record] = {}
        self._lock = Lock()

    def _state_locked(self, key: str, now: float) -> ThrottleState:
        record = self._records.get(key)
        if record is None:
            return ThrottleState(blocked=False)
        if record.blocked_until > now:
            return ThrottleState(blocked=True, retry_after=max(int(record.blocked_until - now), 1))
        while record.failures and record.failures[0] <= now - self._window:
            record.failures.popleft()
        if not record.failures:
            del self._records[key]
        return ThrottleState(blocked=False)

    def check(self, key: str) -> ThrottleState:
        with self._lock:
            return self._state_locked(key, self._clock())

    def record_failure(self, key: str) -> ThrottleState:
        with self._lock:
            now = self._clock()
            state = self._state_locked(key, now)
            if state.blocked:
                return state
            record = self._records.setdefault(key, _Record())
            record.failures.append(now)
            if len(record.failures) >= self._max_attempts:
                record.failures.clear()
                record.blocked_until = now + self._block
                return ThrottleState(blocked=True, retry_after=max(int(self._block), 1))
            return ThrottleState(blocked=False)

    def reset(self, key: str) -> None:
        with self._lock:
            self._records.pop(key, None)

    def prune(self) -> int:
        """Forget keys that are neither blocked nor inside the window."""

        with self._lock:
            now = self._clock()
            before = len(self._records)
            for key in list(self._records):
                self._state_locked(key, now)
            return before - len(self._records)

    def __len__(self) -> int:
        return len(self._records)


__all__ = ["LoginThrottle", "ThrottleState"]

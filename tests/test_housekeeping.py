import asyncio
import time

from todo_app.auth.store import MemorySessionStore
from todo_app.auth.throttling import LoginThrottle
from todo_app.config import settings
from todo_app.main import run_housekeeping


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _stale_state(clock: FakeClock):
    store = MemorySessionStore(ttl_seconds=10, clock=clock)
    throttle = LoginThrottle(max_attempts=5, window_seconds=10, block_seconds=10, clock=clock)
    for _ in range(20):
        store.create()
    throttle.record_failure("10.0.0.1")
    clock.now += 100
    return store, throttle


def test_run_housekeeping_reclaims_expired_state() -> None:
    clock = FakeClock()
    store, throttle = _stale_state(clock)

    assert asyncio.run(run_housekeeping(store, throttle)) == 20
    assert len(store) == 0
    assert len(throttle) == 0


def test_app_lifespan_runs_housekeeping(make_client, monkeypatch) -> None:
    monkeypatch.setattr(settings, "HOUSEKEEPING_INTERVAL_SECONDS", 0.01)
    clock = FakeClock()
    store, throttle = _stale_state(clock)

    make_client(session_store=store, login_throttle=throttle)

    deadline = time.monotonic() + 5
    while (len(store) or len(throttle)) and time.monotonic() < deadline:
        time.sleep(0.02)

    assert len(store) == 0
    assert len(throttle) == 0

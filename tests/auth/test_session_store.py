import pytest

from todo_app import database
from todo_app.auth.store import (
    DatabaseSessionStore,
    MemorySessionStore,
    SessionNotFound,
    build_session_store,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(params=["memory", "database"])
def make_store(request, tmp_path, clock):
    engines = []

    def _make(*, ttl_seconds: int = 60, sliding: bool = True):
        if request.param == "memory":
            return MemorySessionStore(ttl_seconds=ttl_seconds, sliding=sliding, clock=clock)
        engine = database.build_engine(f"sqlite:///{tmp_path / 'sessions.sqlite3'}")
        database.init_storage(engine)
        engines.append(engine)
        return DatabaseSessionStore(engine, ttl_seconds=ttl_seconds, sliding=sliding, clock=clock)

    yield _make
    for engine in engines:
        engine.dispose()


def test_set_and_get_round_trip(make_store) -> None:
    store = make_store()
    session_id = store.create()

    store.set(session_id, "user_session", b'{"a":1}')

    assert store.get(session_id, "user_session") == b'{"a":1}'
    assert store.get(session_id, "missing") is None


def test_rotate_invalidates_old_identifier(make_store) -> None:
    store = make_store()
    old_id = store.create()
    store.set(old_id, "user_session", b"payload")

    new_id = store.rotate(old_id)

    assert new_id != old_id
    assert store.get(old_id, "user_session") is None
    assert store.get(new_id, "user_session") == b"payload"
    with pytest.raises(SessionNotFound):
        store.set(old_id, "user_session", b"hijack")


def test_rotate_unknown_identifier_yields_empty_session(make_store) -> None:
    store = make_store()

    new_id = store.rotate("attacker-chosen")

    assert new_id != "attacker-chosen"
    assert store.get(new_id, "user_session") is None
    store.set(new_id, "k", b"v")
    assert store.get(new_id, "k") == b"v"


def test_set_on_unknown_session_raises(make_store) -> None:
    store = make_store()

    with pytest.raises(SessionNotFound):
        store.set("nope", "k", b"v")


def test_remove_and_delete(make_store) -> None:
    store = make_store()
    session_id = store.create()
    store.set(session_id, "a", b"1")
    store.set(session_id, "b", b"2")

    store.remove(session_id, "a")
    assert store.get(session_id, "a") is None
    assert store.get(session_id, "b") == b"2"

    store.delete(session_id)
    assert store.get(session_id, "b") is None


def test_entries_expire(make_store, clock) -> None:
    store = make_store(ttl_seconds=10)
    session_id = store.create()
    store.set(session_id, "k", b"v")

    clock.now += 11

    assert store.get(session_id, "k") is None
    assert store.purge_expired() == 0
    with pytest.raises(SessionNotFound):
        store.set(session_id, "k", b"v")


def test_sliding_expiry_extends_on_access(make_store, clock) -> None:
    store = make_store(ttl_seconds=10, sliding=True)
    session_id = store.create()
    store.set(session_id, "k", b"v")

    for _ in range(3):
        clock.now += 8
        assert store.get(session_id, "k") == b"v"


def test_absolute_expiry_ignores_access(make_store, clock) -> None:
    store = make_store(ttl_seconds=10, sliding=False)
    session_id = store.create()
    store.set(session_id, "k", b"v")

    clock.now += 8
    assert store.get(session_id, "k") == b"v"
    clock.now += 3
    assert store.get(session_id, "k") is None


def test_memory_purge_expired(clock) -> None:
    store = MemorySessionStore(ttl_seconds=5, clock=clock)
    store.create()
    store.create()
    clock.now += 6

    assert store.purge_expired() == 2
    assert len(store) == 0


def test_build_session_store_rejects_unknown_backend() -> None:
    assert isinstance(
        build_session_store("memory", ttl_seconds=10, sliding=True), MemorySessionStore
    )
    with pytest.raises(ValueError):
        build_session_store("database", ttl_seconds=10, sliding=True)
    with pytest.raises(ValueError):
        build_session_store("redis", ttl_seconds=10, sliding=True)


def test_minting_sweeps_abandoned_sessions(clock) -> None:
    store = MemorySessionStore(ttl_seconds=10, clock=clock)
    for _ in range(1000):
        store.create()

    clock.now += 10_000
    for _ in range(5):
        store.create()

    assert len(store) == 5


def test_purge_removes_only_expired_sessions(make_store, clock) -> None:
    store = make_store(ttl_seconds=10, sliding=False)
    abandoned = [store.create() for _ in range(3)]
    clock.now += 6
    live = store.create()
    clock.now += 6

    assert store.purge_expired() == 3
    assert store.purge_expired() == 0
    store.set(live, "k", b"v")
    with pytest.raises(SessionNotFound):
        store.set(abandoned[0], "k", b"v")

import uuid

import pytest
from sqlalchemy.exc import IntegrityError

from todo_app import database
from todo_app.auth.users import DuplicateKeyError, SQLUserStore, duplicate_field
from todo_app.errors import RecordStoreFailure


@pytest.fixture()
def store(tmp_path):
    engine = database.build_engine(f"sqlite:///{tmp_path / 'users.sqlite3'}")
    database.init_storage(engine)
    try:
        yield SQLUserStore(engine)
    finally:
        engine.dispose()


def test_insert_and_find(store: SQLUserStore) -> None:
    user = store.insert_user(email="a@x.com", username="alice", password_hash="h1")

    assert isinstance(user.user_id, uuid.UUID)
    assert store.find_user_by_email("a@x.com").user_id == user.user_id
    assert store.find_user_by_id(user.user_id).username == "alice"
    assert store.find_user_by_email("nobody@x.com") is None
    assert store.find_user_by_id(uuid.uuid4()) is None


@pytest.mark.parametrize(
    ("email", "username", "field"),
    [("a@x.com", "bob", "email"), ("b@x.com", "alice", "username")],
)
def test_insert_duplicate_names_field(store: SQLUserStore, email, username, field) -> None:
    store.insert_user(email="a@x.com", username="alice", password_hash="h1")

    with pytest.raises(DuplicateKeyError) as excinfo:
        store.insert_user(email=email, username=username, password_hash="h2")

    assert excinfo.value.field == field


def test_update_user(store: SQLUserStore) -> None:
    user = store.insert_user(email="a@x.com", username="alice", password_hash="h1")
    store.insert_user(email="b@x.com", username="bob", password_hash="h2")

    updated = store.update_user(user.user_id, password_hash="h3")
    assert updated.password_hash == "h3"
    assert updated.username == "alice"

    with pytest.raises(DuplicateKeyError) as excinfo:
        store.update_user(user.user_id, username="bob")
    assert excinfo.value.field == "username"

    assert store.update_user(user.user_id, username="alice2").username == "alice2"


def test_update_missing_user_fails(store: SQLUserStore) -> None:
    with pytest.raises(RecordStoreFailure):
        store.update_user(uuid.uuid4(), username="ghost")


def test_broken_engine_is_record_store_failure(tmp_path) -> None:
    engine = database.build_engine(f"sqlite:///{tmp_path / 'empty.sqlite3'}")
    try:
        with pytest.raises(RecordStoreFailure):
            SQLUserStore(engine).find_user_by_email("a@x.com")
    finally:
        engine.dispose()


@pytest.mark.parametrize(
    ("message", "field"),
    [
        ('duplicate key value violates unique constraint "users_email_key"', "email"),
        ('duplicate key value violates unique constraint "users_username_key"', "username"),
        ("UNIQUE constraint failed: users.email", "email"),
        ('null value in column "password_hash" violates not-null constraint', None),
    ],
)
def test_duplicate_field(message, field) -> None:
    exc = IntegrityError("INSERT INTO users", {}, Exception(message))

    assert duplicate_field(exc) == field

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from authgate.core.exceptions import StorageError
from authgate.services.credential_store import (
    InMemoryCredentialStore,
    RefreshTokenRecord,
    SqlCredentialStore,
)

NOW = datetime(2026, 10, 1, 12, 0, 0)


def _record(token_id, subject="user-1", age=timedelta(0)):
    return RefreshTokenRecord(id=token_id, subject=subject, created_at=NOW - age)


def test_create_and_find(store):
    store.create(_record("jti-1"))
    found = store.find("jti-1")
    assert found is not None
    assert found.subject == "user-1"
    assert found.created_at == NOW
    assert store.find("missing") is None


def test_find_does_not_mutate(store):
    store.create(_record("jti-1"))
    store.find("jti-1")
    store.find("jti-1")
    assert store.find("jti-1") is not None


def test_delete_reports_whether_a_record_was_removed(store):
    store.create(_record("jti-1"))
    assert store.delete("jti-1") is True
    assert store.delete("jti-1") is False
    assert store.find("jti-1") is None


def test_duplicate_id_is_rejected(store):
    store.create(_record("jti-1"))
    with pytest.raises(StorageError):
        store.create(_record("jti-1", subject="user-2"))
    assert store.find("jti-1").subject == "user-1"


def test_delete_for_subject(store):
    store.create(_record("a1", subject="alice"))
    store.create(_record("a2", subject="alice"))
    store.create(_record("b1", subject="bob"))

    assert store.delete_for_subject("alice") == 2
    assert store.delete_for_subject("alice") == 0
    assert store.find("a1") is None
    assert store.find("a2") is None
    assert store.find("b1") is not None


def test_delete_created_before(store):
    store.create(_record("old", age=timedelta(days=2)))
    store.create(_record("edge", age=timedelta(days=1)))
    store.create(_record("new", age=timedelta(hours=1)))

    cutoff = NOW - timedelta(days=1)
    assert store.delete_created_before(cutoff) == 1
    assert store.find("old") is None
    assert store.find("edge") is not None
    assert store.find("new") is not None


def test_sql_errors_surface_as_storage_error():
    # No tables were created on this engine
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    store = SqlCredentialStore(sessionmaker(bind=engine))

    with pytest.raises(StorageError):
        store.create(_record("jti-1"))
    with pytest.raises(StorageError):
        store.delete("jti-1")
    with pytest.raises(StorageError):
        store.delete_created_before(NOW)


def test_memory_store_lock_timeout_is_a_storage_error():
    store = InMemoryCredentialStore(lock_timeout=0.05)
    store.create(_record("jti-1"))

    with store._locked():
        with pytest.raises(StorageError):
            store.find("jti-1")

    assert store.find("jti-1") is not None

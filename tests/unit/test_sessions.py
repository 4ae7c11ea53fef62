from datetime import timedelta

import pytest

import sessions
from models import AdminSession, db, utcnow
from sessions import DatabaseSessionStore, MemorySessionStore, build_session_store


@pytest.fixture(params=["memory", "database"])
def store(request, client):
    return MemorySessionStore() if request.param == "memory" else DatabaseSessionStore()


def test_put_and_get(store):
    store.put("abc", "admin", timedelta(hours=1))
    data = store.get("abc")
    assert data.user == "admin"
    assert store.is_active("abc")
    assert not store.is_active("missing")
    assert not store.is_active(None)


def test_delete(store):
    store.put("abc", "admin", timedelta(hours=1))
    store.delete("abc")
    assert store.get("abc") is None
    # deleting twice is fine
    store.delete("abc")


def test_expired_sessions_are_not_returned(store, monkeypatch):
    store.put("abc", "admin", timedelta(minutes=5))
    later = utcnow() + timedelta(minutes=10)
    monkeypatch.setattr(sessions, "utcnow", lambda: later)
    assert store.get("abc") is None
    assert not store.is_active("abc")


def test_purge_expired(store):
    store.put("old", "admin", timedelta(seconds=-1))
    store.put("new", "admin", timedelta(hours=1))
    assert store.purge_expired() == 1
    assert store.is_active("new")


def test_database_store_uses_table(client):
    store = DatabaseSessionStore()
    store.put("abc", "admin", timedelta(hours=1))
    assert db.session.get(AdminSession, "abc").user == "admin"


def test_build_session_store():
    assert isinstance(build_session_store("memory"), MemorySessionStore)
    assert isinstance(build_session_store("Database"), DatabaseSessionStore)
    with pytest.raises(RuntimeError):
        build_session_store("redis")

"""Admin session storage.

A session maps a token id to the user that owns it and an expiry. Two
backends share the same interface: an in-process map for single-process
deployments and development, and a database table that every worker process
can see.
"""
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional

from models import AdminSession, db, utcnow


@dataclass(frozen=True)
class SessionData:
    user: str
    expires_at: datetime

    def expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at


class SessionStore:
    def put(self, token: str, user: str, ttl: timedelta) -> SessionData:
        raise NotImplementedError

    def get(self, token: str) -> Optional[SessionData]:
        raise NotImplementedError

    def delete(self, token: str) -> None:
        raise NotImplementedError

    def purge_expired(self) -> int:
        raise NotImplementedError

    def is_active(self, token: str) -> bool:
        if not token:
            return False
        return self.get(token) is not None


class MemorySessionStore(SessionStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._data: Dict[str, SessionData] = {}

    def put(self, token, user, ttl):
        data = SessionData(user=user, expires_at=utcnow() + ttl)
        with self._lock:
            self._data[token] = data
        return data

    def get(self, token):
        with self._lock:
            data = self._data.get(token)
            if data is None:
                return None
            if data.expired():
                del self._data[token]
                return None
            return data

    def delete(self, token):
        with self._lock:
            self._data.pop(token, None)

    def purge_expired(self):
        now = utcnow()
        with self._lock:
            stale = [token for token, data in self._data.items() if data.expired(now)]
            for token in stale:
                del self._data[token]
        return len(stale)


class DatabaseSessionStore(SessionStore):
    """Sessions kept in the ``admin_sessions`` table.

    Each call commits its own change so a session written during login is
    visible to other processes immediately.
    """

    def put(self, token, user, ttl):
        expires_at = utcnow() + ttl
        row = db.session.get(AdminSession, token)
        if row is None:
            row = AdminSession(token=token, user=user, expires_at=expires_at)
            db.session.add(row)
        else:
            row.user = user
            row.expires_at = expires_at
        db.session.commit()
        return SessionData(user=user, expires_at=expires_at)

    def get(self, token):
        row = db.session.get(AdminSession, token)
        if row is None:
            return None
        data = SessionData(user=row.user, expires_at=row.expires_at)
        if data.expired():
            db.session.delete(row)
            db.session.commit()
            return None
        return data

    def delete(self, token):
        AdminSession.query.filter_by(token=token).delete()
        db.session.commit()

    def purge_expired(self):
        deleted = AdminSession.query.filter(AdminSession.expires_at <= utcnow()).delete()
        db.session.commit()
        return deleted


def build_session_store(backend: str) -> SessionStore:
    backend = (backend or "memory").lower()
    if backend == "memory":
        return MemorySessionStore()
    if backend == "database":
        return DatabaseSessionStore()
    raise RuntimeError(f"Unknown SESSION_BACKEND: {backend}")

"""
Server-side login sessions, keyed by a random id carried in an HTTP-only cookie.
In-memory; a restart logs everyone out. Sliding expiry on every read.
"""
import secrets
import threading
import time
from dataclasses import dataclass

from chat_portal.config import SESSION_TTL_SECONDS


@dataclass
class WebSession:
    session_id: str
    access_token: str
    user_info: dict
    last_seen: float
    id_token: str | None = None

    def expired(self, ttl: int = SESSION_TTL_SECONDS) -> bool:
        return (time.monotonic() - self.last_seen) > ttl

    @property
    def user(self) -> dict:
        """Public subset of userinfo for the browser."""
        return {
            "sub": self.user_info.get("sub"),
            "name": self.user_info.get("name"),
            "email": self.user_info.get("email"),
        }


_sessions: dict[str, WebSession] = {}
_lock = threading.Lock()


def create_session(
    access_token: str,
    user_info: dict,
    id_token: str | None = None,
) -> WebSession:
    session = WebSession(
        session_id=secrets.token_urlsafe(32),
        access_token=access_token,
        user_info=user_info,
        last_seen=time.monotonic(),
        id_token=id_token,
    )
    with _lock:
        _clean_expired()
        _sessions[session.session_id] = session
    return session


def get_session(session_id: str | None) -> WebSession | None:
    if not session_id:
        return None
    with _lock:
        session = _sessions.get(session_id)
        if session is None:
            return None
        if session.expired():
            del _sessions[session_id]
            return None
        session.last_seen = time.monotonic()
        return session


def delete_session(session_id: str | None) -> WebSession | None:
    if not session_id:
        return None
    with _lock:
        return _sessions.pop(session_id, None)


def clear_sessions() -> None:
    with _lock:
        _sessions.clear()


def _clean_expired() -> None:
    expired = [sid for sid, s in _sessions.items() if s.expired()]
    for sid in expired:
        del _sessions[sid]


def session_exists(session_id: str) -> bool:
    """True while the session is live. Unlike get_session, does not extend its expiry."""
    with _lock:
        session = _sessions.get(session_id)
        return session is not None and not session.expired()

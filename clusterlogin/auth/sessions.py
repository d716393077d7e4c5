"""Server-side HTTP sessions and the login state bound to them."""

from __future__ import annotations

import secrets
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from starlette.requests import Request

PENDING_ATTRIBUTE = "pending_authorization"
PRINCIPAL_ATTRIBUTE = "principal"
LOGGING_OUT_ATTRIBUTE = "logging_out"


@dataclass
class HttpSession:
    id: str
    created_at: float
    last_accessed_at: float
    attributes: Dict[str, Any] = field(default_factory=dict)


class SessionStore:
    """In-memory session registry keyed by the session cookie value.

    Sessions do not survive a restart; a login callback that arrives after
    one simply finds no pending authorization.
    """

    def __init__(self, idle_ttl_seconds: int):
        self._idle_ttl_seconds = idle_ttl_seconds
        self._sessions: Dict[str, HttpSession] = {}
        self._lock = threading.Lock()

    def create(self) -> HttpSession:
        now = time.time()
        session = HttpSession(id=secrets.token_urlsafe(32), created_at=now, last_accessed_at=now)
        with self._lock:
            self._sessions[session.id] = session
        return session

    def get(self, session_id: Optional[str]) -> Optional[HttpSession]:
        if not session_id:
            return None
        now = time.time()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if now - session.last_accessed_at > self._idle_ttl_seconds:
                del self._sessions[session_id]
                return None
            session.last_accessed_at = now
            return session

    def invalidate(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def cleanup(self) -> int:
        """Drop idle sessions and return how many were removed."""

        cutoff = time.time() - self._idle_ttl_seconds
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.last_accessed_at < cutoff]
            for sid in expired:
                del self._sessions[sid]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def current_session(request: Request, *, create: bool = False) -> Optional[HttpSession]:
    """Return the caller's session, creating one when ``create`` is set."""

    session = getattr(request.state, "http_session", None)
    if session is None and create:
        session = new_session(request)
    return session


def new_session(request: Request) -> HttpSession:
    """Start a fresh session for the caller; the cookie is set on the response."""

    store = request.app.state.session_store
    store.cleanup()
    session = store.create()
    request.state.http_session = session
    request.state.issued_session = session
    return session


@dataclass(frozen=True)
class PendingAuthorization:
    """An OAuth exchange waiting for the provider to redirect back."""

    state: str
    from_url: Optional[str]
    redirect_on_finish: str
    callback_url: str
    flow: Any
    created_at: float = field(default_factory=time.time)

    def is_expired(self, ttl_seconds: int, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now - self.created_at > ttl_seconds


def bind_pending(session: HttpSession, pending: PendingAuthorization) -> None:
    """Make ``pending`` the session's current login, replacing any earlier one."""

    session.attributes[PENDING_ATTRIBUTE] = pending


def current_pending(session: Optional[HttpSession], ttl_seconds: int) -> Optional[PendingAuthorization]:
    if session is None:
        return None
    pending = session.attributes.get(PENDING_ATTRIBUTE)
    if pending is None:
        return None
    if pending.is_expired(ttl_seconds):
        session.attributes.pop(PENDING_ATTRIBUTE, None)
        return None
    return pending


def discard_pending(session: HttpSession) -> None:
    session.attributes.pop(PENDING_ATTRIBUTE, None)


__all__ = [
    "HttpSession",
    "LOGGING_OUT_ATTRIBUTE",
    "PENDING_ATTRIBUTE",
    "PRINCIPAL_ATTRIBUTE",
    "PendingAuthorization",
    "SessionStore",
    "bind_pending",
    "current_pending",
    "current_session",
    "discard_pending",
    "new_session",
]

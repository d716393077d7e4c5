from __future__ import annotations

import time
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.syspath_prepend(str(Path(__file__).resolve().parents[1]))


def test_store_expires_idle_sessions(monkeypatch):
    from clusterlogin.auth import sessions

    store = sessions.SessionStore(idle_ttl_seconds=60)
    session = store.create()
    assert store.get(session.id) is session
    assert len(store) == 1

    later = time.time() + 61
    monkeypatch.setattr(sessions.time, "time", lambda: later)

    assert store.get(session.id) is None
    assert len(store) == 0


def test_store_cleanup_and_invalidate(monkeypatch):
    from clusterlogin.auth import sessions

    store = sessions.SessionStore(idle_ttl_seconds=60)
    stale = store.create()
    fresh = store.create()
    store.invalidate(fresh.id)
    assert store.get(fresh.id) is None
    assert store.get(None) is None

    later = time.time() + 120
    monkeypatch.setattr(sessions.time, "time", lambda: later)
    assert store.cleanup() == 1
    assert store.get(stale.id) is None


def test_pending_authorization_expiry():
    from clusterlogin.auth.sessions import (
        PENDING_ATTRIBUTE,
        PendingAuthorization,
        SessionStore,
        bind_pending,
        current_pending,
    )

    session = SessionStore(3600).create()
    pending = PendingAuthorization(
        state="abc",
        from_url=None,
        redirect_on_finish="http://ci/",
        callback_url="http://ci/securityRealm/finishLogin",
        flow=None,
        created_at=time.time() - 30,
    )
    bind_pending(session, pending)

    assert current_pending(session, 60) is pending
    assert current_pending(session, 10) is None
    assert PENDING_ATTRIBUTE not in session.attributes
    assert current_pending(None, 60) is None

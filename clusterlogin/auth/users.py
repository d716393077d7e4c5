"""Helpers for recording the host principal a login establishes."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlmodel import Session

from ..db import get_session_ctx
from ..models import User
from .sessions import HttpSession, PRINCIPAL_ATTRIBUTE
from .sync import AuthenticatedToken

logger = logging.getLogger(__name__)


def ensure_user_from_token(
    session: Session,
    token: AuthenticatedToken,
    *,
    update_last_login: bool = False,
) -> Tuple[User, bool, bool]:
    """Create or update the :class:`User` keyed by ``token.name``.

    The display name is the platform user name without the tier suffix.
    """

    now = datetime.now(timezone.utc)
    created = False
    updated = False

    user = session.get(User, token.name)
    if user:
        if user.full_name != token.display_name:
            user.full_name = token.display_name
            updated = True
        if update_last_login:
            user.last_login_at = now
            updated = True
        if updated:
            user.updated_at = now
            session.add(user)
    else:
        user = User(id=token.name, full_name=token.display_name)
        if update_last_login:
            user.last_login_at = now
        session.add(user)
        created = True

    return user, created, updated


def record_login(token: AuthenticatedToken) -> None:
    """Persist the user record for ``token``; failures are logged, not raised."""

    with get_session_ctx() as session:
        try:
            _, created, updated = ensure_user_from_token(session, token, update_last_login=True)
            if created or updated:
                session.commit()
            else:
                session.rollback()
        except Exception:  # noqa: BLE001
            session.rollback()
            logger.exception("Failed to save user record for %s", token.name)


def get_display_name(user_id: str) -> Optional[str]:
    with get_session_ctx() as session:
        user = session.get(User, user_id)
        return user.full_name if user else None


def set_session_principal(session: HttpSession, token: AuthenticatedToken) -> None:
    session.attributes[PRINCIPAL_ATTRIBUTE] = token


def get_session_principal(session: Optional[HttpSession]) -> Optional[AuthenticatedToken]:
    if session is None:
        return None
    return session.attributes.get(PRINCIPAL_ATTRIBUTE)


def clear_session_principal(session: HttpSession) -> None:
    session.attributes.pop(PRINCIPAL_ATTRIBUTE, None)


__all__ = [
    "clear_session_principal",
    "ensure_user_from_token",
    "get_display_name",
    "get_session_principal",
    "record_login",
    "set_session_principal",
]

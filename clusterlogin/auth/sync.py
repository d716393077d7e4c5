"""Merge a platform user's privilege tier into the host authorization matrix."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from ..observability.metrics import increment_matrix_update
from .matrix import AuthorizationState, GlobalMatrixPolicy
from .permissions import permissions_for_tier
from .roles import PrivilegeTier, highest_tier, matrix_key

logger = logging.getLogger(__name__)

AUTHENTICATED_AUTHORITY = "authenticated"

# Serializes every read-copy-write of the active matrix.
_MATRIX_LOCK = threading.Lock()


@dataclass(frozen=True)
class AuthenticatedToken:
    """The principal a successful login establishes in the host."""

    name: str
    display_name: str
    tier: PrivilegeTier
    authorities: Tuple[str, ...] = (AUTHENTICATED_AUTHORITY,)


def rebuild_policy(existing: GlobalMatrixPolicy, identity: str, tier: PrivilegeTier) -> GlobalMatrixPolicy:
    """Return a copy of ``existing`` with ``tier``'s permissions added for ``identity``.

    Grants for every other identity are carried over unchanged, and the new
    policy keeps the shape (global or project scoped) of the old one.
    """

    rebuilt = existing.empty_copy()
    for other in sorted(existing.identities()):
        for group in existing.permission_groups():
            for permission in group.permissions:
                if existing.has_permission(other, permission):
                    rebuilt.add(permission, other)
    for permission in sorted(permissions_for_tier(tier)):
        rebuilt.add(permission, identity)
    return rebuilt


class AuthorizationMatrixSynchronizer:
    def __init__(self, state: AuthorizationState, *, lock: Optional[threading.Lock] = None):
        self._state = state
        self._lock = lock if lock is not None else _MATRIX_LOCK

    @property
    def state(self) -> AuthorizationState:
        return self._state

    def sync(self, user_name: str, tiers: Iterable[PrivilegeTier]) -> Optional[AuthenticatedToken]:
        """Grant ``user_name`` its highest tier and return the resulting token.

        Returns ``None`` without touching the matrix when ``tiers`` is empty;
        such a user stays anonymous.
        """

        tiers = frozenset(tiers)
        tier = highest_tier(tiers)
        if tier is None:
            logger.info("Platform user %s holds no recognized role; leaving anonymous", user_name)
            return None

        key = matrix_key(user_name, tier)
        roles = sorted(t.verb for t in tiers)
        with self._lock:
            existing = self._state.policy
            if key in existing.identities():
                logger.info(
                    "Platform user %s, stored in the matrix as %s with roles %s, already exists",
                    user_name,
                    key,
                    roles,
                )
                increment_matrix_update("unchanged")
            else:
                logger.info(
                    "Adding permissions for platform user %s, stored in the matrix as %s, based on roles %s",
                    user_name,
                    key,
                    roles,
                )
                self._state.replace_policy(rebuild_policy(existing, key, tier))
                increment_matrix_update("added")
                try:
                    self._state.persist()
                except Exception:  # noqa: BLE001
                    # The running process already uses the new policy.
                    logger.exception("Failed to persist authorization matrix after adding %s", key)

        return AuthenticatedToken(name=key, display_name=user_name, tier=tier)


__all__ = [
    "AUTHENTICATED_AUTHORITY",
    "AuthenticatedToken",
    "AuthorizationMatrixSynchronizer",
    "rebuild_policy",
]

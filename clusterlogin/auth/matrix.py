"""The host's authorization matrix: identity -> granted permissions.

A policy object is treated as immutable once published. ``add`` is only
meant for building a fresh policy before it replaces the active one through
:meth:`AuthorizationState.replace_policy`.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from sqlmodel import select

from ..db import get_session_ctx
from ..models import AuthorizationSettings, MatrixGrant
from .permissions import ALL_PERMISSIONS, PERMISSION_GROUPS, PermissionGroup

logger = logging.getLogger(__name__)


class GlobalMatrixPolicy:
    """Matrix of permissions granted server-wide."""

    project_scoped = False

    def __init__(self, grants: Optional[Mapping[str, Iterable[str]]] = None):
        self._grants: Dict[str, Set[str]] = {}
        for identity, permissions in (grants or {}).items():
            for permission in permissions:
                self.add(permission, identity)

    def identities(self) -> FrozenSet[str]:
        return frozenset(self._grants)

    def permission_groups(self) -> Tuple[PermissionGroup, ...]:
        return PERMISSION_GROUPS

    def has_permission(self, identity: str, permission: str) -> bool:
        return permission in self._grants.get(identity, ())

    def granted(self, identity: str) -> FrozenSet[str]:
        return frozenset(self._grants.get(identity, ()))

    def add(self, permission: str, identity: str) -> None:
        if permission not in ALL_PERMISSIONS:
            raise ValueError(f"Unknown permission {permission!r}")
        if not identity:
            raise ValueError("identity must be provided")
        self._grants.setdefault(identity, set()).add(permission)

    def empty_copy(self) -> "GlobalMatrixPolicy":
        """Return an empty policy of the same concrete shape."""

        return type(self)()

    def as_dict(self) -> Dict[str, List[str]]:
        return {identity: sorted(self._grants[identity]) for identity in sorted(self._grants)}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(identities={len(self._grants)})"


class ProjectMatrixPolicy(GlobalMatrixPolicy):
    """Matrix policy that additionally honours per-project grants on jobs."""

    project_scoped = True


def policy_for_shape(project_scoped: bool) -> GlobalMatrixPolicy:
    return ProjectMatrixPolicy() if project_scoped else GlobalMatrixPolicy()


def save_policy(policy: GlobalMatrixPolicy) -> None:
    """Replace the persisted matrix with ``policy``.

    Rows naming a permission this service does not know are left in place.
    """

    with get_session_ctx() as session:
        try:
            known = select(MatrixGrant).where(MatrixGrant.permission.in_(sorted(ALL_PERMISSIONS)))
            for row in session.exec(known).all():
                session.delete(row)
            session.flush()
            for identity, permissions in policy.as_dict().items():
                for permission in permissions:
                    session.add(MatrixGrant(identity=identity, permission=permission))
            settings = session.get(AuthorizationSettings, 1)
            if settings is None:
                settings = AuthorizationSettings(id=1)
            settings.project_scoped = policy.project_scoped
            settings.updated_at = datetime.now(timezone.utc)
            session.add(settings)
            session.commit()
        except Exception:
            session.rollback()
            raise


def load_policy(*, project_scoped_default: bool = False) -> GlobalMatrixPolicy:
    """Return the persisted matrix, or an empty one of the default shape."""

    with get_session_ctx() as session:
        settings = session.get(AuthorizationSettings, 1)
        if settings is None:
            return policy_for_shape(project_scoped_default)
        project_scoped = settings.project_scoped
        grants: Dict[str, List[str]] = {}
        for row in session.exec(select(MatrixGrant)):
            if row.permission not in ALL_PERMISSIONS:
                logger.warning(
                    "Ignoring persisted grant of unknown permission %s to %s",
                    row.permission,
                    row.identity,
                )
                continue
            grants.setdefault(row.identity, []).append(row.permission)
    policy = policy_for_shape(project_scoped)
    for identity, permissions in grants.items():
        for permission in permissions:
            policy.add(permission, identity)
    return policy


class AuthorizationState:
    """Holds the host's active policy and knows how to persist it."""

    def __init__(
        self,
        policy: Optional[GlobalMatrixPolicy] = None,
        *,
        persist: Optional[Callable[[GlobalMatrixPolicy], None]] = save_policy,
    ):
        self._policy = policy if policy is not None else GlobalMatrixPolicy()
        self._persist = persist

    @property
    def policy(self) -> GlobalMatrixPolicy:
        return self._policy

    def replace_policy(self, policy: GlobalMatrixPolicy) -> None:
        self._policy = policy

    @property
    def persists(self) -> bool:
        return self._persist is not None

    def suspend_persistence(self) -> None:
        """Keep later changes in memory only; the stored matrix stays as it is."""

        self._persist = None

    def persist(self) -> None:
        if self._persist is not None:
            self._persist(self._policy)


__all__ = [
    "AuthorizationState",
    "GlobalMatrixPolicy",
    "ProjectMatrixPolicy",
    "load_policy",
    "policy_for_shape",
    "save_policy",
]

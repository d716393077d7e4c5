"""Resolve a platform principal's privilege tiers through access reviews."""

from __future__ import annotations

import enum
import logging
from typing import FrozenSet, Iterable, Optional, Set

from .platform import PlatformTransport, post_access_review

logger = logging.getLogger(__name__)


class PrivilegeTier(enum.IntEnum):
    """The three recognized platform roles, ordered by privilege."""

    VIEW = 1
    EDIT = 2
    ADMIN = 3

    @property
    def verb(self) -> str:
        return self.name.lower()

    @property
    def suffix(self) -> str:
        return f"-{self.verb}"


def highest_tier(tiers: Iterable[PrivilegeTier]) -> Optional[PrivilegeTier]:
    """Return the most privileged tier in ``tiers`` or ``None`` when empty."""

    tiers = set(tiers)
    if not tiers:
        return None
    return max(tiers)


def matrix_key(user_name: str, tier: PrivilegeTier) -> str:
    """Return the matrix identity for ``user_name`` logged in at ``tier``.

    The suffix comes from the verified tier, so a platform account literally
    named ``foo-admin`` with view access becomes ``foo-admin-view``.
    """

    if not user_name:
        raise ValueError("user_name must be provided")
    return user_name + tier.suffix


def resolve_tiers(
    api_base: str,
    token: str,
    namespace: Optional[str],
    transport: PlatformTransport,
) -> FrozenSet[PrivilegeTier]:
    """Return every tier the access review allows for ``token``'s user.

    One review is issued per tier in ascending order; each is independent.
    """

    allowed: Set[PrivilegeTier] = set()
    for tier in sorted(PrivilegeTier):
        review = post_access_review(api_base, token, namespace, tier.verb, transport)
        logger.debug(
            "Access review for verb %s in namespace %s: allowed=%s reason=%s",
            tier.verb,
            review.namespace,
            review.allowed,
            review.reason,
        )
        if review.allowed:
            allowed.add(tier)
    return frozenset(allowed)


__all__ = [
    "PrivilegeTier",
    "highest_tier",
    "matrix_key",
    "resolve_tiers",
]

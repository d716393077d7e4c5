"""Platform login: configuration discovery, the OAuth flow and matrix sync.

The :mod:`clusterlogin.auth.permissions` module holds the host permission
constants and the table mapping each privilege tier to its grants.
"""

from __future__ import annotations

from .discovery import ConfigResolver, EffectiveConfig, ExplicitConfig, set_test_transport
from .matrix import AuthorizationState, GlobalMatrixPolicy, ProjectMatrixPolicy, load_policy
from .oauth import OAuthFlowOrchestrator, build_callback_url, resolve_redirect_target
from .permissions import TIER_PERMISSIONS, permissions_for_tier
from .roles import PrivilegeTier, highest_tier, matrix_key, resolve_tiers
from .sessions import PendingAuthorization, SessionStore
from .sync import AuthenticatedToken, AuthorizationMatrixSynchronizer

__all__ = [
    "AuthenticatedToken",
    "AuthorizationMatrixSynchronizer",
    "AuthorizationState",
    "ConfigResolver",
    "EffectiveConfig",
    "ExplicitConfig",
    "GlobalMatrixPolicy",
    "OAuthFlowOrchestrator",
    "PendingAuthorization",
    "PrivilegeTier",
    "ProjectMatrixPolicy",
    "SessionStore",
    "TIER_PERMISSIONS",
    "build_callback_url",
    "highest_tier",
    "load_policy",
    "matrix_key",
    "permissions_for_tier",
    "resolve_redirect_target",
    "resolve_tiers",
    "set_test_transport",
]

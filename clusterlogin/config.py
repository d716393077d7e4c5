"""Application configuration helpers for login feature flags and settings."""

from __future__ import annotations

import os
from functools import lru_cache

_TRUE_VALUES = {"1", "true", "yes", "on"}

DEFAULT_HOST_ROOT_URL = "http://localhost:8080/"
DEFAULT_PENDING_AUTH_TTL_SECONDS = 600
DEFAULT_SESSION_IDLE_TTL_SECONDS = 3600
DEFAULT_SESSION_COOKIE_NAME = "clusterlogin_session"


def _read_flag(name: str) -> bool | None:
    """Return the parsed boolean value for ``name`` if explicitly set."""

    value = os.getenv(name)
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    return normalized.lower() in _TRUE_VALUES


def _read_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        parsed = int(value.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc
    if parsed <= 0:
        raise ValueError(f"{name} must be positive, got {parsed}")
    return parsed


def fix_empty(value: str | None) -> str | None:
    """Return ``None`` for missing or blank ``value``, otherwise the stripped text."""

    if value is None:
        return None
    text = value.strip()
    return text or None


__all__ = [
    "fix_empty",
    "get_host_root_url",
    "get_pending_auth_ttl_seconds",
    "get_session_cookie_name",
    "get_session_idle_ttl_seconds",
    "is_bearer_token_login_enabled",
    "is_project_matrix_default",
    "is_session_cookie_secure",
]


@lru_cache(maxsize=1)
def get_host_root_url() -> str:
    """Return the CI server's own root URL, always ending with a slash."""

    root = fix_empty(os.getenv("HOST_ROOT_URL")) or DEFAULT_HOST_ROOT_URL
    if not root.endswith("/"):
        root += "/"
    return root


@lru_cache(maxsize=1)
def get_pending_auth_ttl_seconds() -> int:
    """Return how long an unanswered login redirect stays valid."""

    return _read_int("PENDING_AUTH_TTL_SECONDS", DEFAULT_PENDING_AUTH_TTL_SECONDS)


@lru_cache(maxsize=1)
def get_session_idle_ttl_seconds() -> int:
    return _read_int("SESSION_IDLE_TTL_SECONDS", DEFAULT_SESSION_IDLE_TTL_SECONDS)


@lru_cache(maxsize=1)
def get_session_cookie_name() -> str:
    return fix_empty(os.getenv("SESSION_COOKIE_NAME")) or DEFAULT_SESSION_COOKIE_NAME


@lru_cache(maxsize=1)
def is_session_cookie_secure() -> bool:
    flag = _read_flag("SESSION_COOKIE_SECURE")
    if flag is None:
        return False
    return flag


@lru_cache(maxsize=1)
def is_bearer_token_login_enabled() -> bool:
    """Return ``True`` when platform bearer tokens may authenticate API calls."""

    flag = _read_flag("BEARER_TOKEN_LOGIN")
    if flag is None:
        return True
    return flag


@lru_cache(maxsize=1)
def is_project_matrix_default() -> bool:
    """Return ``True`` when a fresh matrix should support per-project scoping.

    ``AUTHORIZATION_STRATEGY`` accepts ``global`` (the default) or ``project``.
    Only consulted when no matrix has been persisted yet.
    """

    value = fix_empty(os.getenv("AUTHORIZATION_STRATEGY"))
    if value is None:
        return False
    normalized = value.lower()
    if normalized not in {"global", "project"}:
        raise ValueError(f"AUTHORIZATION_STRATEGY must be 'global' or 'project', got {value!r}")
    return normalized == "project"

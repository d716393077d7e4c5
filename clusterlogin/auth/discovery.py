"""Resolve the effective platform login configuration.

Every setting is either supplied explicitly by the operator or defaulted from
what the running pod can discover about itself: the mounted service account
directory (namespace, token, cluster CA) plus two platform endpoints (the
current user and the OAuth provider metadata). Explicit values always win.

Discovery runs once per process and again whenever a caller asks for a
refresh, for example at the start of every login in case the pod was
recycled. Results are published as a single immutable snapshot so readers
never observe a half-built transport.
"""

from __future__ import annotations

import logging
import os
import ssl
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from ..config import fix_empty
from ..errors import ConfigIncomplete, LoginError
from .platform import (
    DEFAULT_TRANSPORT,
    PlatformTransport,
    ProviderInfo,
    fetch_provider_info,
    fetch_user_info,
    trusting_transport,
)

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_ACCOUNT_DIR = "/run/secrets/kubernetes.io/serviceaccount"
DEFAULT_SERVER_PREFIX = "https://openshift.default.svc"
NAMESPACE_FILE = "namespace"
TOKEN_FILE = "token"
CA_FILE = "ca.crt"
K8S_HOST_ENV_VAR = "KUBERNETES_SERVICE_HOST"
K8S_PORT_ENV_VAR = "KUBERNETES_SERVICE_PORT"
SERVICE_ACCOUNT_PREFIX = "system:serviceaccount"

_ENV_NAMES = {
    "service_account_dir": "CLUSTER_SERVICE_ACCOUNT_DIR",
    "service_account_name": "CLUSTER_SERVICE_ACCOUNT_NAME",
    "server_prefix": "CLUSTER_SERVER_PREFIX",
    "redirect_url": "CLUSTER_REDIRECT_URL",
    "client_id": "CLUSTER_CLIENT_ID",
    "client_secret": "CLUSTER_CLIENT_SECRET",
}

_test_transport: Optional[httpx.BaseTransport] = None


def set_test_transport(transport: Optional[httpx.BaseTransport]) -> None:
    """Route every platform call through ``transport`` (``None`` to reset)."""

    global _test_transport
    _test_transport = transport


def get_test_transport() -> Optional[httpx.BaseTransport]:
    return _test_transport


@dataclass(frozen=True)
class ExplicitConfig:
    """Operator-supplied settings; blank values count as not supplied."""

    service_account_dir: Optional[str] = None
    service_account_name: Optional[str] = None
    server_prefix: Optional[str] = None
    redirect_url: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        for item in fields(self):
            object.__setattr__(self, item.name, fix_empty(getattr(self, item.name)))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ExplicitConfig":
        env = os.environ if environ is None else environ
        return cls(**{attr: env.get(name) for attr, name in _ENV_NAMES.items()})


@dataclass(frozen=True)
class DiscoveredDefaults:
    """Values derived from the runtime environment, used when not configured."""

    service_account_dir: str = DEFAULT_SERVICE_ACCOUNT_DIR
    server_prefix: str = DEFAULT_SERVER_PREFIX
    namespace: Optional[str] = None
    service_account_name: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = field(default=None, repr=False)
    redirect_url: Optional[str] = None
    provider: Optional[ProviderInfo] = None


@dataclass(frozen=True)
class EffectiveConfig:
    """The settings one login attempt runs with."""

    credential_source: str
    account_name: Optional[str]
    api_base: str
    redirect_base: Optional[str]
    client_id: Optional[str]
    client_secret: Optional[str] = field(repr=False)
    namespace: Optional[str]

    def require(self, name: str) -> str:
        """Return setting ``name`` or raise :class:`ConfigIncomplete` when unset."""

        value = getattr(self, name)
        if not value:
            raise ConfigIncomplete(f"{name} is neither configured nor discoverable")
        return value

    def summary(self) -> Dict[str, Any]:
        """Return a log/response friendly view that never includes the secret."""

        return {
            "credential_source": self.credential_source,
            "account_name": self.account_name,
            "api_base": self.api_base,
            "redirect_base": self.redirect_base,
            "client_id": self.client_id,
            "has_client_secret": bool(self.client_secret),
            "namespace": self.namespace,
        }


def merge_config(explicit: ExplicitConfig, discovered: DiscoveredDefaults) -> EffectiveConfig:
    """Apply the explicit-else-discovered rule to every setting."""

    return EffectiveConfig(
        credential_source=explicit.service_account_dir or discovered.service_account_dir,
        account_name=explicit.service_account_name or discovered.service_account_name,
        api_base=explicit.server_prefix or discovered.server_prefix,
        redirect_base=explicit.redirect_url or discovered.redirect_url,
        client_id=explicit.client_id or discovered.client_id,
        client_secret=explicit.client_secret or discovered.client_secret,
        namespace=discovered.namespace,
    )


def service_account_client_id(namespace: Optional[str], account_name: Optional[str]) -> Optional[str]:
    if not namespace or not account_name:
        return None
    return f"{SERVICE_ACCOUNT_PREFIX}:{namespace}:{account_name}"


def account_name_from_user(user_name: str) -> Optional[str]:
    """Return ``NAME`` from ``system:serviceaccount:NAMESPACE:NAME``."""

    parts = user_name.split(":")
    if len(parts) == 4:
        return parts[3] or None
    return None


def has_environment_signals(environ: Mapping[str, str]) -> bool:
    return environ.get(K8S_HOST_ENV_VAR) is not None and environ.get(K8S_PORT_ENV_VAR) is not None


def _read_first_line(path: str) -> Optional[str]:
    with open(path, encoding="utf-8") as handle:
        return fix_empty(handle.readline())


def _log_fallback(within_pod: bool, message: str, *args: Any, exc_info: bool = True) -> None:
    # Fallbacks are expected outside a pod and stay at debug there.
    if within_pod:
        logger.info(message, *args, exc_info=exc_info)
    else:
        logger.debug(message, *args, exc_info=exc_info)


@dataclass(frozen=True)
class Resolution:
    """One published discovery result."""

    defaults: DiscoveredDefaults
    transport: PlatformTransport
    fully_discovered: bool


def discover(
    explicit: ExplicitConfig,
    *,
    environ: Optional[Mapping[str, str]] = None,
    test_transport: Optional[httpx.BaseTransport] = None,
) -> Resolution:
    """Probe the environment and return the defaults it yields.

    Missing files and unreachable endpoints only mark discovery incomplete;
    nothing here raises for them.
    """

    env = os.environ if environ is None else environ
    defaults = DiscoveredDefaults()
    sa_dir = explicit.service_account_dir or defaults.service_account_dir
    signals = has_environment_signals(env)
    within_pod = signals or os.path.exists(sa_dir)
    complete = signals

    namespace: Optional[str] = None
    token: Optional[str] = None
    transport = DEFAULT_TRANSPORT
    try:
        namespace = _read_first_line(os.path.join(sa_dir, NAMESPACE_FILE))
    except OSError:
        _log_fallback(within_pod, "No service account namespace under %s", sa_dir)
    try:
        token = _read_first_line(os.path.join(sa_dir, TOKEN_FILE))
    except OSError:
        _log_fallback(within_pod, "No service account token under %s", sa_dir)
    complete = complete and bool(namespace) and bool(token)

    try:
        with open(os.path.join(sa_dir, CA_FILE), encoding="utf-8") as handle:
            ca_pem = handle.read()
        transport = trusting_transport(ca_pem)
    except (OSError, ssl.SSLError, ValueError):
        _log_fallback(within_pod, "Using default trust store; no usable cluster CA under %s", sa_dir)

    if test_transport is not None:
        transport = PlatformTransport(transport=test_transport)

    defaults = replace(defaults, namespace=namespace, client_secret=token)
    api_base = explicit.server_prefix or defaults.server_prefix
    bearer = explicit.client_secret or token

    discovered_name: Optional[str] = None
    provider: Optional[ProviderInfo] = None
    if bearer:
        try:
            user = fetch_user_info(api_base, bearer, transport)
            discovered_name = account_name_from_user(user.name)
            provider = fetch_provider_info(api_base, bearer, transport)
        except LoginError:
            _log_fallback(within_pod, "Platform discovery against %s failed", api_base)
    else:
        _log_fallback(within_pod, "No bearer token available to query %s", api_base, exc_info=False)

    defaults = replace(
        defaults,
        service_account_name=discovered_name,
        client_id=service_account_client_id(namespace, explicit.service_account_name or discovered_name),
        redirect_url=provider.issuer if provider is not None else None,
        provider=provider,
    )
    complete = complete and bool(discovered_name) and defaults.client_id is not None and provider is not None

    effective = merge_config(explicit, defaults)
    if not complete:
        # The namespace only ever comes from the service account directory.
        complete = effective.namespace is not None and all(
            (effective.account_name, effective.client_id, effective.client_secret, effective.redirect_base)
        )

    if within_pod:
        logger.info(
            "Cluster OAuth configuration resolved (complete=%s): %s",
            complete,
            effective.summary(),
        )
    return Resolution(defaults=defaults, transport=transport, fully_discovered=complete)


class ConfigResolver:
    """Holds the explicit settings and the latest published discovery result."""

    def __init__(
        self,
        explicit: Optional[ExplicitConfig] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self._explicit = explicit if explicit is not None else ExplicitConfig.from_env(environ)
        self._environ = environ
        self._resolution: Optional[Resolution] = None

    @property
    def explicit(self) -> ExplicitConfig:
        return self._explicit

    def _current(self, refresh: bool) -> Resolution:
        resolution = self._resolution
        if resolution is None or refresh:
            resolution = discover(
                self._explicit,
                environ=self._environ,
                test_transport=get_test_transport(),
            )
            self._resolution = resolution
        return resolution

    def resolve(self, *, refresh: bool = False) -> Tuple[EffectiveConfig, bool]:
        """Return the effective configuration and whether discovery was complete."""

        resolution = self._current(refresh)
        return merge_config(self._explicit, resolution.defaults), resolution.fully_discovered

    def refresh(self) -> Tuple[EffectiveConfig, bool]:
        return self.resolve(refresh=True)

    def snapshot(self, *, refresh: bool = False) -> Tuple[EffectiveConfig, PlatformTransport]:
        """Return the effective configuration and the transport of one published result."""

        resolution = self._current(refresh)
        return merge_config(self._explicit, resolution.defaults), resolution.transport

    @property
    def transport(self) -> PlatformTransport:
        return self._current(False).transport


__all__ = [
    "ConfigResolver",
    "DEFAULT_SERVER_PREFIX",
    "DEFAULT_SERVICE_ACCOUNT_DIR",
    "DiscoveredDefaults",
    "EffectiveConfig",
    "ExplicitConfig",
    "Resolution",
    "account_name_from_user",
    "discover",
    "merge_config",
    "service_account_client_id",
    "set_test_transport",
]

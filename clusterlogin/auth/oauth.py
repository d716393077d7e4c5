"""Drive the OAuth2 authorization-code login against the platform provider.

The browser is bounced twice: ``commence_login`` sends it to the provider's
authorization endpoint and remembers the exchange in the caller's session,
and ``finish_login`` handles the provider's redirect back, trades the code
for a bearer token and maps the user's platform roles into the host matrix.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional, Tuple
from urllib.parse import urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, Field

from ..config import get_host_root_url, get_pending_auth_ttl_seconds
from ..errors import ConfigIncomplete, InvalidRedirectTarget, LoginError, ProviderError, StateMismatch
from ..observability.metrics import increment_login
from .discovery import ConfigResolver, EffectiveConfig
from .platform import PlatformTransport, fetch_user_info, parse_model, send
from .roles import resolve_tiers
from .sessions import (
    LOGGING_OUT_ATTRIBUTE,
    HttpSession,
    PendingAuthorization,
    bind_pending,
    current_pending,
    discard_pending,
)
from .sync import AuthenticatedToken, AuthorizationMatrixSynchronizer
from .users import record_login, set_session_principal

logger = logging.getLogger(__name__)

SCOPE_INFO = "user:info"
SCOPE_CHECK_ACCESS = "user:check-access"
SCOPES: Tuple[str, ...] = (SCOPE_INFO, SCOPE_CHECK_ACCESS)

TOKEN_PATH = "/oauth/token"
AUTHORIZE_PATH = "/oauth/authorize"
CALLBACK_PATH = "/securityRealm/finishLogin"
LOGIN_URL = "securityRealm/commenceLogin"
LOGOUT = "logout"

_HTTP_SCHEMES = ("http", "https")


class BearerCredential(BaseModel):
    """Token endpoint response; lives only as long as the login request."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    access_token: str = Field(repr=False)
    token_type: str = "Bearer"
    expires_in: Optional[float] = None
    refresh_token: Optional[str] = Field(default=None, repr=False)
    scope: Optional[str] = None


@dataclass(frozen=True)
class AuthorizationCodeFlow:
    token_url: str
    authorization_url: str
    client_id: str
    client_secret: str = field(repr=False)
    scopes: Tuple[str, ...]
    transport: PlatformTransport

    def authorization_redirect(self, callback_url: str, state: str) -> str:
        """Return the provider URL the browser should be sent to."""

        params = [
            ("client_id", self.client_id),
            ("response_type", "code"),
            ("redirect_uri", callback_url),
            ("scope", " ".join(self.scopes)),
            ("state", state),
        ]
        return f"{self.authorization_url}?{urlencode(params)}"

    def exchange(self, code: str, callback_url: str) -> BearerCredential:
        """Trade ``code`` for a bearer token using client-secret authentication."""

        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": callback_url,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        response = send(self.transport, "POST", self.token_url, data=payload)
        return parse_model(response, BearerCredential)


def is_absolute_url(value: Optional[str]) -> bool:
    if not value:
        return False
    try:
        parts = urlsplit(value)
    except ValueError:
        return False
    return bool(parts.scheme) and bool(parts.netloc)


def resolve_redirect_target(from_url: Optional[str], referer: Optional[str], root_url: str) -> str:
    """Pick where the browser lands after login: ``from``, then Referer, then root."""

    if is_absolute_url(from_url):
        return from_url  # type: ignore[return-value]
    if is_absolute_url(referer):
        return referer  # type: ignore[return-value]
    return root_url


def build_callback_url(redirect_target: str) -> str:
    """Return the finish-login URL on the same scheme and host as ``redirect_target``.

    Path, query and any credentials in the target are dropped.
    """

    try:
        parts = urlsplit(redirect_target)
        hostname = parts.hostname
        port = parts.port
    except ValueError as exc:
        raise InvalidRedirectTarget(f"redirect url {redirect_target} insufficient") from exc
    scheme = parts.scheme.lower()
    if scheme not in _HTTP_SCHEMES or not hostname:
        raise InvalidRedirectTarget(f"redirect url {redirect_target} insufficient")
    host = f"[{hostname}]" if ":" in hostname else hostname
    if port is not None:
        host = f"{host}:{port}"
    return f"{scheme}://{host}{CALLBACK_PATH}"


def post_logout_url(request_url: str, session: HttpSession) -> str:
    """Return where to send the browser after logging out.

    When the URL ends in a ``logout`` path segment, tags ``session`` as
    logging out and strips that segment so the browser returns to the page
    it logged out from instead of a login callback that a restart would
    have orphaned. Any other URL is returned unchanged.
    """

    parts = urlsplit(request_url)
    path = parts.path.rstrip("/")
    if not path.endswith("/" + LOGOUT):
        return request_url
    session.attributes[LOGGING_OUT_ATTRIBUTE] = True
    return urlunsplit(parts._replace(path=path[: -len(LOGOUT)]))


@dataclass(frozen=True)
class FinishResult:
    redirect_url: str
    token: Optional[AuthenticatedToken] = None
    outcome: str = "authenticated"


class OAuthFlowOrchestrator:
    def __init__(
        self,
        resolver: ConfigResolver,
        synchronizer: AuthorizationMatrixSynchronizer,
        *,
        root_url: Callable[[], str] = get_host_root_url,
        pending_ttl_seconds: Optional[int] = None,
    ):
        self._resolver = resolver
        self._synchronizer = synchronizer
        self._root_url = root_url
        self._pending_ttl_seconds = pending_ttl_seconds

    @property
    def resolver(self) -> ConfigResolver:
        return self._resolver

    @property
    def pending_ttl_seconds(self) -> int:
        if self._pending_ttl_seconds is not None:
            return self._pending_ttl_seconds
        return get_pending_auth_ttl_seconds()

    def new_flow(self, config: EffectiveConfig, transport: PlatformTransport) -> AuthorizationCodeFlow:
        """Build the flow object from ``config``; unset settings fail here."""

        redirect_base = config.require("redirect_base")
        parts = urlsplit(redirect_base)
        if parts.scheme.lower() not in _HTTP_SCHEMES or not parts.netloc:
            raise ConfigIncomplete(f"redirect_base {redirect_base!r} is not a valid http(s) URL")
        # The token endpoint hangs off the API base, not the public issuer.
        return AuthorizationCodeFlow(
            token_url=config.api_base.rstrip("/") + TOKEN_PATH,
            authorization_url=redirect_base.rstrip("/") + AUTHORIZE_PATH,
            client_id=config.require("client_id"),
            client_secret=config.require("client_secret"),
            scopes=SCOPES,
            transport=transport,
        )

    def commence_login(self, session: HttpSession, from_url: Optional[str], referer: Optional[str]) -> str:
        """Start a login for ``session`` and return the provider redirect URL."""

        logger.debug("Commencing login from=%s referer=%s", from_url, referer)
        # The pod may have been recycled since the last login.
        config, transport = self._resolver.snapshot(refresh=True)
        redirect_on_finish = resolve_redirect_target(from_url, referer, self._root_url())
        callback_url = build_callback_url(redirect_on_finish)
        flow = self.new_flow(config, transport)
        state = secrets.token_urlsafe(32)
        bind_pending(
            session,
            PendingAuthorization(
                state=state,
                from_url=from_url,
                redirect_on_finish=redirect_on_finish,
                callback_url=callback_url,
                flow=flow,
            ),
        )
        session.attributes.pop(LOGGING_OUT_ATTRIBUTE, None)
        return flow.authorization_redirect(callback_url, state)

    def finish_login(self, session: Optional[HttpSession], params: Mapping[str, str]) -> FinishResult:
        """Complete the login the provider redirected back for.

        Without a pending authorization (stale or restarted session, direct
        navigation) the browser is sent to the root to log in again.
        """

        pending = current_pending(session, self.pending_ttl_seconds)
        if session is None or pending is None:
            logger.debug("No pending authorization for finish-login; redirecting to root")
            increment_login("stale_session")
            return FinishResult(redirect_url=self._root_url(), outcome="stale_session")

        discard_pending(session)
        try:
            error = params.get("error")
            if error:
                raise ProviderError(f"Authorization was denied by the provider: {error}", status_code=401)
            if not secrets.compare_digest((params.get("state") or "").encode(), pending.state.encode()):
                raise StateMismatch("State is invalid")
            code = params.get("code")
            if not code:
                raise ProviderError("Callback is missing the authorization code")
            credential = pending.flow.exchange(code, pending.callback_url)
            token = self.authenticate(credential.access_token)
        except LoginError as exc:
            increment_login("denied" if exc.status_code == 401 else "failed")
            logger.info("Login failed: %s", exc.message)
            raise
        except Exception as exc:  # noqa: BLE001
            increment_login("failed")
            logger.exception("Unexpected failure while finishing login")
            raise LoginError(str(exc) or type(exc).__name__) from exc

        if token is None:
            increment_login("anonymous")
            return FinishResult(redirect_url=pending.redirect_on_finish, outcome="anonymous")
        set_session_principal(session, token)
        increment_login("authenticated")
        return FinishResult(redirect_url=pending.redirect_on_finish, token=token)

    def authenticate(self, access_token: str) -> Optional[AuthenticatedToken]:
        """Map the platform user behind ``access_token`` onto a host principal.

        Returns ``None`` when the user holds none of the recognized roles.
        """

        config, transport = self._resolver.snapshot()
        user = fetch_user_info(config.api_base, access_token, transport)
        tiers = resolve_tiers(config.api_base, access_token, config.namespace, transport)
        token = self._synchronizer.sync(user.name, tiers)
        if token is not None:
            record_login(token)
        return token


__all__ = [
    "AuthorizationCodeFlow",
    "BearerCredential",
    "CALLBACK_PATH",
    "FinishResult",
    "LOGIN_URL",
    "OAuthFlowOrchestrator",
    "SCOPES",
    "build_callback_url",
    "is_absolute_url",
    "post_logout_url",
    "resolve_redirect_target",
]

"""Wire DTOs and HTTP calls against the cluster platform API.

Every call goes through a :class:`PlatformTransport`, an immutable bundle of
the TLS trust settings (or an injected ``httpx`` transport) that the
configuration resolver publishes.
"""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type, TypeVar, Union

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ProviderError, TransportFailure

logger = logging.getLogger(__name__)

API_PREFIX = "/oapi/v1"
USER_PATH = API_PREFIX + "/users/~"
ACCESS_REVIEW_PATH = API_PREFIX + "/subjectaccessreviews"
PROVIDER_METADATA_PATH = "/.well-known/oauth-authorization-server"

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class PlatformUser(BaseModel):
    """Response of ``GET /users/~``."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    full_name: Optional[str] = Field(default=None, alias="fullName")


class ProviderInfo(BaseModel):
    """OAuth authorization server metadata published by the platform."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    issuer: str
    authorization_endpoint: Optional[str] = None
    token_endpoint: Optional[str] = None


class AccessReviewResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    namespace: Optional[str] = None
    allowed: bool = False
    reason: Optional[str] = None


@dataclass(frozen=True)
class PlatformTransport:
    """How to reach the platform: trust settings plus an optional fixed transport.

    Instances are never mutated; a configuration refresh builds a new one and
    swaps the reference.
    """

    verify: Union[ssl.SSLContext, bool] = True
    transport: Optional[httpx.BaseTransport] = None
    trusts_cluster_ca: bool = False

    def client(self, token: Optional[str] = None) -> httpx.Client:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        kwargs: Dict[str, Any] = {"headers": headers, "verify": self.verify}
        if self.transport is not None:
            kwargs["transport"] = self.transport
        return httpx.Client(**kwargs)


DEFAULT_TRANSPORT = PlatformTransport()


def trusting_transport(ca_pem: str) -> PlatformTransport:
    """Return a transport that trusts the system roots plus ``ca_pem``."""

    context = ssl.create_default_context()
    context.load_verify_locations(cadata=ca_pem)
    return PlatformTransport(verify=context, trusts_cluster_ca=True)


def send(
    transport: PlatformTransport,
    method: str,
    url: str,
    *,
    token: Optional[str] = None,
    **kwargs: Any,
) -> httpx.Response:
    """Issue one request, translating failures into login errors."""

    try:
        with transport.client(token) as client:
            response = client.request(method, url, **kwargs)
    except httpx.HTTPError as exc:
        raise TransportFailure(f"{method} {url} failed: {exc}") from exc
    if response.status_code >= 400:
        logger.debug("%s %s returned HTTP %s", method, url, response.status_code)
        message = f"{method} {url} returned HTTP {response.status_code}"
        reason = _error_reason(response)
        if reason:
            message = f"{message}: {reason}"
        raise ProviderError(message, status_code=401 if response.status_code == 401 else None)
    return response


def _error_reason(response: httpx.Response) -> Optional[str]:
    """Return the OAuth ``error``/``error_description`` or platform ``message``."""

    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    description = payload.get("error_description")
    if error and description:
        return f"{error} ({description})"
    return error or payload.get("message")


def parse_model(response: httpx.Response, model: Type[_ModelT]) -> _ModelT:
    try:
        payload = response.json()
    except ValueError as exc:
        raise ProviderError(f"{response.request.url} returned invalid JSON") from exc
    if not isinstance(payload, dict):
        raise ProviderError(f"{response.request.url} did not return a JSON object")
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ProviderError(f"{response.request.url} returned an unexpected {model.__name__}: {exc}") from exc


def _join(api_base: str, path: str) -> str:
    return api_base.rstrip("/") + path


def fetch_user_info(api_base: str, token: str, transport: PlatformTransport) -> PlatformUser:
    """Return the platform user the bearer ``token`` belongs to."""

    response = send(transport, "GET", _join(api_base, USER_PATH), token=token)
    return parse_model(response, PlatformUser)


def fetch_provider_info(api_base: str, token: Optional[str], transport: PlatformTransport) -> ProviderInfo:
    response = send(transport, "GET", _join(api_base, PROVIDER_METADATA_PATH), token=token)
    return parse_model(response, ProviderInfo)


def post_access_review(
    api_base: str,
    token: str,
    namespace: Optional[str],
    verb: str,
    transport: PlatformTransport,
) -> AccessReviewResponse:
    """Ask the platform whether ``token``'s user may perform ``verb`` in ``namespace``."""

    body = {
        "kind": "SubjectAccessReview",
        "apiVersion": "v1",
        "namespace": namespace,
        "verb": verb,
    }
    response = send(transport, "POST", _join(api_base, ACCESS_REVIEW_PATH), token=token, json=body)
    return parse_model(response, AccessReviewResponse)


__all__ = [
    "ACCESS_REVIEW_PATH",
    "AccessReviewResponse",
    "DEFAULT_TRANSPORT",
    "PROVIDER_METADATA_PATH",
    "PlatformTransport",
    "PlatformUser",
    "ProviderInfo",
    "USER_PATH",
    "fetch_provider_info",
    "fetch_user_info",
    "parse_model",
    "post_access_review",
    "send",
    "trusting_transport",
]

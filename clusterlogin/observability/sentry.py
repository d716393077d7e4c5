import os
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, urlencode

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration

SCRUBBED = "[Filtered]"
# Query parameters of the login callback that must never leave the process.
SENSITIVE_QUERY_KEYS = frozenset({"code", "state", "access_token"})
SENSITIVE_HEADERS = frozenset({"authorization", "cookie"})


def _scrub_query(query: str) -> str:
    pairs = parse_qsl(query, keep_blank_values=True)
    return urlencode([(key, SCRUBBED if key in SENSITIVE_QUERY_KEYS else value) for key, value in pairs])


def scrub_event(event: Dict[str, Any], hint: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Strip authorization codes, state values and credentials from a Sentry event."""

    request = event.get("request")
    if not isinstance(request, dict):
        return event
    query = request.get("query_string")
    if isinstance(query, str) and query:
        request["query_string"] = _scrub_query(query)
    headers = request.get("headers")
    if isinstance(headers, dict):
        for name in list(headers):
            if name.lower() in SENSITIVE_HEADERS:
                headers[name] = SCRUBBED
    if "cookies" in request:
        request["cookies"] = SCRUBBED
    return event


def init_sentry(app) -> None:
    dsn = os.getenv("SENTRY_DSN")
    if not dsn:
        return
    sentry_sdk.init(
        dsn=dsn,
        integrations=[FastApiIntegration()],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0")),
        environment=os.getenv("SENTRY_ENVIRONMENT", "dev"),
        release=os.getenv("SENTRY_RELEASE"),
        send_default_pii=False,
        before_send=scrub_event,
    )

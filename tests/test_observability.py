from __future__ import annotations

import logging
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.syspath_prepend(str(Path(__file__).resolve().parents[1]))


def test_scrub_event_filters_login_callback_secrets():
    from clusterlogin.observability.sentry import scrub_event

    event = {
        "request": {
            "url": "https://ci.example.com/securityRealm/finishLogin",
            "query_string": "code=abc123&state=xyz&keep=1",
            "headers": {"Authorization": "Bearer t0k3n", "Accept": "text/html"},
            "cookies": {"clusterlogin_session": "sid"},
        }
    }

    scrubbed = scrub_event(event)

    request = scrubbed["request"]
    assert "abc123" not in request["query_string"]
    assert "xyz" not in request["query_string"]
    assert "keep=1" in request["query_string"]
    assert request["headers"]["Authorization"] == "[Filtered]"
    assert request["headers"]["Accept"] == "text/html"
    assert request["cookies"] == "[Filtered]"


def test_scrub_event_without_request_is_untouched():
    from clusterlogin.observability.sentry import scrub_event

    event = {"message": "boom"}
    assert scrub_event(event) == {"message": "boom"}


def test_bearer_redaction_filter():
    from clusterlogin.observability.logging import BearerRedactionFilter

    record = logging.LogRecord(
        "clusterlogin", logging.INFO, __file__, 1, "sent %s", ("Authorization: Bearer s3cr3t",), None
    )

    assert BearerRedactionFilter().filter(record) is True
    assert record.getMessage() == "sent Authorization: Bearer [redacted]"


def test_increment_login_rejects_unknown_outcome():
    from clusterlogin.observability.metrics import increment_login

    with pytest.raises(ValueError):
        increment_login("teleported")

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tests.factories import ISSUER, FakePlatform, write_service_account

IN_CLUSTER_ENV = {"KUBERNETES_SERVICE_HOST": "10.0.0.1", "KUBERNETES_SERVICE_PORT": "443"}


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.syspath_prepend(str(Path(__file__).resolve().parents[1]))
    from clusterlogin.auth.discovery import set_test_transport

    set_test_transport(None)
    try:
        yield
    finally:
        set_test_transport(None)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


def _explicit(sa_dir, **overrides):
    from clusterlogin.auth.discovery import ExplicitConfig

    return ExplicitConfig(service_account_dir=str(sa_dir), **overrides)


def test_explicit_config_treats_blank_values_as_unset():
    from clusterlogin.auth.discovery import ExplicitConfig

    explicit = ExplicitConfig.from_env(
        {
            "CLUSTER_CLIENT_ID": "  ",
            "CLUSTER_REDIRECT_URL": " https://oauth.example.com ",
            "CLUSTER_CLIENT_SECRET": "s3cret",
        }
    )

    assert explicit.client_id is None
    assert explicit.redirect_url == "https://oauth.example.com"
    assert explicit.client_secret == "s3cret"
    assert "s3cret" not in repr(explicit)


def test_merge_prefers_explicit_values():
    from clusterlogin.auth.discovery import DiscoveredDefaults, ExplicitConfig, merge_config

    discovered = DiscoveredDefaults(
        namespace="ci",
        service_account_name="jenkins",
        client_id="system:serviceaccount:ci:jenkins",
        client_secret="sa-token",
        redirect_url=ISSUER,
    )

    effective = merge_config(ExplicitConfig(client_id="custom-client"), discovered)
    assert effective.client_id == "custom-client"
    assert effective.client_secret == "sa-token"
    assert effective.redirect_base == ISSUER
    assert effective.api_base == "https://openshift.default.svc"
    assert effective.credential_source == "/run/secrets/kubernetes.io/serviceaccount"

    effective = merge_config(ExplicitConfig(server_prefix="https://api.cluster:8443"), discovered)
    assert effective.client_id == "system:serviceaccount:ci:jenkins"
    assert effective.api_base == "https://api.cluster:8443"


@pytest.mark.parametrize(
    ("user_name", "expected"),
    [
        ("system:serviceaccount:ci:jenkins", "jenkins"),
        ("system:serviceaccount:ci:", None),
        ("alice", None),
        ("system:serviceaccount:ci", None),
    ],
)
def test_account_name_from_user(user_name, expected):
    from clusterlogin.auth.discovery import account_name_from_user

    assert account_name_from_user(user_name) == expected


def test_discover_inside_cluster(tmp_path, platform):
    from clusterlogin.auth.discovery import discover, merge_config

    sa_dir = write_service_account(tmp_path / "sa")
    explicit = _explicit(sa_dir)

    resolution = discover(explicit, environ=IN_CLUSTER_ENV, test_transport=platform.transport)

    assert resolution.fully_discovered is True
    defaults = resolution.defaults
    assert defaults.namespace == "ci"
    assert defaults.service_account_name == "jenkins"
    assert defaults.client_id == "system:serviceaccount:ci:jenkins"
    assert defaults.client_secret == "sa-token"
    assert defaults.redirect_url == ISSUER

    effective = merge_config(explicit, defaults)
    assert effective.summary() == {
        "credential_source": str(sa_dir),
        "account_name": "jenkins",
        "api_base": "https://openshift.default.svc",
        "redirect_base": ISSUER,
        "client_id": "system:serviceaccount:ci:jenkins",
        "has_client_secret": True,
        "namespace": "ci",
    }
    user_lookup = platform.requests_to("/oapi/v1/users/~")[0]
    assert user_lookup.headers["Authorization"] == "Bearer sa-token"
    assert str(user_lookup.url) == "https://openshift.default.svc/oapi/v1/users/~"


def test_explicit_account_name_feeds_client_id(tmp_path, platform):
    from clusterlogin.auth.discovery import discover

    sa_dir = write_service_account(tmp_path / "sa")
    resolution = discover(
        _explicit(sa_dir, service_account_name="builder"),
        environ=IN_CLUSTER_ENV,
        test_transport=platform.transport,
    )

    assert resolution.defaults.client_id == "system:serviceaccount:ci:builder"


def test_missing_service_account_is_not_fatal(tmp_path, platform):
    from clusterlogin.auth.discovery import DEFAULT_TRANSPORT, discover

    resolution = discover(_explicit(tmp_path / "absent"), environ={}, test_transport=None)

    assert resolution.fully_discovered is False
    assert resolution.defaults.namespace is None
    assert resolution.defaults.client_id is None
    assert resolution.defaults.redirect_url is None
    assert resolution.transport is DEFAULT_TRANSPORT
    assert platform.requests == []


def test_explicit_settings_complete_discovery_outside_cluster(tmp_path, platform):
    from clusterlogin.auth.discovery import discover

    sa_dir = write_service_account(tmp_path / "sa", token=None)
    resolution = discover(
        _explicit(
            sa_dir,
            service_account_name="jenkins",
            client_secret="explicit-secret",
            redirect_url="https://oauth.example.com",
        ),
        environ={},
        test_transport=platform.transport,
    )

    assert resolution.fully_discovered is True
    assert resolution.defaults.client_secret is None
    # The explicit secret doubles as the bearer for discovery lookups.
    user_lookup = platform.requests_to("/oapi/v1/users/~")
    assert [request.headers.get("Authorization") for request in user_lookup] == ["Bearer explicit-secret"]


def test_unreachable_provider_leaves_discovery_incomplete(tmp_path, platform):
    from clusterlogin.auth.discovery import discover

    platform.provider_status = 503
    sa_dir = write_service_account(tmp_path / "sa")

    resolution = discover(_explicit(sa_dir), environ=IN_CLUSTER_ENV, test_transport=platform.transport)

    assert resolution.fully_discovered is False
    assert resolution.defaults.redirect_url is None
    assert resolution.defaults.namespace == "ci"


def test_unusable_ca_falls_back_to_default_trust(tmp_path):
    from clusterlogin.auth.discovery import DEFAULT_TRANSPORT, discover

    sa_dir = tmp_path / "sa"
    sa_dir.mkdir()
    (sa_dir / "ca.crt").write_text("not a certificate")

    resolution = discover(_explicit(sa_dir), environ={}, test_transport=None)

    assert resolution.transport is DEFAULT_TRANSPORT


def test_effective_config_require():
    from clusterlogin.auth.discovery import DiscoveredDefaults, ExplicitConfig, merge_config
    from clusterlogin.errors import ConfigIncomplete

    effective = merge_config(ExplicitConfig(client_secret="s3cret"), DiscoveredDefaults())

    assert effective.require("client_secret") == "s3cret"
    with pytest.raises(ConfigIncomplete) as excinfo:
        effective.require("redirect_base")
    assert "redirect_base" in excinfo.value.message
    assert "s3cret" not in repr(effective)
    assert "s3cret" not in str(effective.summary())


def test_resolver_discovers_once_until_refreshed(tmp_path, platform):
    from clusterlogin.auth.discovery import ConfigResolver, set_test_transport

    set_test_transport(platform.transport)
    sa_dir = write_service_account(tmp_path / "sa")
    resolver = ConfigResolver(_explicit(sa_dir), environ=IN_CLUSTER_ENV)

    config, complete = resolver.resolve()
    resolver.resolve()
    _ = resolver.transport
    assert complete is True
    assert config.client_id == "system:serviceaccount:ci:jenkins"
    assert len(platform.requests_to("/oapi/v1/users/~")) == 1

    (sa_dir / "namespace").write_text("other\n")
    config, _ = resolver.refresh()
    assert len(platform.requests_to("/oapi/v1/users/~")) == 2
    assert config.namespace == "other"
    assert config.client_id == "system:serviceaccount:other:jenkins"


def test_snapshot_pairs_config_with_its_transport(tmp_path, platform):
    from clusterlogin.auth.discovery import ConfigResolver, set_test_transport

    first_transport = platform.transport
    set_test_transport(first_transport)
    sa_dir = write_service_account(tmp_path / "sa")
    resolver = ConfigResolver(_explicit(sa_dir), environ=IN_CLUSTER_ENV)

    config, transport = resolver.snapshot()
    assert config.redirect_base == ISSUER
    assert transport.transport is first_transport

    replacement = FakePlatform(issuer="https://oauth-new.example.com")
    second_transport = replacement.transport
    set_test_transport(second_transport)

    config, transport = resolver.snapshot()
    assert transport.transport is first_transport

    config, transport = resolver.snapshot(refresh=True)
    assert config.redirect_base == "https://oauth-new.example.com"
    assert transport.transport is second_transport


def _fallback_records(caplog, message):
    return [record for record in caplog.records if record.getMessage().startswith(message)]


def test_fallback_logged_at_debug_outside_cluster(tmp_path, caplog):
    from clusterlogin.auth.discovery import discover

    with caplog.at_level(logging.DEBUG, logger="clusterlogin.auth.discovery"):
        discover(_explicit(tmp_path / "absent"), environ={}, test_transport=None)

    records = _fallback_records(caplog, "No service account token under")
    assert [record.levelno for record in records] == [logging.DEBUG]


def test_fallback_logged_at_info_with_environment_signals(tmp_path, caplog):
    from clusterlogin.auth.discovery import discover

    with caplog.at_level(logging.DEBUG, logger="clusterlogin.auth.discovery"):
        discover(_explicit(tmp_path / "absent"), environ=IN_CLUSTER_ENV, test_transport=None)

    records = _fallback_records(caplog, "No service account token under")
    assert [record.levelno for record in records] == [logging.INFO]


def test_fallback_logged_at_info_when_service_account_dir_exists(tmp_path, caplog):
    from clusterlogin.auth.discovery import discover

    sa_dir = write_service_account(tmp_path / "sa", token=None)

    with caplog.at_level(logging.DEBUG, logger="clusterlogin.auth.discovery"):
        discover(_explicit(sa_dir), environ={}, test_transport=None)

    records = _fallback_records(caplog, "No service account token under")
    assert [record.levelno for record in records] == [logging.INFO]

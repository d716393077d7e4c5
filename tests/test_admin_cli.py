from __future__ import annotations

import json
from pathlib import Path

import pytest

from tests.factories import FakePlatform, clear_config_caches, write_service_account


@pytest.fixture(autouse=True)
def _env(monkeypatch, tmp_path):
    monkeypatch.syspath_prepend(str(Path(__file__).resolve().parents[1]))
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.delenv("AUTHORIZATION_STRATEGY", raising=False)
    clear_config_caches()
    from clusterlogin.auth.discovery import set_test_transport

    try:
        yield
    finally:
        set_test_transport(None)
        clear_config_caches()


def test_show_matrix_prints_persisted_grants(capsys):
    from clusterlogin.admin_cli import main
    from clusterlogin.auth.matrix import GlobalMatrixPolicy, save_policy
    from clusterlogin.db import init_db

    init_db()
    save_policy(GlobalMatrixPolicy({"alice-view": ["Overall/Read", "Job/Read"]}))

    assert main(["show-matrix"]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output == {"project_scoped": False, "grants": {"alice-view": ["Job/Read", "Overall/Read"]}}


def test_show_config_masks_secret(monkeypatch, tmp_path, capsys):
    from clusterlogin.admin_cli import main
    from clusterlogin.auth.discovery import set_test_transport

    set_test_transport(FakePlatform().transport)
    monkeypatch.setenv("CLUSTER_SERVICE_ACCOUNT_DIR", str(write_service_account(tmp_path / "sa")))
    monkeypatch.setenv("CLUSTER_CLIENT_SECRET", "operator-secret")

    assert main(["show-config"]) == 0

    out = capsys.readouterr().out
    assert "operator-secret" not in out
    payload = json.loads(out)
    assert payload["config"]["has_client_secret"] is True
    assert payload["config"]["namespace"] == "ci"

"""Tests for HTTP Basic Auth middleware."""

import base64
import importlib
from collections.abc import Generator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import docksync.config as config_module
import docksync.main as main_module


def test_no_auth_when_password_not_set(client: TestClient):
    """Requests pass through when auth_password is None (disabled)."""
    resp = client.get("/api/devices")
    assert resp.status_code == 200


def test_health_endpoint_always_exempt(client: TestClient):
    """/health endpoint is always accessible without auth."""
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.fixture
def auth_client(engine, tmp_path, monkeypatch) -> Generator[TestClient, None, None]:
    """Test client with auth enabled."""
    monkeypatch.setattr(config_module, "_ENV_FILE", tmp_path / ".env")
    monkeypatch.setenv("DOCKSYNC_BACKEND", "mock")
    monkeypatch.setenv("DOCKSYNC_DISPLAY_SOURCE", "mock")
    monkeypatch.setenv("DOCKSYNC_REFRESH_INTERVAL", "3600")
    monkeypatch.setenv("DOCKSYNC_DISPLAY_POLL_INTERVAL", "3600")

    # Patch settings to enable auth BEFORE reloading main, which registers
    # the middleware at import time
    with patch("docksync.config.settings") as mock_settings:
        mock_settings.auth_username = "admin"
        mock_settings.auth_password = "secret"
        mock_settings.log_level = "info"
        mock_settings.host = "127.0.0.1"
        mock_settings.port = 8000

        importlib.reload(main_module)
        monkeypatch.setattr(main_module, "create_db_engine", lambda _path: engine)

        with TestClient(main_module.app) as c:
            yield c

    # Reload again to restore normal state
    monkeypatch.undo()
    importlib.reload(main_module)


def _basic(credentials: bytes) -> dict[str, str]:
    return {"Authorization": f"Basic {base64.b64encode(credentials).decode('utf-8')}"}


def test_auth_required_when_password_set(auth_client: TestClient):
    """401 returned when credentials missing and auth enabled."""
    resp = auth_client.get("/api/devices")
    assert resp.status_code == 401
    assert resp.headers["WWW-Authenticate"] == 'Basic realm="docksync"'


def test_wrong_credentials(auth_client: TestClient):
    """401 returned for wrong credentials."""
    assert auth_client.get("/api/devices", headers=_basic(b"wronguser:secret")).status_code == 401
    assert auth_client.get("/api/devices", headers=_basic(b"admin:wrongpass")).status_code == 401


def test_correct_credentials(auth_client: TestClient):
    """200 returned for correct credentials."""
    resp = auth_client.get("/api/devices", headers=_basic(b"admin:secret"))
    assert resp.status_code == 200
    assert len(resp.json()) == 3


def test_actions_protected(auth_client: TestClient):
    resp = auth_client.post("/api/devices/unpair-all")
    assert resp.status_code == 401


def test_malformed_auth_header(auth_client: TestClient):
    """401 returned for malformed Authorization header."""
    # Missing "Basic " prefix
    resp = auth_client.get("/api/devices", headers={"Authorization": "invalid"})
    assert resp.status_code == 401

    # Invalid base64
    resp = auth_client.get("/api/devices", headers={"Authorization": "Basic !!!"})
    assert resp.status_code == 401

    # Valid base64 but no colon separator
    resp = auth_client.get("/api/devices", headers=_basic(b"adminnocolon"))
    assert resp.status_code == 401


def test_health_with_auth_enabled(auth_client: TestClient):
    """/health is exempt even when auth is enabled."""
    resp = auth_client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_non_ascii_credentials_rejected_cleanly(auth_client: TestClient):
    resp = auth_client.get("/api/devices", headers=_basic("admin:sécret".encode()))
    assert resp.status_code == 401


class TestParseBasicCredentials:
    def test_valid(self):
        header = _basic(b"admin:pa:ss")["Authorization"]
        # Only the first colon separates username from password
        assert main_module._parse_basic_credentials(header) == ("admin", "pa:ss")

    @pytest.mark.parametrize(
        "header",
        [
            "",
            "Basic",
            "Bearer YWRtaW46c2VjcmV0",
            "Basic YWRtaW5ub2NvbG9u",  # "adminnocolon"
            "Basic //79",  # not UTF-8
        ],
    )
    def test_rejected(self, header):
        assert main_module._parse_basic_credentials(header) is None

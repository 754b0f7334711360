"""Tests for application settings."""

import pytest
from pydantic import ValidationError

import docksync.config as config_module
from docksync.config import Settings, load_config


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep a developer's .env and DOCKSYNC_* variables out of these tests."""
    monkeypatch.setattr(config_module, "_ENV_FILE", tmp_path / ".env")
    for name in ("BACKEND", "DISPLAY_SOURCE", "CONNECT_ATTEMPTS", "RETRY_DELAY"):
        monkeypatch.delenv(f"DOCKSYNC_{name}", raising=False)
    return tmp_path


class TestDefaults:
    def test_defaults(self):
        s = Settings()
        assert s.backend == "blueutil"
        assert s.blueutil_path == "/opt/homebrew/bin/blueutil"
        assert s.display_pair_attempts == 30
        assert s.connect_attempts == 5
        assert s.manual_pair_attempts == 1
        assert s.refresh_interval == 5.0
        assert s.auth_password is None


class TestBackend:
    def test_normalized(self):
        assert Settings(backend=" BluetoothCtl ").backend == "bluetoothctl"

    def test_unknown_backend(self):
        with pytest.raises(ValidationError):
            Settings(backend="iobluetooth")

    def test_unknown_display_source(self):
        with pytest.raises(ValidationError):
            Settings(display_source="wayland")

    def test_display_source_mock(self):
        assert Settings(display_source="mock").display_source == "mock"


class TestValidation:
    @pytest.mark.parametrize(
        "field", ["display_pair_attempts", "connect_attempts", "manual_pair_attempts"]
    )
    def test_attempts_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            Settings(**{field: 0})

    @pytest.mark.parametrize("field", ["refresh_interval", "retry_delay", "settle_delay"])
    def test_intervals_must_not_be_negative(self, field):
        with pytest.raises(ValidationError):
            Settings(**{field: -1})

    def test_zero_delay_allowed(self):
        assert Settings(retry_delay=0).retry_delay == 0


class TestSources:
    def test_env_overrides_default(self, monkeypatch):
        monkeypatch.setenv("DOCKSYNC_CONNECT_ATTEMPTS", "7")
        assert load_config().connect_attempts == 7

    def test_env_file(self, isolated_env):
        (isolated_env / ".env").write_text("DOCKSYNC_BACKEND=mock\n")
        assert load_config().backend == "mock"

    def test_env_overrides_env_file(self, isolated_env, monkeypatch):
        (isolated_env / ".env").write_text("DOCKSYNC_RETRY_DELAY=3\n")
        monkeypatch.setenv("DOCKSYNC_RETRY_DELAY", "0.5")
        assert load_config().retry_delay == 0.5

"""Application configuration via environment variables and .env file."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings
from pydantic_settings.sources import DotEnvSettingsSource, PydanticBaseSettingsSource

# Path to .env file (patch in tests to use tmp_path / ".env")
_ENV_FILE: Path = Path(".env")

BACKEND_MODES = ("blueutil", "bluetoothctl", "mock")
DISPLAY_SOURCES = ("auto", "system_profiler", "xrandr", "mock")


class Settings(BaseSettings):
    model_config = {
        "env_prefix": "DOCKSYNC_",
        "env_file_encoding": "utf-8",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Load .env from _ENV_FILE (patchable in tests)
        return (
            init_settings,
            env_settings,
            DotEnvSettingsSource(
                settings_cls,
                env_file=_ENV_FILE,
                env_file_encoding="utf-8",
            ),
            file_secret_settings,
        )

    # Database (key-value store for the device list)
    db_path: Path = Path("./data/docksync.db")

    # Logging
    log_level: str = "info"

    # Bluetooth adapter: blueutil (macOS), bluetoothctl (BlueZ) or mock
    backend: str = "blueutil"
    blueutil_path: str = "/opt/homebrew/bin/blueutil"
    bluetoothctl_path: str = "bluetoothctl"
    peripherals_only: bool = True

    # Display topology
    display_source: str = "auto"
    display_poll_interval: float = 2.0

    # Reconciliation
    refresh_interval: float = 5.0  # seconds between periodic refreshes

    # Pairing workflow
    display_pair_attempts: int = 30
    connect_attempts: int = 5
    manual_pair_attempts: int = 1
    retry_delay: float = 1.0
    settle_delay: float = 1.0  # pause between pairing and connecting
    command_timeout: float = 60.0

    # Authentication (optional, omit to disable)
    auth_username: str = "admin"
    auth_password: str | None = None

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    @field_validator("backend", mode="before")
    @classmethod
    def parse_backend(cls, v: object) -> str:
        mode = str(v).strip().lower()
        if mode not in BACKEND_MODES:
            raise ValueError(f"Unknown backend {v!r}, expected one of {BACKEND_MODES}")
        return mode

    @field_validator("display_source", mode="before")
    @classmethod
    def parse_display_source(cls, v: object) -> str:
        mode = str(v).strip().lower()
        if mode not in DISPLAY_SOURCES:
            raise ValueError(f"Unknown display source {v!r}, expected one of {DISPLAY_SOURCES}")
        return mode

    @field_validator(
        "display_pair_attempts", "connect_attempts", "manual_pair_attempts"
    )
    @classmethod
    def at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError("attempt counts must be at least 1")
        return v

    @field_validator(
        "display_poll_interval",
        "refresh_interval",
        "retry_delay",
        "settle_delay",
        "command_timeout",
    )
    @classmethod
    def non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("intervals must not be negative")
        return v


def load_config() -> Settings:
    """Load configuration from .env and environment (env overrides .env)."""
    return Settings()


settings = Settings()

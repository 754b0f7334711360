"""docksync application entrypoint."""

import base64
import logging
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from docksync.bluetooth.base import BluetoothAdapter
from docksync.config import Settings, load_config, settings
from docksync.database import create_db_engine, init_db
from docksync.display.base import DisplaySource
from docksync.display.monitor import DisplayMonitor
from docksync.registry.store import DeviceStore, KeyValueStore
from docksync.service import DockSyncService

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


def _create_adapter(cfg: Settings) -> BluetoothAdapter:
    """Factory: instantiate the configured Bluetooth adapter."""
    if cfg.backend == "bluetoothctl":
        from docksync.bluetooth.bluetoothctl import BluetoothctlAdapter

        return BluetoothctlAdapter(
            bluetoothctl_path=cfg.bluetoothctl_path,
            peripherals_only=cfg.peripherals_only,
            command_timeout=cfg.command_timeout,
        )
    if cfg.backend == "mock":
        from docksync.bluetooth.mock import MockBluetooth

        return MockBluetooth()

    from docksync.bluetooth.blueutil import BlueutilAdapter

    if cfg.peripherals_only:
        logger.debug("blueutil does not report device class; peripherals_only has no effect")
    return BlueutilAdapter(blueutil_path=cfg.blueutil_path, command_timeout=cfg.command_timeout)


def _create_display_source(cfg: Settings) -> DisplaySource:
    """Factory: instantiate the configured display probe."""
    if cfg.display_source == "system_profiler":
        from docksync.display.sources import SystemProfilerDisplaySource

        return SystemProfilerDisplaySource()
    if cfg.display_source == "xrandr":
        from docksync.display.sources import XrandrDisplaySource

        return XrandrDisplaySource()
    if cfg.display_source == "mock":
        from docksync.display.mock import MockDisplaySource

        return MockDisplaySource()

    from docksync.display.sources import default_display_source

    return default_display_source()


def build_service(cfg: Settings, store: DeviceStore) -> DockSyncService:
    """Construct the service and all of its components from configuration."""
    monitor = DisplayMonitor(_create_display_source(cfg), poll_interval=cfg.display_poll_interval)
    return DockSyncService(
        adapter=_create_adapter(cfg),
        store=store,
        display_monitor=monitor,
        refresh_interval=cfg.refresh_interval,
        display_pair_attempts=cfg.display_pair_attempts,
        connect_attempts=cfg.connect_attempts,
        manual_pair_attempts=cfg.manual_pair_attempts,
        retry_delay=cfg.retry_delay,
        settle_delay=cfg.settle_delay,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application startup/shutdown lifecycle."""
    cfg = load_config()
    engine = create_db_engine(cfg.db_path)
    init_db(engine)
    logger.info("Database initialized at %s", cfg.db_path)

    service = build_service(cfg, DeviceStore(KeyValueStore(engine)))
    await service.start()
    app.state.service = service

    yield

    await service.stop()
    engine.dispose()


app = FastAPI(
    title="docksync",
    description="Pair Bluetooth peripherals when an external display is attached",
    version="0.1.0",
    lifespan=lifespan,
)


_UNAUTHENTICATED_PATHS = frozenset({"/health"})


def _parse_basic_credentials(header: str) -> tuple[str, str] | None:
    """Extract (username, password) from a Basic Authorization header."""
    scheme, _, encoded = header.partition(" ")
    if scheme != "Basic" or not encoded:
        return None
    try:
        username, password = base64.b64decode(encoded).decode("utf-8").split(":", 1)
    except (ValueError, UnicodeDecodeError):
        return None
    return username, password


class BasicAuthMiddleware(BaseHTTPMiddleware):
    """Require the configured credentials on every API request."""

    def __init__(self, app, username: str, password: str):
        super().__init__(app)
        self.username = username
        self.password = password

    async def dispatch(self, request, call_next):
        if request.url.path in _UNAUTHENTICATED_PATHS:
            return await call_next(request)

        credentials = _parse_basic_credentials(request.headers.get("Authorization", ""))
        if credentials is None or not self._matches(*credentials):
            logger.debug("Rejected unauthenticated request to %s", request.url.path)
            return Response(
                content="Unauthorized",
                status_code=401,
                headers={"WWW-Authenticate": 'Basic realm="docksync"'},
            )
        return await call_next(request)

    def _matches(self, username: str, password: str) -> bool:
        # Compare both so timing does not reveal which one was wrong
        username_ok = secrets.compare_digest(username.encode(), self.username.encode())
        password_ok = secrets.compare_digest(password.encode(), self.password.encode())
        return username_ok and password_ok


if settings.auth_password:
    app.add_middleware(
        BasicAuthMiddleware, username=settings.auth_username, password=settings.auth_password
    )
    logger.info("HTTP Basic Auth enabled")


# Register routers
from docksync.api.routes import router as api_router  # noqa: E402

app.include_router(api_router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


def main() -> None:
    import uvicorn

    logger.info("Starting docksync on %s:%d", settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()

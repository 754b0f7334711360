"""Base interfaces for Bluetooth enumeration and pairing backends."""

import enum
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime


class BluetoothOperation(enum.StrEnum):
    pair = "pair"
    connect = "connect"
    unpair = "unpair"


@dataclass
class PairedDevice:
    """A device as reported by live enumeration."""

    id: str
    name: str
    is_connected: bool


class NotificationKind(enum.StrEnum):
    connected = "connected"
    disconnected = "disconnected"
    paired = "paired"
    unpaired = "unpaired"


@dataclass
class BluetoothNotification:
    """A backend-reported change to one device's pairing or connection."""

    kind: NotificationKind
    device_id: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class EnumerationSource(ABC):
    """Synchronous view of the currently paired devices."""

    @abstractmethod
    def list_paired_devices(self) -> list[PairedDevice] | None:
        """Return paired devices, or None if the platform could not be queried.

        An empty list means nothing is paired; None means the answer is unknown.
        """


class PairingBackend(ABC):
    """Runs pair/connect/unpair out-of-process and returns raw output text."""

    @abstractmethod
    async def execute(self, device_id: str, operation: BluetoothOperation) -> str:
        """Run one operation. Output text is not proof of success."""


class BluetoothAdapter(EnumerationSource, PairingBackend):
    """A platform adapter providing both contracts plus change notifications."""

    name: str = "adapter"

    def __init__(self) -> None:
        self._callbacks: list[Callable[[BluetoothNotification], None]] = []

    async def start(self) -> None:
        """Start watching for backend notifications, if the platform has any."""

    async def stop(self) -> None:
        """Stop watching for notifications."""

    def on_event(self, callback: Callable[[BluetoothNotification], None]) -> None:
        """Register a callback for backend notifications."""
        self._callbacks.append(callback)

    def _emit(self, notification: BluetoothNotification) -> None:
        for cb in self._callbacks:
            cb(notification)

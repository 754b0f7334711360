"""Mock Bluetooth adapter for development and testing.

Simulates a small set of peripherals in memory. Pairing and connecting
can be made to fail a configurable number of times per device, and every
state change is reported through on_event like a real backend would.
"""

import logging
from dataclasses import dataclass

from docksync.bluetooth.base import (
    BluetoothAdapter,
    BluetoothNotification,
    BluetoothOperation,
    NotificationKind,
    PairedDevice,
)
from docksync.registry.store import normalize_mac

logger = logging.getLogger(__name__)

_DEFAULT_DEVICES = [
    ("AC:49:DB:10:20:30", "Magic Keyboard"),
    ("AC:49:DB:40:50:60", "Magic Mouse"),
    ("AC:49:DB:70:80:90", "Magic Trackpad"),
]


@dataclass
class SimulatedDevice:
    id: str
    name: str
    paired: bool = False
    connected: bool = False
    pair_failures: int = 0  # remaining attempts that will fail
    connect_failures: int = 0


class MockBluetooth(BluetoothAdapter):
    """In-memory Bluetooth adapter with scriptable failures."""

    name = "mock"

    def __init__(self, devices: list[tuple[str, str]] | None = None, paired: bool = True) -> None:
        super().__init__()
        self.devices: dict[str, SimulatedDevice] = {}
        for address, name in _DEFAULT_DEVICES if devices is None else devices:
            self.add_device(address, name, paired=paired)
        self.calls: list[tuple[str, BluetoothOperation]] = []
        self.available = True

    def add_device(
        self, address: str, name: str, paired: bool = True, connected: bool = False
    ) -> SimulatedDevice:
        device = SimulatedDevice(
            id=normalize_mac(address), name=name, paired=paired, connected=connected
        )
        self.devices[device.id] = device
        return device

    def fail_next(self, address: str, operation: BluetoothOperation, times: int = 1) -> None:
        """Make the next ``times`` pair or connect attempts for a device fail."""
        device = self.devices[normalize_mac(address)]
        if operation == BluetoothOperation.pair:
            device.pair_failures = times
        elif operation == BluetoothOperation.connect:
            device.connect_failures = times

    def list_paired_devices(self) -> list[PairedDevice] | None:
        if not self.available:
            return None
        return [
            PairedDevice(id=d.id, name=d.name, is_connected=d.connected)
            for d in self.devices.values()
            if d.paired
        ]

    async def execute(self, device_id: str, operation: BluetoothOperation) -> str:
        self.calls.append((device_id, operation))
        device = self.devices.get(normalize_mac(device_id))
        if device is None:
            return f"Device {device_id} not found: error 0x04"

        if operation == BluetoothOperation.pair:
            if device.pair_failures > 0:
                device.pair_failures -= 1
                return "Pairing Failed: Timeout"
            device.paired = True
            self._emit(BluetoothNotification(kind=NotificationKind.paired, device_id=device.id))
            return f"Paired {device.id}"

        if operation == BluetoothOperation.connect:
            if not device.paired or device.connect_failures > 0:
                device.connect_failures = max(device.connect_failures - 1, 0)
                return "Failed to connect: 0x0e"
            device.connected = True
            self._emit(
                BluetoothNotification(kind=NotificationKind.connected, device_id=device.id)
            )
            return f"Connected {device.id}"

        device.paired = False
        device.connected = False
        self._emit(BluetoothNotification(kind=NotificationKind.unpaired, device_id=device.id))
        return ""

"""Linux (BlueZ) Bluetooth adapter driving ``bluetoothctl``.

Enumeration lists paired devices and reads ``bluetoothctl info`` for each
one. A long-running ``bluetoothctl`` process is watched for ``[CHG]`` and
``[DEL]`` lines so pairing and connection changes trigger a refresh
without waiting for the timer.
"""

import asyncio
import logging
import re

from docksync.bluetooth.base import (
    BluetoothAdapter,
    BluetoothNotification,
    BluetoothOperation,
    NotificationKind,
    PairedDevice,
)
from docksync.registry.store import normalize_mac
from docksync.shell import run_command, run_command_async

logger = logging.getLogger(__name__)

_DEVICE_LINE_RE = re.compile(r"^Device ([0-9A-Fa-f:]{17}) ?(.*)$")
_CHANGE_RE = re.compile(r"\[CHG\] Device ([0-9A-Fa-f:]{17}) (Connected|Paired): (yes|no)")
_DELETE_RE = re.compile(r"\[DEL\] Device ([0-9A-Fa-f:]{17})")
_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]|\x01|\x02")

# Bluetooth Core major device class "Peripheral" (mouse, keyboard, trackpad)
_MAJOR_CLASS_PERIPHERAL = 0x05

_COMMANDS = {
    BluetoothOperation.pair: "pair",
    BluetoothOperation.connect: "connect",
    BluetoothOperation.unpair: "remove",
}


def parse_device_list(output: str) -> list[tuple[str, str]]:
    """Parse ``Device <addr> <name>`` lines into (address, name) pairs."""
    devices = []
    for line in output.splitlines():
        match = _DEVICE_LINE_RE.match(_ANSI_RE.sub("", line).strip())
        if match:
            address, name = match.groups()
            devices.append((normalize_mac(address), name.strip()))
    return devices


def parse_info(output: str) -> dict[str, str]:
    """Parse ``bluetoothctl info`` output into a key/value dict."""
    info: dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.strip().partition(": ")
        if sep and key not in info:
            info[key] = value.strip()
    return info


def is_peripheral(info: dict[str, str]) -> bool:
    """Check the major device class, falling back to the icon name.

    Devices reporting neither (common for BLE) are treated as peripherals.
    """
    device_class = info.get("Class")
    if device_class:
        try:
            return (int(device_class, 16) >> 8) & 0x1F == _MAJOR_CLASS_PERIPHERAL
        except ValueError:
            pass
    icon = info.get("Icon")
    if icon:
        return icon.startswith("input-")
    return True


def parse_event_line(line: str) -> BluetoothNotification | None:
    """Turn one line of the bluetoothctl event stream into a notification."""
    line = _ANSI_RE.sub("", line)
    match = _CHANGE_RE.search(line)
    if match:
        address, prop, value = match.groups()
        if prop == "Connected":
            kind = NotificationKind.connected if value == "yes" else NotificationKind.disconnected
        else:
            kind = NotificationKind.paired if value == "yes" else NotificationKind.unpaired
        return BluetoothNotification(kind=kind, device_id=normalize_mac(address))
    match = _DELETE_RE.search(line)
    if match:
        return BluetoothNotification(
            kind=NotificationKind.unpaired, device_id=normalize_mac(match.group(1))
        )
    return None


class BluetoothctlAdapter(BluetoothAdapter):
    """Enumerates and pairs devices through BlueZ's bluetoothctl."""

    name = "bluetoothctl"

    def __init__(
        self,
        bluetoothctl_path: str = "bluetoothctl",
        peripherals_only: bool = True,
        command_timeout: float = 60.0,
        restart_delay: float = 5.0,
    ) -> None:
        super().__init__()
        self.bluetoothctl_path = bluetoothctl_path
        self.peripherals_only = peripherals_only
        self.command_timeout = command_timeout
        self.restart_delay = restart_delay
        self._running = False
        self._task: asyncio.Task[None] | None = None

    def list_paired_devices(self) -> list[PairedDevice] | None:
        output = run_command([self.bluetoothctl_path, "devices", "Paired"])
        if output is None:
            return None

        devices: list[PairedDevice] = []
        for address, name in parse_device_list(output):
            info_output = run_command([self.bluetoothctl_path, "info", address]) or ""
            info = parse_info(info_output)
            if self.peripherals_only and not is_peripheral(info):
                continue
            devices.append(
                PairedDevice(
                    id=address,
                    name=info.get("Alias") or info.get("Name") or name or "Unknown Device",
                    is_connected=info.get("Connected") == "yes",
                )
            )
        return devices

    async def execute(self, device_id: str, operation: BluetoothOperation) -> str:
        command = [self.bluetoothctl_path, _COMMANDS[operation], device_id]
        return await run_command_async(command, timeout=self.command_timeout)

    async def start(self) -> None:
        logger.info("Starting bluetoothctl event monitor")
        self._running = True
        self._task = asyncio.create_task(self._monitor_loop())

    async def stop(self) -> None:
        logger.info("Stopping bluetoothctl event monitor")
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _monitor_loop(self) -> None:
        """Keep a bluetoothctl process open and forward its change events."""
        while self._running:
            try:
                process = await asyncio.create_subprocess_exec(
                    self.bluetoothctl_path,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.DEVNULL,
                )
                try:
                    assert process.stdout is not None
                    async for raw in process.stdout:
                        notification = parse_event_line(raw.decode("utf-8", errors="replace"))
                        if notification is not None:
                            logger.info(
                                "Bluetooth device %s: %s",
                                notification.device_id,
                                notification.kind,
                            )
                            self._emit(notification)
                    logger.warning("bluetoothctl event stream ended")
                finally:
                    if process.returncode is None:
                        process.kill()
                        await process.wait()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "bluetoothctl monitor error, restarting in %ss", self.restart_delay
                )
            if self._running:
                await asyncio.sleep(self.restart_delay)

"""macOS Bluetooth adapter driving the ``blueutil`` command-line tool.

Enumeration uses ``blueutil --paired --format json``; operations use
``blueutil --pair|--connect|--unpair <address>``. blueutil has no event
stream, so changes are picked up by the periodic refresh.
"""

import json
import logging

from docksync.bluetooth.base import BluetoothAdapter, BluetoothOperation, PairedDevice
from docksync.registry.store import normalize_mac
from docksync.shell import run_command, run_command_async

logger = logging.getLogger(__name__)


def parse_paired_json(output: str) -> list[PairedDevice] | None:
    """Parse ``blueutil --paired --format json`` output.

    Returns None when the output is not a JSON list.
    """
    try:
        entries = json.loads(output)
    except json.JSONDecodeError:
        logger.warning("blueutil returned invalid JSON")
        return None
    if not isinstance(entries, list):
        logger.warning("Unexpected blueutil output: %r", output[:200])
        return None

    devices: list[PairedDevice] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        address = entry.get("address")
        if not address:
            logger.warning("Found device with no address, skipping")
            continue
        devices.append(
            PairedDevice(
                id=normalize_mac(address),
                name=entry.get("name") or "Unknown Device",
                is_connected=bool(entry.get("connected", False)),
            )
        )
    return devices


class BlueutilAdapter(BluetoothAdapter):
    """Enumerates and pairs devices through blueutil."""

    name = "blueutil"

    def __init__(self, blueutil_path: str, command_timeout: float = 60.0) -> None:
        super().__init__()
        self.blueutil_path = blueutil_path
        self.command_timeout = command_timeout

    def list_paired_devices(self) -> list[PairedDevice] | None:
        output = run_command([self.blueutil_path, "--paired", "--format", "json"])
        if output is None:
            return None
        return parse_paired_json(output)

    async def execute(self, device_id: str, operation: BluetoothOperation) -> str:
        # blueutil accepts either separator; it reports addresses with dashes
        command = [self.blueutil_path, f"--{operation.value}", device_id]
        return await run_command_async(command, timeout=self.command_timeout)

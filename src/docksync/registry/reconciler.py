"""Merging live enumeration into the known device list, and refresh triggers.

The merge never deletes: devices that are not currently paired keep their
stored metadata so the user can still see and manage them.
"""

import asyncio
import logging
from datetime import datetime

from docksync.bluetooth.base import BluetoothNotification, PairedDevice
from docksync.events import EventChannel, RefreshRequested
from docksync.registry.models import Device

logger = logging.getLogger(__name__)


def merge_devices(
    known: list[Device], live: list[PairedDevice], now: datetime
) -> list[Device]:
    """Merge live devices into the known list and return the merged list.

    Known devices seen live get a fresh name, connection flag and last_seen
    but keep is_saved. Unknown live devices are added as saved. Known devices
    missing from the live list are left untouched.
    """
    merged = {d.id: d for d in known}
    for paired in live:
        existing = merged.get(paired.id)
        if existing is not None:
            existing.name = paired.name
            existing.is_connected = paired.is_connected
            existing.last_seen = now
        else:
            logger.info("New device discovered: %s (%s)", paired.name, paired.id)
            merged[paired.id] = Device(
                id=paired.id,
                name=paired.name,
                is_saved=True,  # newly seen devices are managed by default
                last_seen=now,
                is_connected=paired.is_connected,
            )

    return list(merged.values())


def sort_devices(devices: list[Device]) -> list[Device]:
    """Connected devices first, then most recently seen first."""
    return sorted(devices, key=lambda d: (not d.is_connected, -d.last_seen.timestamp()))


class Reconciler:
    """Requests registry refreshes on a timer and on backend notifications.

    Requests go onto the shared EventChannel; the update loop that consumes
    the channel is the only place refresh() actually runs.
    """

    def __init__(self, channel: EventChannel, interval: float = 5.0) -> None:
        self.channel = channel
        self.interval = interval
        self._running = False
        self._task: asyncio.Task[None] | None = None

    def request(self, reason: str) -> bool:
        return self.channel.publish(RefreshRequested(reason=reason))

    def handle_notification(self, notification: BluetoothNotification) -> None:
        """BluetoothAdapter.on_event callback."""
        logger.info(
            "Bluetooth device status changed: %s %s",
            notification.kind,
            notification.device_id or "",
        )
        self.request(f"notification:{notification.kind}")

    async def start(self) -> None:
        logger.info("Starting reconciler (interval=%ss)", self.interval)
        self._running = True
        self._task = asyncio.create_task(self._timer_loop())

    async def stop(self) -> None:
        logger.info("Stopping reconciler")
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _timer_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval)
            self.request("timer")

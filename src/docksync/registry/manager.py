"""The device registry: canonical device list, persistence, and change feed.

All mutation goes through DeviceRegistry methods, which run on the event
loop thread. Enumeration runs in a worker thread, but its result is merged
back on the loop. Readers receive copies, so no caller can hold a Device
that silently diverges from the registry.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from docksync.bluetooth.base import EnumerationSource, PairedDevice
from docksync.registry.models import (
    ChangeKind,
    Device,
    OperationStatus,
    RegistryChange,
    is_valid_transition,
)
from docksync.registry.reconciler import merge_devices, sort_devices
from docksync.registry.store import DeviceStore, normalize_mac

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DeviceRegistry:
    def __init__(
        self,
        source: EnumerationSource,
        store: DeviceStore,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._source = source
        self._store = store
        self._clock = clock
        self._devices: list[Device] = []
        self._callbacks: list[Callable[[RegistryChange], None]] = []

    # --- Observation ---

    def on_change(self, callback: Callable[[RegistryChange], None]) -> None:
        """Subscribe to device list and operation status changes."""
        self._callbacks.append(callback)

    def _publish(self, change: RegistryChange) -> None:
        for cb in self._callbacks:
            try:
                cb(change)
            except Exception:
                logger.exception("Registry subscriber failed on %s change", change.kind)

    # --- Queries ---

    @property
    def devices(self) -> list[Device]:
        """Snapshot of all known devices in presentation order."""
        return [d.model_copy() for d in self._devices]

    def get(self, device_id: str) -> Device | None:
        device = self._find(device_id)
        return device.model_copy() if device is not None else None

    def saved_devices(self) -> list[Device]:
        """Snapshot of devices the user wants managed automatically."""
        return [d.model_copy() for d in self._devices if d.is_saved]

    def status_of(self, device_id: str) -> OperationStatus | None:
        device = self._find(device_id)
        return device.operation_status if device is not None else None

    def _find(self, device_id: str) -> Device | None:
        device_id = normalize_mac(device_id)
        for device in self._devices:
            if device.id == device_id:
                return device
        return None

    # --- Mutations ---

    def load(self) -> None:
        """Replace the in-memory list with the persisted one (startup only)."""
        self._devices = sort_devices(self._store.load_devices())
        self._publish(RegistryChange(kind=ChangeKind.devices))

    async def _live_devices(self) -> list[PairedDevice] | None:
        """Enumerate off the event loop. None means enumeration is unavailable."""
        try:
            return await asyncio.to_thread(self._source.list_paired_devices)
        except Exception:
            logger.exception("Device enumeration failed")
            return None

    async def refresh(self) -> list[Device]:
        """Merge live enumeration, re-sort, persist, and return a snapshot.

        Unavailable enumeration leaves the registry as it is for this cycle.
        """
        live = await self._live_devices()
        if live is None:
            logger.warning("Paired devices unavailable, skipping refresh")
            return self.devices

        # Merge against the list as it is now; it may have changed while enumerating
        merged = merge_devices(self._devices, live, self._clock())
        self._devices = sort_devices(merged)
        self._persist()
        logger.debug(
            "Refreshed registry: %d live, %d known", len(live), len(self._devices)
        )
        self._publish(RegistryChange(kind=ChangeKind.devices))
        return self.devices

    def toggle_saved(self, device_id: str) -> bool | None:
        """Flip is_saved. Returns the new value, or None for unknown ids."""
        device = self._find(device_id)
        if device is None:
            return None
        device.is_saved = not device.is_saved
        logger.info(
            "Device %s is %s", device.id, "saved" if device.is_saved else "no longer saved"
        )
        self._persist()
        self._publish(RegistryChange(kind=ChangeKind.devices, device_id=device.id))
        return device.is_saved

    async def remove_device(self, device_id: str) -> bool:
        """Forget a device. Refused while the device is still paired.

        Also refused when enumeration is unavailable, since pairing cannot
        be ruled out.
        """
        if self._find(device_id) is None:
            return False
        live = await self._live_devices()
        device = self._find(device_id)
        if device is None:
            return False
        if live is None:
            logger.warning("Not removing %s: paired devices unavailable", device.id)
            return False
        if any(p.id == device.id for p in live):
            logger.info("Not removing %s: device is still paired", device.id)
            return False
        self._devices = [d for d in self._devices if d.id != device.id]
        logger.info("Removed device %s (%s)", device.name, device.id)
        self._persist()
        self._publish(RegistryChange(kind=ChangeKind.devices, device_id=device.id))
        return True

    def set_operation_status(self, device_id: str, status: OperationStatus) -> bool:
        """Set a device's operation status.

        Setting the current value is a no-op. Returns False for unknown ids
        and for transitions the status machine does not allow.
        """
        device = self._find(device_id)
        if device is None:
            return False
        previous = device.operation_status
        if previous == status:
            return True
        if not is_valid_transition(previous, status):
            logger.warning(
                "Rejected status change for %s: %s -> %s", device.id, previous, status
            )
            return False
        device.operation_status = status
        self._publish(
            RegistryChange(
                kind=ChangeKind.status,
                device_id=device.id,
                previous=previous,
                current=status,
            )
        )
        return True

    def _persist(self) -> None:
        try:
            self._store.save(self._devices)
        except Exception:
            logger.exception("Failed to persist device list")

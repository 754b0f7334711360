"""Per-device pairing workflows triggered by display changes or by the user.

Each workflow holds a per-device lock for its whole duration, so two
workflows for the same device never talk to the backend at the same time.
A workflow requested while another one runs for that device waits its turn
(FIFO), which means the device ends up in the state asked for last.
Workflows for different devices run concurrently in one TaskGroup.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from docksync.bluetooth.base import BluetoothOperation
from docksync.pairing.retry import RetryDriver
from docksync.registry.manager import DeviceRegistry
from docksync.registry.models import OperationStatus

logger = logging.getLogger(__name__)

Workflow = Callable[..., Awaitable[bool]]


class Orchestrator:
    def __init__(
        self,
        registry: DeviceRegistry,
        retry: RetryDriver,
        display_pair_attempts: int = 30,
        connect_attempts: int = 5,
        manual_pair_attempts: int = 1,
        retry_delay: float = 1.0,
        settle_delay: float = 1.0,
    ) -> None:
        self.registry = registry
        self.retry = retry
        self.display_pair_attempts = display_pair_attempts
        self.connect_attempts = connect_attempts
        self.manual_pair_attempts = manual_pair_attempts
        self.retry_delay = retry_delay
        self.settle_delay = settle_delay
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}  # holders plus waiters per device
        self._busy: set[str] = set()

    def busy_devices(self) -> set[str]:
        """Ids of devices with a workflow currently running."""
        return set(self._busy)

    # --- Display events ---

    async def handle_display_change(self, has_external_display: bool) -> dict[str, bool]:
        """Pair and connect (display attached) or unpair (detached) saved devices."""
        if has_external_display:
            logger.info("External display connected: pairing saved devices")
            results = await self._for_each_saved(
                self._pair_then_connect, self.display_pair_attempts
            )
        else:
            logger.info("External display disconnected: unpairing saved devices")
            results = await self._for_each_saved(self._unpair)
        await self.registry.refresh()
        return results

    # --- Manual controls ---

    async def pair_all_saved_devices(self) -> dict[str, bool]:
        results = await self._for_each_saved(self._pair_then_connect, self.manual_pair_attempts)
        await self.registry.refresh()
        return results

    async def unpair_all_saved_devices(self) -> dict[str, bool]:
        results = await self._for_each_saved(self._unpair)
        await self.registry.refresh()
        return results

    async def pair_device(self, device_id: str) -> bool:
        success = await self._run(device_id, self._pair, self.manual_pair_attempts)
        if success:
            await self.registry.refresh()
        return success

    async def connect_device(self, device_id: str) -> bool:
        success = await self._run(device_id, self._connect)
        await self.registry.refresh()
        return success

    async def unpair_device(self, device_id: str) -> bool:
        success = await self._run(device_id, self._unpair)
        await self.registry.refresh()
        return success

    # --- Plumbing ---

    @asynccontextmanager
    async def _exclusive(self, device_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(device_id, asyncio.Lock())
        if lock.locked():
            logger.info("Workflow for %s already running, queueing", device_id)
        self._lock_users[device_id] = self._lock_users.get(device_id, 0) + 1
        try:
            async with lock:
                self._busy.add(device_id)
                try:
                    yield
                finally:
                    self._busy.discard(device_id)
        finally:
            self._lock_users[device_id] -= 1
            if not self._lock_users[device_id]:
                # Nobody holds or waits for it any more
                del self._lock_users[device_id]
                del self._locks[device_id]

    async def _run(self, device_id: str, workflow: Workflow, *args: object) -> bool:
        """Run one workflow for a known device under its lock.

        Never raises: failures are logged and the status returns to idle.
        """
        device = self.registry.get(device_id)
        if device is None:
            logger.info("Ignoring request for unknown device %s", device_id)
            return False
        if not device.id:
            logger.warning("Skipping device with no address")
            return False

        async with self._exclusive(device.id):
            try:
                return await workflow(device.id, *args)
            except Exception:
                logger.exception("Workflow %s failed for %s", workflow.__name__, device.id)
                return False
            finally:
                self.registry.set_operation_status(device.id, OperationStatus.idle)

    async def _for_each_saved(self, workflow: Workflow, *args: object) -> dict[str, bool]:
        saved = self.registry.saved_devices()
        if not saved:
            logger.info("No saved devices")
            return {}
        async with asyncio.TaskGroup() as group:
            tasks = {d.id: group.create_task(self._run(d.id, workflow, *args)) for d in saved}
        return {device_id: task.result() for device_id, task in tasks.items()}

    # --- Workflows (called with the device lock held) ---

    async def _pair(self, device_id: str, attempts: int) -> bool:
        self.registry.set_operation_status(device_id, OperationStatus.pairing)
        return await self.retry.attempt(
            BluetoothOperation.pair, device_id, attempts, self.retry_delay
        )

    async def _connect(self, device_id: str) -> bool:
        self.registry.set_operation_status(device_id, OperationStatus.connecting)
        success = await self.retry.attempt(
            BluetoothOperation.connect, device_id, self.connect_attempts, self.retry_delay
        )
        if success:
            logger.info("Successfully connected device: %s", device_id)
        else:
            logger.error("Failed to connect device: %s", device_id)
        return success

    async def _pair_then_connect(self, device_id: str, pair_attempts: int) -> bool:
        if not await self._pair(device_id, pair_attempts):
            return False
        # pairing -> connecting is not a valid edge; pass through idle
        self.registry.set_operation_status(device_id, OperationStatus.idle)
        await asyncio.sleep(self.settle_delay)
        return await self._connect(device_id)

    async def _unpair(self, device_id: str) -> bool:
        self.registry.set_operation_status(device_id, OperationStatus.unpairing)
        logger.info("Unpairing device: %s", device_id)
        result = await self.retry.executor.run(BluetoothOperation.unpair, device_id)
        logger.info("Done unpairing device: %s", device_id)
        return result.success

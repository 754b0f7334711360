"""Wires the registry, orchestrator and event sources onto one update loop.

The update loop is the single consumer of the EventChannel. Refreshes run
inline on it; display changes are handed to the orchestrator as tracked
background tasks so a slow backend never delays the next refresh.
"""

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any

from docksync.bluetooth.base import BluetoothAdapter
from docksync.display.monitor import DisplayMonitor
from docksync.events import DisplayChanged, EventChannel, RefreshRequested
from docksync.pairing.executor import OperationExecutor
from docksync.pairing.orchestrator import Orchestrator
from docksync.pairing.retry import RetryDriver
from docksync.registry.manager import DeviceRegistry
from docksync.registry.reconciler import Reconciler
from docksync.registry.store import DeviceStore

logger = logging.getLogger(__name__)


class DockSyncService:
    def __init__(
        self,
        adapter: BluetoothAdapter,
        store: DeviceStore,
        display_monitor: DisplayMonitor,
        refresh_interval: float = 5.0,
        display_pair_attempts: int = 30,
        connect_attempts: int = 5,
        manual_pair_attempts: int = 1,
        retry_delay: float = 1.0,
        settle_delay: float = 1.0,
    ) -> None:
        self.adapter = adapter
        self.channel = EventChannel()
        self.registry = DeviceRegistry(adapter, store)
        self.executor = OperationExecutor(adapter, adapter)
        self.orchestrator = Orchestrator(
            self.registry,
            RetryDriver(self.executor),
            display_pair_attempts=display_pair_attempts,
            connect_attempts=connect_attempts,
            manual_pair_attempts=manual_pair_attempts,
            retry_delay=retry_delay,
            settle_delay=settle_delay,
        )
        self.reconciler = Reconciler(self.channel, interval=refresh_interval)
        self.display_monitor = display_monitor
        self._tasks: set[asyncio.Task[Any]] = set()
        self._loop_task: asyncio.Task[None] | None = None

        adapter.on_event(self.reconciler.handle_notification)
        display_monitor.on_change(self.handle_display_change)

    # --- Lifecycle ---

    async def start(self) -> None:
        logger.info("Starting docksync service (adapter=%s)", self.adapter.name)
        self.registry.load()
        await self.registry.refresh()
        await self.display_monitor.prime()
        self._loop_task = asyncio.create_task(self._update_loop())
        await self.adapter.start()
        await self.reconciler.start()
        await self.display_monitor.start()

    async def stop(self) -> None:
        logger.info("Stopping docksync service")
        await self.display_monitor.stop()
        await self.reconciler.stop()
        await self.adapter.stop()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
        logger.info("docksync service stopped")

    # --- Inputs ---

    def handle_display_change(self, has_external_display: bool) -> None:
        """DisplayMonitor.on_change callback."""
        self.channel.publish(DisplayChanged(has_external_display=has_external_display))

    def request_refresh(self, reason: str = "manual") -> bool:
        return self.reconciler.request(reason)

    def submit(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
        """Run a coroutine as a tracked background task, cancelled on stop()."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_finished)
        return task

    def _task_finished(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Background task %s failed", task.get_name(), exc_info=task.exception()
            )

    # --- Update loop ---

    async def _update_loop(self) -> None:
        while True:
            event = await self.channel.get()
            try:
                if isinstance(event, RefreshRequested):
                    logger.debug("Refreshing devices (%s)", event.reason)
                    await self.registry.refresh()
                elif isinstance(event, DisplayChanged):
                    self.submit(
                        self.orchestrator.handle_display_change(event.has_external_display),
                        name=f"display-{'on' if event.has_external_display else 'off'}",
                    )
            except Exception:
                logger.exception("Error handling %s", type(event).__name__)
            finally:
                self.channel.task_done()

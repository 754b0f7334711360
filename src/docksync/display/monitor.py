"""Polls a DisplaySource and reports external display connect/disconnect.

Only flips of the boolean "external display attached" state are reported;
repeated identical readings and failed probes are ignored.
"""

import asyncio
import logging
from collections.abc import Callable

from docksync.display.base import DisplaySource

logger = logging.getLogger(__name__)


class DisplayMonitor:
    def __init__(self, source: DisplaySource, poll_interval: float = 2.0) -> None:
        self.source = source
        self.poll_interval = poll_interval
        self._callbacks: list[Callable[[bool], None]] = []
        self._state: bool | None = None
        self._running = False
        self._task: asyncio.Task[None] | None = None

    @property
    def has_external_display(self) -> bool | None:
        """Last known state; None until the first successful probe."""
        return self._state

    def on_change(self, callback: Callable[[bool], None]) -> None:
        self._callbacks.append(callback)

    async def prime(self) -> bool | None:
        """Record the current state without notifying anyone."""
        state = await asyncio.to_thread(self.source.has_external_display)
        if state is not None:
            self._state = state
        logger.info("Initial external display state: %s", self._state)
        return self._state

    async def check(self) -> bool:
        """Probe once. Returns True if the state flipped and callbacks fired."""
        state = await asyncio.to_thread(self.source.has_external_display)
        if state is None:
            logger.debug("Display probe failed, keeping previous state")
            return False
        if state == self._state:
            return False

        previous, self._state = self._state, state
        logger.info("External display %s", "connected" if state else "disconnected")
        if previous is None:
            # First successful reading after a failed prime is not a change
            return False
        for cb in self._callbacks:
            try:
                cb(state)
            except Exception:
                logger.exception("Display change callback failed")
        return True

    async def start(self) -> None:
        logger.info(
            "Starting display monitor (%s, interval=%ss)", self.source.name, self.poll_interval
        )
        self._running = True
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        logger.info("Stopping display monitor")
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

    async def _poll_loop(self) -> None:
        while self._running:
            try:
                await self.check()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Display monitor error")

            await asyncio.sleep(self.poll_interval)

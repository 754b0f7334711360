"""Events flowing through the service's single update channel."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

logger = logging.getLogger(__name__)


@dataclass
class RefreshRequested:
    """Ask the update loop to reconcile the registry with live enumeration."""

    reason: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class DisplayChanged:
    """The external display attached state flipped."""

    has_external_display: bool
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


Event = RefreshRequested | DisplayChanged


class EventChannel:
    """FIFO of events with refresh coalescing.

    At most one RefreshRequested is queued at a time: a burst of timer
    ticks and backend notifications results in a single refresh.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._refresh_queued = False

    def publish(self, event: Event) -> bool:
        """Enqueue an event. Returns False if it was coalesced away."""
        if isinstance(event, RefreshRequested):
            if self._refresh_queued:
                logger.debug("Refresh already queued, dropping request (%s)", event.reason)
                return False
            self._refresh_queued = True
        self._queue.put_nowait(event)
        return True

    async def get(self) -> Event:
        event = await self._queue.get()
        if isinstance(event, RefreshRequested):
            self._refresh_queued = False
        return event

    def task_done(self) -> None:
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every published event has been processed."""
        await self._queue.join()

    def qsize(self) -> int:
        return self._queue.qsize()

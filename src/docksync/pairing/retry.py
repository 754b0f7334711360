"""Bounded retry loop around OperationExecutor."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from docksync.bluetooth.base import BluetoothOperation
from docksync.pairing.executor import OperationExecutor

logger = logging.getLogger(__name__)

_VERBS = {
    BluetoothOperation.pair: "Pairing",
    BluetoothOperation.connect: "Connecting",
    BluetoothOperation.unpair: "Unpairing",
}


class RetryDriver:
    def __init__(
        self,
        executor: OperationExecutor,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.executor = executor
        self._sleep = sleep

    async def attempt(
        self,
        operation: BluetoothOperation,
        device_id: str,
        max_attempts: int,
        delay: float,
    ) -> bool:
        """Run up to ``max_attempts`` sequential attempts.

        Returns True on the first verified success; sleeps ``delay`` between
        attempts but not after the last one.
        """
        verb = _VERBS[operation]
        for attempt in range(1, max_attempts + 1):
            logger.info("%s %s (attempt %d/%d)", verb, device_id, attempt, max_attempts)
            result = await self.executor.run(operation, device_id)
            if result.success:
                logger.info("%s %s succeeded", verb, device_id)
                return True

            logger.warning("%s %s failed: %s", verb, device_id, result.reason)
            if attempt < max_attempts:
                logger.info("Retrying in %s seconds...", delay)
                await self._sleep(delay)

        logger.error("All %d attempts failed: %s %s", max_attempts, verb, device_id)
        return False

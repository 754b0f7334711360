"""Single pair/connect/unpair attempts and their success judgement.

Backend output is only used to explain failures. Pair and connect succeed
only when live enumeration confirms the new state afterwards.
"""

import asyncio
import logging
from dataclasses import dataclass

from docksync.bluetooth.base import BluetoothOperation, EnumerationSource, PairingBackend

logger = logging.getLogger(__name__)

ERROR_PATTERNS = (
    "error",
    "Failed",
    "Timeout",
    "0x",  # hex error codes
)


def is_error_output(output: str) -> bool:
    """Check backend output against the known error patterns."""
    return any(pattern in output for pattern in ERROR_PATTERNS)


@dataclass
class AttemptResult:
    """Outcome of one backend invocation."""

    success: bool
    output: str
    reason: str = ""


class OperationExecutor:
    def __init__(self, backend: PairingBackend, source: EnumerationSource) -> None:
        self.backend = backend
        self.source = source

    async def run(self, operation: BluetoothOperation, device_id: str) -> AttemptResult:
        """Invoke the backend once and judge the result."""
        try:
            output = await self.backend.execute(device_id, operation)
        except Exception as e:
            logger.exception("Backend %s failed for %s", operation, device_id)
            return AttemptResult(success=False, output="", reason=f"backend raised {e!r}")

        output = output or ""
        logger.info("Command output: %r", output.strip())

        if operation == BluetoothOperation.unpair:
            # Fire-and-forget: the next refresh confirms the device is gone
            if is_error_output(output):
                return AttemptResult(success=False, output=output, reason="error output")
            return AttemptResult(success=True, output=output)

        if await self._verify(operation, device_id):
            return AttemptResult(success=True, output=output)

        if not output.strip():
            reason = "empty output"
        elif is_error_output(output):
            reason = "error output"
        else:
            reason = "state not confirmed"
        return AttemptResult(success=False, output=output, reason=reason)

    async def _verify(self, operation: BluetoothOperation, device_id: str) -> bool:
        try:
            paired = await asyncio.to_thread(self.source.list_paired_devices)
        except Exception:
            logger.exception("Enumeration failed while verifying %s", device_id)
            return False
        if paired is None:
            logger.warning("Enumeration unavailable while verifying %s", device_id)
            return False

        match = next((d for d in paired if d.id == device_id), None)
        if operation == BluetoothOperation.pair:
            return match is not None
        return match is not None and match.is_connected

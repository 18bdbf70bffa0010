"""
Single-consumer continuation channel used for manual hand-off.
"""

import asyncio
from typing import Optional

from edubot.error_handling.exceptions import RunStoppedError


class ContinuationGate:
    """
    Lets a suspended run wait for exactly one external continue signal.

    ``arm`` opens the gate before the waiting party announces itself, so a
    signal sent from an event handler is not lost. A signal with no armed
    wait is dropped. ``cancel`` wakes the waiter with ``RunStoppedError``.
    """

    def __init__(self) -> None:
        self._waiter: Optional[asyncio.Future] = None

    @property
    def is_waiting(self) -> bool:
        return self._waiter is not None and not self._waiter.done()

    def arm(self) -> None:
        if self.is_waiting:
            raise RuntimeError("A continuation wait is already pending")
        self._waiter = asyncio.get_running_loop().create_future()

    async def wait(self, timeout_ms: Optional[int] = None) -> bool:
        """
        Suspend until signalled.

        Returns:
            True when signalled, False when ``timeout_ms`` elapsed first

        Raises:
            RunStoppedError: The gate was cancelled
        """
        if self._waiter is None:
            self.arm()
        waiter = self._waiter
        try:
            if timeout_ms is None:
                await waiter
            else:
                await asyncio.wait_for(waiter, timeout_ms / 1000)
        except asyncio.TimeoutError:
            return False
        finally:
            if self._waiter is waiter:
                self._waiter = None
        return True

    def signal(self) -> bool:
        """Release the pending wait. Returns False when nothing was waiting."""
        if not self.is_waiting:
            return False
        self._waiter.set_result(True)
        return True

    def disarm(self) -> None:
        """Drop a pending wait that nobody will consume."""
        if self.is_waiting:
            self._waiter.cancel()
        self._waiter = None

    def cancel(self, reason: str = "Workflow run was stopped") -> bool:
        """Abort the pending wait with ``RunStoppedError``."""
        if not self.is_waiting:
            return False
        self._waiter.set_exception(RunStoppedError(reason))
        return True

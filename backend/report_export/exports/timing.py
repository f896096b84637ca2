"""
Clock used by the poll and retry loops.

Both loops only ever read monotonic time and wait for a delay that a
cancellation event may cut short. Tests substitute a fake clock with the
same two methods.
"""

import asyncio
import time
from typing import Optional


class AsyncioClock:
    """Wall-clock timing on the running event loop."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def wait(self, delay: float, cancel: Optional[asyncio.Event] = None) -> bool:
        """
        Suspend for delay seconds.

        Returns True if the cancel event was set before the delay elapsed.
        """
        delay = max(delay, 0.0)
        if cancel is None:
            await asyncio.sleep(delay)
            return False

        if cancel.is_set():
            return True

        try:
            await asyncio.wait_for(cancel.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True


default_clock = AsyncioClock()

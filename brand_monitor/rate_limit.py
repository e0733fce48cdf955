"""
Process-wide gate spacing out calls to an external registry.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


class RateLimiter:
    """
    Guarantees a minimum delay between consecutive outbound calls.

    Callers are serialized through a lock, so concurrent checks for
    different monitoring items still queue up behind one another. ``clock``
    returns seconds and ``sleep`` waits that many seconds; both can be
    swapped in tests to simulate elapsed time.
    """

    def __init__(
        self,
        delay_seconds: float,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.delay_seconds = max(0.0, delay_seconds)
        self._clock = clock
        self._sleep = sleep
        self._last_request: Optional[float] = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_milliseconds(cls, delay_ms: int, **kwargs) -> "RateLimiter":
        return cls(delay_ms / 1000.0, **kwargs)

    async def wait(self) -> None:
        """Block until the next call is allowed, then claim the slot."""
        async with self._lock:
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                remaining = self.delay_seconds - elapsed
                if remaining > 0:
                    await self._sleep(remaining)
            self._last_request = self._clock()

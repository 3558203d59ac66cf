"""Clock source used by rooms for elapsed time and tick scheduling."""

import asyncio
import time


class Clock:
    """Millisecond clock with an awaitable sleep."""

    def now_ms(self) -> int:
        raise NotImplementedError

    async def sleep_ms(self, millis: int) -> None:
        raise NotImplementedError


class SystemClock(Clock):
    """Monotonic process clock backed by the running event loop."""

    def now_ms(self) -> int:
        return int(time.monotonic() * 1000)

    async def sleep_ms(self, millis: int) -> None:
        await asyncio.sleep(millis / 1000)

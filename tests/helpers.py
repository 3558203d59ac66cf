"""In-memory stand-ins for the clock and client sockets."""

import asyncio

from shotclock.clock import Clock


async def settle(rounds: int = 20):
    """Let woken tasks run to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class ManualClock(Clock):
    """Clock that only moves when a test advances it.

    ``lag_ms`` is added to every sleep to simulate late timer callbacks.
    """

    def __init__(self, start_ms: int = 1_000_000, lag_ms: int = 0):
        self.current = start_ms
        self.lag_ms = lag_ms
        self._sleepers: list[tuple[int, int, asyncio.Future]] = []
        self._seq = 0

    def now_ms(self) -> int:
        return self.current

    async def sleep_ms(self, millis: int) -> None:
        future = asyncio.get_running_loop().create_future()
        self._seq += 1
        self._sleepers.append((self.current + millis + self.lag_ms, self._seq, future))
        await future

    async def advance(self, millis: int):
        target = self.current + millis
        await settle()
        while True:
            due = [s for s in self._sleepers if not s[2].done() and s[0] <= target]
            if not due:
                break
            wake_ms, _, future = min(due)
            self.current = wake_ms
            future.set_result(None)
            await settle()
        self._sleepers = [s for s in self._sleepers if not s[2].done()]
        self.current = target
        await settle()


class FakeWebSocket:
    def __init__(self, fail: bool = False):
        self.sent: list[str] = []
        self.fail = fail
        self.closed: int | None = None

    async def send_text(self, message: str):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str | None = None):
        self.closed = code

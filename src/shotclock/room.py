"""
Room timer state machine.

One authoritative shot clock per room. Every public coroutine takes the
room lock; ``_``-prefixed helpers assume it is already held. Ticks are
scheduled on whole-second boundaries of the remaining time so the
displayed seconds never drift from wall time.
"""

import asyncio
import contextlib
import logging
from datetime import UTC, datetime

from fastapi import WebSocket
from pydantic import BaseModel

from shotclock.clock import Clock, SystemClock
from shotclock.config import settings
from shotclock.protocol import (
    HORN,
    Command,
    CommandAction,
    Mode,
    countdown_frame,
    mode_frame,
    round_seconds,
    running_frame,
)
from shotclock.security import PinHash

logger = logging.getLogger(__name__)

# ============================================================
# CONSTANTS
# ============================================================

MAX_CLIENTS_PER_ROOM = 100
HORN_THRESHOLD_MS = 2000
TICK_MS = 1000
CLOSE_SEND_FAILED = 1011


# ============================================================
# MODELS
# ============================================================


def _format_ts(dt: datetime | None) -> str | None:
    """Format a UTC datetime as ISO 8601 with Z suffix."""
    if dt is None:
        return None
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


class RoomResponse(BaseModel):
    name: str
    mode: Mode
    label: str
    running: bool
    remaining_seconds: int
    initial_shotclock_seconds: int
    timeout_seconds: int
    quarter_seconds: int
    connected_clients: int
    created_at: str


# ============================================================
# ROOM CLASS
# ============================================================


class Room:
    """Server-authoritative shot clock shared by a room's connections."""

    def __init__(
        self,
        name: str,
        pin_hash: PinHash,
        clock: Clock | None = None,
        initial_shotclock_seconds: int | None = None,
        timeout_seconds: int | None = None,
        quarter_seconds: int | None = None,
        keepalive_seconds: int | None = None,
    ):
        self.name = name
        self._pin = pin_hash
        self.clock = clock or SystemClock()

        self.initial_shotclock_seconds = (
            initial_shotclock_seconds or settings.INITIAL_SHOTCLOCK_SECONDS
        )
        self.timeout_seconds = timeout_seconds or settings.TIMEOUT_SECONDS
        self.quarter_seconds = quarter_seconds or settings.QUARTER_SECONDS
        self.keepalive_ms = (keepalive_seconds or settings.KEEPALIVE_SECONDS) * 1000

        self.mode = Mode.NORMAL
        self.running = False
        self.remaining_ms = self.initial_shotclock_seconds * 1000
        self.saved_remaining_ms: int | None = None
        self.last_action_ms = self.clock.now_ms()
        # Game clock is not tracked yet; always sent as 0
        self.game_time = 0
        self.created_at = datetime.now(UTC)

        # Joined WebSocket sessions, in join order
        self.clients: dict[str, WebSocket] = {}

        # Pending next-second tick
        self._task: asyncio.Task | None = None
        # Idle countdown push
        self._keepalive_task: asyncio.Task | None = None

        self._lock = asyncio.Lock()

    def check_pin(self, pin: str) -> bool:
        return self._pin.matches(pin)

    def live_remaining_ms(self) -> int:
        """Remaining time including wall time elapsed since the last tick."""
        if not self.running:
            return self.remaining_ms
        elapsed = self.clock.now_ms() - self.last_action_ms
        return max(0, self.remaining_ms - elapsed)

    def to_response(self) -> RoomResponse:
        return RoomResponse(
            name=self.name,
            mode=self.mode,
            label=self.mode.label,
            running=self.running,
            remaining_seconds=round_seconds(self.live_remaining_ms()),
            initial_shotclock_seconds=self.initial_shotclock_seconds,
            timeout_seconds=self.timeout_seconds,
            quarter_seconds=self.quarter_seconds,
            connected_clients=len(self.clients),
            created_at=_format_ts(self.created_at),
        )

    # --------------------------------------------------------
    # Sessions
    # --------------------------------------------------------

    async def join(self, client_id: str, websocket: WebSocket) -> bool:
        """Register a session and bring it up to date."""
        async with self._lock:
            if len(self.clients) >= MAX_CLIENTS_PER_ROOM:
                return False

            self.clients[client_id] = websocket

            await self._send_to_client(client_id, running_frame(self.running))
            await self._send_to_client(
                client_id, countdown_frame(self.game_time, self.live_remaining_ms())
            )
            await self._send_to_client(client_id, mode_frame(self.mode))

            self._sync_keepalive()
            return True

    async def leave(self, client_id: str):
        """Remove a session. An unobserved room stops all timer activity."""
        async with self._lock:
            self.clients.pop(client_id, None)
            await self._after_departure()

    async def broadcast(self, message: str):
        """Send message to all joined sessions."""
        disconnected = []

        for client_id, ws in list(self.clients.items()):
            try:
                await ws.send_text(message)
            except Exception:
                disconnected.append(client_id)

        if disconnected:
            await self._drop_clients(disconnected)

    async def _send_to_client(self, client_id: str, message: str):
        """Send message to specific session."""
        if client_id in self.clients:
            try:
                await self.clients[client_id].send_text(message)
            except Exception:
                await self._drop_clients([client_id])

    async def _drop_clients(self, client_ids: list[str]):
        """Forget sessions whose socket failed and close them."""
        for client_id in client_ids:
            ws = self.clients.pop(client_id, None)
            if ws is None:
                continue
            logger.warning(
                "Dropping client %s from room %s after failed send", client_id, self.name
            )
            with contextlib.suppress(Exception):
                await ws.close(code=CLOSE_SEND_FAILED, reason="Send failed")

        await self._after_departure()

    async def _after_departure(self):
        if not self.clients:
            if await self._pause():
                logger.info("Room %s empty, clock paused", self.name)
        self._sync_keepalive()

    # --------------------------------------------------------
    # Commands
    # --------------------------------------------------------

    async def handle(self, command: Command):
        """Apply one parsed client command."""
        action = command.action
        if action == CommandAction.START:
            await self.start()
        elif action == CommandAction.PAUSE:
            await self.pause()
        elif action == CommandAction.RESET:
            await self.reset()
        elif action == CommandAction.REWIND:
            await self.rewind()
        elif action == CommandAction.UPDATE_TIME:
            await self.adjust_time(command.value)
        elif action == CommandAction.SET_INITIAL_SHOTCLOCK:
            await self.set_initial_shotclock(command.value)
        elif action == CommandAction.SET_TIMEOUT:
            await self.set_timeout_duration(command.value)
        elif action == CommandAction.SET_QUARTER:
            await self.set_quarter_duration(command.value)
        elif action == CommandAction.HORN:
            await self.horn()
        elif action == CommandAction.TIMEOUT:
            await self.timeout()
        elif action == CommandAction.QUARTER:
            await self.quarter_break()

    async def start(self) -> bool:
        """Start the countdown."""
        async with self._lock:
            return await self._start()

    async def pause(self) -> bool:
        """Pause the countdown."""
        async with self._lock:
            return await self._pause()

    async def reset(self):
        """Back to the configured shot clock, leaving any timeout or break."""
        async with self._lock:
            await self._reset()

    async def timeout(self):
        async with self._lock:
            await self._enter_mode(Mode.TIMEOUT, self.timeout_seconds)

    async def quarter_break(self):
        async with self._lock:
            await self._enter_mode(Mode.QUARTER_BREAK, self.quarter_seconds)

    async def rewind(self) -> bool:
        """Restore the value saved at the last reset, timeout or quarter break."""
        async with self._lock:
            if self.saved_remaining_ms is None:
                return False

            self._fold_elapsed()
            if self.mode != Mode.NORMAL:
                self.mode = Mode.NORMAL
                await self.broadcast(mode_frame(self.mode))

            self.remaining_ms = self.saved_remaining_ms
            await self._retime()
            await self._broadcast_countdown()
            return True

    async def adjust_time(self, delta_seconds: int):
        """Add (or with a negative delta, remove) whole seconds."""
        async with self._lock:
            self._fold_elapsed()
            self.remaining_ms = max(0, self.remaining_ms + delta_seconds * 1000)
            await self._retime()
            await self._broadcast_countdown()

    async def set_initial_shotclock(self, seconds: int):
        async with self._lock:
            self.initial_shotclock_seconds = seconds
            # Only while stopped; a running clock keeps its value
            if not self.running:
                await self._reset()

    async def set_timeout_duration(self, seconds: int):
        async with self._lock:
            self.timeout_seconds = seconds

    async def set_quarter_duration(self, seconds: int):
        async with self._lock:
            self.quarter_seconds = seconds

    async def horn(self) -> bool:
        """Sound the horn unless the clock is about to expire."""
        async with self._lock:
            if self.live_remaining_ms() <= HORN_THRESHOLD_MS:
                return False
            await self.broadcast(HORN)
            return True

    async def close(self):
        """Cancel scheduled work. Called on shutdown."""
        async with self._lock:
            self._cancel_tick()
            self.running = False
            if self._keepalive_task:
                self._keepalive_task.cancel()
                self._keepalive_task = None

    # --------------------------------------------------------
    # Transitions (lock held)
    # --------------------------------------------------------

    async def _start(self) -> bool:
        if self.running:
            return False

        self.running = True
        self.last_action_ms = self.clock.now_ms()
        self._schedule_tick()
        self._sync_keepalive()

        logger.info("Start %s at %dms", self.name, self.remaining_ms)
        await self.broadcast(running_frame(True))
        return True

    async def _pause(self) -> bool:
        if not self.running:
            return False

        self._cancel_tick()
        self._fold_elapsed()
        self.running = False
        self._sync_keepalive()

        logger.info("Pause %s at %dms", self.name, self.remaining_ms)
        await self.broadcast(running_frame(False))
        await self._broadcast_countdown()
        return True

    async def _reset(self):
        self._fold_elapsed()
        buzzer = False

        if self.mode != Mode.NORMAL:
            self.mode = Mode.NORMAL
            await self.broadcast(mode_frame(self.mode))
        else:
            self.saved_remaining_ms = self.remaining_ms
            buzzer = self.remaining_ms == 0

        self.remaining_ms = self.initial_shotclock_seconds * 1000
        await self._retime()
        await self._broadcast_countdown()

        if buzzer:
            await self._start()

    async def _enter_mode(self, mode: Mode, seconds: int):
        await self._pause()

        if self.mode == Mode.NORMAL:
            self.saved_remaining_ms = self.remaining_ms
        self.mode = mode
        await self.broadcast(mode_frame(mode))

        self.remaining_ms = seconds * 1000
        self.last_action_ms = self.clock.now_ms()
        await self._broadcast_countdown()

        await self._start()

    async def _tick(self):
        now = self.clock.now_ms()
        self.remaining_ms -= now - self.last_action_ms
        self.last_action_ms = now

        if self.remaining_ms <= 0:
            self.remaining_ms = 0
            await self._expire()
        else:
            self._schedule_tick()

        logger.debug("Shot clock remaining in %s: %dms", self.name, self.remaining_ms)
        await self._broadcast_countdown()

    async def _expire(self):
        self._cancel_tick()
        self.running = False
        self._sync_keepalive()
        logger.info("Shot clock expired in %s", self.name)
        await self.broadcast(running_frame(False))

    async def _broadcast_countdown(self):
        await self.broadcast(countdown_frame(self.game_time, self.remaining_ms))

    def _fold_elapsed(self):
        """Charge wall time spent running since the last action."""
        now = self.clock.now_ms()
        if self.running:
            self.remaining_ms = max(0, self.remaining_ms - (now - self.last_action_ms))
        self.last_action_ms = now

    # --------------------------------------------------------
    # Scheduling (lock held)
    # --------------------------------------------------------

    def next_tick_delay_ms(self) -> int:
        """Delay until remaining time lands on a whole second."""
        return self.remaining_ms % TICK_MS or TICK_MS

    def _schedule_tick(self):
        self._task = asyncio.create_task(self._run(self.next_tick_delay_ms()))

    def _cancel_tick(self):
        if self._task:
            self._task.cancel()
            self._task = None

    async def _retime(self):
        """Re-align a running clock after its value changed; a clock at 0 stops."""
        if not self.running:
            return
        if self.remaining_ms == 0:
            await self._expire()
        else:
            self._cancel_tick()
            self._schedule_tick()

    def _sync_keepalive(self):
        wanted = bool(self.clients) and not self.running
        if wanted and self._keepalive_task is None:
            self._keepalive_task = asyncio.create_task(self._keep_alive())
        elif not wanted and self._keepalive_task is not None:
            self._keepalive_task.cancel()
            self._keepalive_task = None

    async def _run(self, delay_ms: int):
        """Sleep until the next tick, then advance the countdown."""
        try:
            await self.clock.sleep_ms(delay_ms)
            async with self._lock:
                self._task = None
                await self._tick()
        except asyncio.CancelledError:
            pass

    async def _keep_alive(self):
        """Re-send the stopped countdown so idle displays self-heal."""
        try:
            while True:
                await self.clock.sleep_ms(self.keepalive_ms)
                async with self._lock:
                    await self._broadcast_countdown()
        except asyncio.CancelledError:
            pass

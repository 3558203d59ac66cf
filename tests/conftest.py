"""Shared fixtures for room tests."""

import pytest
from helpers import FakeWebSocket, ManualClock

from shotclock.room import Room
from shotclock.security import PinHash


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
async def room(clock):
    room = Room(
        "court1",
        PinHash("1234"),
        clock=clock,
        initial_shotclock_seconds=30,
        timeout_seconds=60,
        quarter_seconds=120,
        keepalive_seconds=10,
    )
    yield room
    await room.close()


@pytest.fixture
async def ws(room):
    """A joined session with the join frames already discarded."""
    socket = FakeWebSocket()
    await room.join("client_a", socket)
    socket.sent.clear()
    return socket

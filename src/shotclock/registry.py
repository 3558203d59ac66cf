"""
Process-wide room registry.

Rooms are created on the first request that carries a PIN and are never
removed. PIN hashing runs in a worker thread; the map is re-checked after
hashing and the insert itself never awaits, so a name is created once.
"""

import asyncio
import logging

from shotclock.clock import Clock
from shotclock.protocol import Access
from shotclock.room import Room
from shotclock.security import PinHash

logger = logging.getLogger(__name__)

MAX_ROOMS = 1000
MAX_ROOM_NAME_LENGTH = 64


class RoomRegistry:
    """Maps room names to rooms. Insert-only."""

    def __init__(self, clock: Clock | None = None):
        self.rooms: dict[str, Room] = {}
        self.clock = clock

    async def open(self, name: str, pin: str | None) -> tuple[Room | None, Access]:
        """Resolve a connection request to a room and its access level."""
        if not name or len(name) > MAX_ROOM_NAME_LENGTH:
            return None, Access.ROOM_NOT_FOUND

        room = self.rooms.get(name)

        if room is None:
            if pin is None:
                return None, Access.ROOM_NOT_FOUND
            if len(self.rooms) >= MAX_ROOMS:
                logger.warning("Room limit reached, refusing to create %s", name)
                return None, Access.ROOM_NOT_FOUND

            pin_hash = await asyncio.to_thread(PinHash, pin)

            # Another request may have created it while we were hashing
            room = self.rooms.get(name)
            if room is None:
                if len(self.rooms) >= MAX_ROOMS:
                    logger.warning("Room limit reached, refusing to create %s", name)
                    return None, Access.ROOM_NOT_FOUND
                room = Room(name, pin_hash, clock=self.clock)
                self.rooms[name] = room
                logger.info("Room %s created", name)
                return room, Access.AUTHENTICATED

        if pin is None:
            return room, Access.OBSERVER

        if not await asyncio.to_thread(room.check_pin, pin):
            logger.info("Unsuccessful authentication for room %s", name)
            return None, Access.WRONG_PIN

        return room, Access.AUTHENTICATED

    def get_room(self, name: str) -> Room | None:
        return self.rooms.get(name)

    def list_rooms(self) -> list[Room]:
        return list(self.rooms.values())

    async def close_all(self):
        for room in self.rooms.values():
            await room.close()

"""
Shot Clock Sync Service

Server-authoritative shot clock for basketball games.
Every connection in a room receives the same clock from the server.
"""

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from shotclock import __version__
from shotclock.protocol import Access, parse_command
from shotclock.registry import RoomRegistry
from shotclock.room import RoomResponse

logger = logging.getLogger(__name__)

# Close codes sent after a rejection frame
CLOSE_CODES: dict[Access, int] = {
    Access.ROOM_NOT_FOUND: 4004,
    Access.WRONG_PIN: 4003,
}
CLOSE_TOO_MANY_CLIENTS = 4029

# Global registry
registry = RoomRegistry()


# ============================================================
# FASTAPI APP
# ============================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Shot Clock Sync Service started")
    yield
    await registry.close_all()
    logger.info("Shot Clock Sync Service stopped")


app = FastAPI(
    title="Shot Clock Sync Service",
    description="Server-authoritative shot clock shared across connections",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# HEALTH CHECK
# ============================================================


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "rooms_active": len(registry.rooms)}


# ============================================================
# STATUS ENDPOINTS
# ============================================================


@app.get("/rooms", response_model=list[RoomResponse])
async def list_rooms():
    """List all rooms."""
    return [room.to_response() for room in registry.list_rooms()]


@app.get("/rooms/{room_name}", response_model=RoomResponse)
async def get_room(room_name: str):
    """Get room status."""
    room = registry.get_room(room_name)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return room.to_response()


# ============================================================
# WEBSOCKET ENDPOINT
# ============================================================


@app.websocket("/{room_name}")
async def websocket_endpoint(websocket: WebSocket, room_name: str, pin: str | None = None):
    """
    WebSocket connection to a room's shot clock.

    Connect with ``?pin=`` to create a room or control an existing one;
    without a PIN the connection only observes.

    Messages sent:
    - AUTHENTICATED / WRONG_PIN / ROOM_NOT_FOUND: result of the PIN check
    - r;0|1: running state
    - t;<gameTime>;<seconds>: countdown
    - T;<label>: timeout / quarter break label
    - HORN: horn signal
    """
    await websocket.accept()

    room, access = await registry.open(room_name, pin)
    if room is None:
        await websocket.send_text(access)
        await websocket.close(code=CLOSE_CODES[access])
        return

    if access == Access.AUTHENTICATED:
        await websocket.send_text(access)

    client_id = f"client_{uuid.uuid4().hex[:8]}"
    if not await room.join(client_id, websocket):
        await websocket.close(code=CLOSE_TOO_MANY_CLIENTS, reason="Too many connections")
        return

    can_control = access == Access.AUTHENTICATED

    try:
        while True:
            text = await websocket.receive_text()

            # Observers are read-only
            if not can_control:
                continue

            command = parse_command(text)
            if command is not None:
                await room.handle(command)

    except WebSocketDisconnect:
        pass
    except Exception:
        logger.warning("WebSocket error for client %s in room %s", client_id, room_name)
    finally:
        await room.leave(client_id)

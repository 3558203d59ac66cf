"""
Wire protocol for shot clock rooms.

Inbound frames are ``command`` or ``command;data`` text. Outbound frames:

- ``t;<gameTime>;<remainingSeconds>``: countdown update
- ``r;0`` / ``r;1``: running state
- ``T;<label>``: mode label, empty for normal play
- ``HORN``, ``AUTHENTICATED``, ``WRONG_PIN``, ``ROOM_NOT_FOUND``
"""

import logging
from enum import StrEnum

from pydantic import BaseModel, Field, ValidationError, model_validator

logger = logging.getLogger(__name__)

# ============================================================
# CONSTANTS
# ============================================================

MAX_DURATION_SECONDS = 86400
MAX_ADJUST_SECONDS = 86400

HORN = "HORN"


class Access(StrEnum):
    AUTHENTICATED = "AUTHENTICATED"
    OBSERVER = "OBSERVER"
    WRONG_PIN = "WRONG_PIN"
    ROOM_NOT_FOUND = "ROOM_NOT_FOUND"


class Mode(StrEnum):
    NORMAL = "normal"
    TIMEOUT = "timeout"
    QUARTER_BREAK = "quarter_break"

    @property
    def label(self) -> str:
        return MODE_LABELS[self]


MODE_LABELS: dict[Mode, str] = {
    Mode.NORMAL: "",
    Mode.TIMEOUT: "Timeout",
    Mode.QUARTER_BREAK: "Quarter Break",
}


class CommandAction(StrEnum):
    START = "start"
    PAUSE = "pause"
    RESET = "reset"
    REWIND = "rewind"
    UPDATE_TIME = "updateTime"
    SET_INITIAL_SHOTCLOCK = "setInitialShotclock"
    SET_TIMEOUT = "setTimeout"
    SET_QUARTER = "setQuarter"
    HORN = "horn"
    TIMEOUT = "timeout"
    QUARTER = "quarter"


DURATION_ACTIONS = frozenset(
    {CommandAction.SET_INITIAL_SHOTCLOCK, CommandAction.SET_TIMEOUT, CommandAction.SET_QUARTER}
)
NUMERIC_ACTIONS = DURATION_ACTIONS | {CommandAction.UPDATE_TIME}
_NUMERIC_NAMES = frozenset(action.value for action in NUMERIC_ACTIONS)


# ============================================================
# INBOUND
# ============================================================


class Command(BaseModel):
    action: CommandAction
    value: int | None = Field(None, ge=-MAX_ADJUST_SECONDS, le=MAX_DURATION_SECONDS)

    @model_validator(mode="after")
    def check_value(self) -> "Command":
        if self.action in NUMERIC_ACTIONS and self.value is None:
            raise ValueError(f"{self.action} requires a number of seconds")
        if self.action in DURATION_ACTIONS and self.value < 1:
            raise ValueError(f"{self.action} needs a positive duration, got {self.value}")
        return self


def parse_command(text: str) -> Command | None:
    """Parse one inbound frame, returning None for anything unusable."""
    action, _, data = text.strip().partition(";")
    payload: dict[str, str] = {"action": action}
    # Data on non-numeric commands is ignored
    if action in _NUMERIC_NAMES and data:
        payload["value"] = data
    try:
        return Command.model_validate(payload)
    except ValidationError:
        logger.debug("Ignoring frame %r", text)
        return None


# ============================================================
# OUTBOUND
# ============================================================


def round_seconds(millis: int) -> int:
    """Milliseconds to whole seconds, rounding halves up."""
    return (millis + 500) // 1000


def countdown_frame(game_time: int, remaining_ms: int) -> str:
    return f"t;{game_time};{round_seconds(remaining_ms)}"


def running_frame(running: bool) -> str:
    return f"r;{int(running)}"


def mode_frame(mode: Mode) -> str:
    return f"T;{mode.label}"

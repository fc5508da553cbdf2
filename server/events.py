# server/events.py
"""Event types for the room state machine."""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional


class GameEventType(Enum):
    """All possible room events."""

    # Room membership
    ROOM_OPENED = auto()
    PLAYER_JOINED = auto()
    PLAYER_LEAVE = auto()
    PLAYER_DISCONNECT = auto()

    # Player input
    PLAYER_HOLD = auto()
    PLAYER_RELEASE = auto()

    # Timer ticks
    COUNTDOWN_TICK = auto()
    BIDDING_TICK = auto()

    # Delayed transitions
    NEXT_ROUND_DUE = auto()
    ROUND_RESTART_DUE = auto()
    COUNTDOWN_RECHECK_DUE = auto()


@dataclass
class GameEvent:
    """An event that triggers a state transition."""

    type: GameEventType
    data: Dict[str, Any] = field(default_factory=dict)
    player_id: Optional[str] = None
    room_id: Optional[str] = None

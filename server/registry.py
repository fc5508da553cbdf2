"""
Room registry.

Owns the mapping from room id to Room:
- Creating rooms from validated configs
- Looking rooms up for inbound actions and timer callbacks
- Removing rooms and cancelling their timers
"""

import logging
import uuid
from typing import Awaitable, Callable, Dict, Optional

from server.events import GameEvent
from server.room import Room, RoomConfig
from server.timers import TimerManager

logger = logging.getLogger(__name__)

ROOM_ID_LENGTH = 6


def generate_room_id() -> str:
    """Short upper-case room code."""
    return uuid.uuid4().hex[:ROOM_ID_LENGTH].upper()


class RoomRegistry:
    """Manages all live rooms of this process."""

    def __init__(self):
        self._rooms: Dict[str, Room] = {}

    def create_room(
        self,
        config: RoomConfig,
        on_timer_event: Callable[[GameEvent], Awaitable[None]],
    ) -> Room:
        """
        Create and register a new, empty room.

        Args:
            config: Creation parameters, validated here
            on_timer_event: Receives the events fired by the room's timers

        Returns:
            The registered Room

        Raises:
            InvalidConfig: if the parameters are out of range
        """
        config.validate()

        room_id = generate_room_id()
        while room_id in self._rooms:
            room_id = generate_room_id()

        room = Room(
            room_id=room_id,
            config=config,
            timers=TimerManager(on_timer_event, room_id=room_id),
        )
        self._rooms[room_id] = room
        logger.info(
            "Created room %s (initial_time=%ss, max_rounds=%s)",
            room_id, config.initial_time, config.max_rounds,
        )
        return room

    def get_room(self, room_id: Optional[str]) -> Optional[Room]:
        """Get a room by ID."""
        if room_id is None:
            return None
        return self._rooms.get(room_id)

    def remove_room(self, room_id: str) -> None:
        """Drop a room and cancel its timers."""
        room = self._rooms.pop(room_id, None)
        if room is None:
            return
        room.timers.cancel_all()
        logger.info("Removed room %s", room_id)

    def close_all(self) -> None:
        """Remove every room, cancelling all timers."""
        for room_id in list(self._rooms):
            self.remove_room(room_id)

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

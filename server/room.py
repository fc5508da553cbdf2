# server/room.py
"""Room aggregate: players, round bookkeeping and the room's timers."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from auction.player import Player
from server.errors import InvalidConfig
from server.protocol import GameOverReason, RoomPhase
from server.timers import TimerManager


MIN_INITIAL_TIME = 10
MAX_INITIAL_TIME = 600
MIN_ROUNDS = 1
MAX_ROUNDS = 50
MAX_PLAYERS = 4


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class RoomConfig:
    """Creation parameters for a room."""

    initial_time: int
    max_rounds: int

    def validate(self) -> None:
        """Raise InvalidConfig unless both parameters are in range."""
        if not _is_int(self.initial_time) or not MIN_INITIAL_TIME <= self.initial_time <= MAX_INITIAL_TIME:
            raise InvalidConfig(
                f"initial_time must be a whole number of seconds between "
                f"{MIN_INITIAL_TIME} and {MAX_INITIAL_TIME}"
            )
        if not _is_int(self.max_rounds) or not MIN_ROUNDS <= self.max_rounds <= MAX_ROUNDS:
            raise InvalidConfig(
                f"max_rounds must be a whole number between {MIN_ROUNDS} and {MAX_ROUNDS}"
            )


@dataclass(eq=False)
class Room:
    """One game room.

    ``timers`` owns the countdown, bidding and delayed-transition slots.
    ``lock`` serializes every event handled for this room.
    """

    room_id: str
    config: RoomConfig
    timers: TimerManager
    players: List[Player] = field(default_factory=list)

    phase: RoomPhase = RoomPhase.WAITING
    current_round: int = 0
    pre_round_countdown: int = 0
    round_elapsed_time: int = 0
    active_players_in_round: List[str] = field(default_factory=list)

    game_over_reason: Optional[GameOverReason] = None
    final_result: Optional[Dict[str, Any]] = None

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def max_rounds(self) -> int:
        return self.config.max_rounds

    @property
    def initial_time(self) -> int:
        return self.config.initial_time

    @property
    def alive_players(self) -> List[Player]:
        """Players that have not been eliminated."""
        return [p for p in self.players if not p.is_eliminated]

    @property
    def is_empty(self) -> bool:
        return not self.players

    def get_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.player_id == player_id:
                return player
        return None

    def has_name(self, name: str) -> bool:
        return any(p.name == name for p in self.players)

    def remove_player(self, player_id: str) -> Optional[Player]:
        player = self.get_player(player_id)
        if player is not None:
            self.players.remove(player)
        return player

    def contenders(self) -> List[Player]:
        """Players fixed as contesting this round who are still in the room."""
        contenders = []
        for player_id in self.active_players_in_round:
            player = self.get_player(player_id)
            if player is not None:
                contenders.append(player)
        return contenders

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "room_id": self.room_id,
            "players": [p.to_public_dict() for p in self.players],
            "current_round": self.current_round,
            "max_rounds": self.max_rounds,
            "phase": self.phase.value,
        }

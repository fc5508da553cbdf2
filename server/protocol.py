"""WebSocket message protocol definitions for the time-auction server."""
from enum import Enum
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional
import json


class ServerMessageType(Enum):
    """Message types sent from server to client."""
    # Connection
    WELCOME = "WELCOME"
    ERROR = "ERROR"

    # Room membership replies
    ROOM_CREATED = "ROOM_CREATED"
    ROOM_JOINED = "ROOM_JOINED"
    ROOM_LEFT = "ROOM_LEFT"

    # Room state
    PLAYER_STATUS = "PLAYER_STATUS"
    STATUS_MESSAGE = "STATUS_MESSAGE"

    # Round flow
    NEW_ROUND = "NEW_ROUND"
    COUNTDOWN_UPDATE = "COUNTDOWN_UPDATE"
    BIDDING_STARTED = "BIDDING_STARTED"
    ROUND_TIMER_UPDATE = "ROUND_TIMER_UPDATE"
    PLAYER_ELIMINATED = "PLAYER_ELIMINATED"
    ROUND_WINNER = "ROUND_WINNER"
    SHOW_ROUND_STATS = "SHOW_ROUND_STATS"

    # Game end
    GAME_OVER = "GAME_OVER"


class ClientMessageType(Enum):
    """Message types sent from client to server."""
    CREATE_ROOM = "CREATE_ROOM"
    JOIN_ROOM = "JOIN_ROOM"
    LEAVE_ROOM = "LEAVE_ROOM"
    HOLD = "HOLD"
    RELEASE = "RELEASE"


class RoomPhase(Enum):
    """Room phases for phase tracking."""
    WAITING = "waiting"
    PRE_COUNTDOWN = "pre_countdown"
    IN_ROUND = "in_round"
    ROUND_ENDED = "round_ended"
    GAME_OVER = "game_over"


class GameOverReason(Enum):
    """Why a game ended."""
    SOLE_SURVIVOR = "sole_survivor"
    ALL_ELIMINATED = "all_eliminated"
    ROUNDS_EXHAUSTED = "rounds_exhausted"
    INSUFFICIENT_PLAYERS = "insufficient_players"


@dataclass
class Message:
    """Base message class for WebSocket communication."""
    type: str
    data: Dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        """Serialize message to JSON string."""
        return json.dumps({
            "type": self.type,
            "data": self.data
        })

    @classmethod
    def from_json(cls, json_str: str) -> 'Message':
        """Deserialize message from JSON string."""
        obj = json.loads(json_str)
        if not isinstance(obj, dict):
            raise ValueError("message must be a JSON object")
        data = obj.get("data") or {}
        if not isinstance(data, dict):
            raise ValueError("message data must be a JSON object")
        return cls(type=str(obj.get("type", "")), data=data)


# Server -> Client message builders
def welcome_message(player_id: str) -> Message:
    """Build welcome message for a newly connected client."""
    return Message(
        type=ServerMessageType.WELCOME.value,
        data={"player_id": player_id}
    )


def error_message(code: str, message: str) -> Message:
    """Build error message."""
    return Message(
        type=ServerMessageType.ERROR.value,
        data={
            "code": code,
            "message": message
        }
    )


def room_created_message(room_id: str, player: Dict[str, Any]) -> Message:
    return Message(
        type=ServerMessageType.ROOM_CREATED.value,
        data={
            "room_id": room_id,
            "player": player
        }
    )


def room_joined_message(room_id: str, player: Dict[str, Any]) -> Message:
    return Message(
        type=ServerMessageType.ROOM_JOINED.value,
        data={
            "room_id": room_id,
            "player": player
        }
    )


def room_left_message(room_id: str) -> Message:
    return Message(
        type=ServerMessageType.ROOM_LEFT.value,
        data={"room_id": room_id}
    )


def player_status_message(
    room_id: str,
    players: List[Dict[str, Any]],
    current_round: int,
    max_rounds: int,
    phase: str
) -> Message:
    """Build the full player status snapshot for a room."""
    return Message(
        type=ServerMessageType.PLAYER_STATUS.value,
        data={
            "room_id": room_id,
            "players": players,
            "current_round": current_round,
            "max_rounds": max_rounds,
            "phase": phase
        }
    )


def status_text_message(text: str) -> Message:
    """Build a free-form status line for display."""
    return Message(
        type=ServerMessageType.STATUS_MESSAGE.value,
        data={"text": text}
    )


def new_round_message(
    round_num: int,
    max_rounds: int,
    players: List[Dict[str, Any]],
    message: str
) -> Message:
    """Build the announcement that a round is ready to be armed."""
    return Message(
        type=ServerMessageType.NEW_ROUND.value,
        data={
            "round": round_num,
            "max_rounds": max_rounds,
            "players": players,
            "message": message
        }
    )


def countdown_update_message(seconds: int) -> Message:
    return Message(
        type=ServerMessageType.COUNTDOWN_UPDATE.value,
        data={"seconds": seconds}
    )


def bidding_started_message(round_num: int) -> Message:
    return Message(
        type=ServerMessageType.BIDDING_STARTED.value,
        data={"round": round_num}
    )


def round_timer_message(elapsed: int) -> Message:
    return Message(
        type=ServerMessageType.ROUND_TIMER_UPDATE.value,
        data={"elapsed": elapsed}
    )


def player_eliminated_message(player_id: str, name: str) -> Message:
    """Build player eliminated message."""
    return Message(
        type=ServerMessageType.PLAYER_ELIMINATED.value,
        data={
            "player_id": player_id,
            "name": name
        }
    )


def round_winner_message(
    message: str,
    winners: List[Dict[str, Any]],
    duration: int,
    is_tie: bool
) -> Message:
    """Build the round result announcement."""
    return Message(
        type=ServerMessageType.ROUND_WINNER.value,
        data={
            "message": message,
            "winners": winners,
            "duration": duration,
            "is_tie": is_tie
        }
    )


def show_round_stats_message(round_num: int) -> Message:
    return Message(
        type=ServerMessageType.SHOW_ROUND_STATS.value,
        data={"round": round_num}
    )


def game_over_message(
    reason: str,
    message: str,
    final_standings: List[Dict[str, Any]],
    final_winner: Optional[Dict[str, Any]]
) -> Message:
    """Build game over message."""
    return Message(
        type=ServerMessageType.GAME_OVER.value,
        data={
            "reason": reason,
            "message": message,
            "final_standings": final_standings,
            "final_winner": final_winner
        }
    )


# Client -> Server message parsers
def parse_create_room_message(data: Dict[str, Any]) -> Dict[str, Any]:
    """Parse CREATE_ROOM message data."""
    return {
        "name": str(data.get("name") or "").strip(),
        "initial_time": data.get("initial_time"),
        "max_rounds": data.get("max_rounds")
    }


def parse_join_room_message(data: Dict[str, Any]) -> Dict[str, Any]:
    """Parse JOIN_ROOM message data."""
    return {
        "room_id": str(data.get("room_id") or "").strip().upper(),
        "name": str(data.get("name") or "").strip()
    }

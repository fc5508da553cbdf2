"""Shared test fixtures for the time-auction server tests."""
import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from auction.config_loader import ConfigLoader
from server.engine import RoundEngine
from server.events import GameEvent, GameEventType
from server.protocol import Message, ServerMessageType
from server.registry import RoomRegistry
from server.room import Room


class MessageCollector:
    """Collects everything the engine sends out."""

    def __init__(self):
        self.broadcasts: List[tuple] = []  # (room_id, type, data)
        self.player_messages: Dict[str, List[tuple]] = {}  # player_id -> [(type, data)]

    async def broadcast(self, room_id: str, msg: Message):
        self.broadcasts.append((room_id, msg.type, msg.data))

    async def send_to_player(self, player_id: str, msg: Message):
        self.player_messages.setdefault(player_id, []).append((msg.type, msg.data))

    def broadcast_types(self) -> List[str]:
        return [t for _, t, _ in self.broadcasts]

    def broadcasts_of_type(self, msg_type: ServerMessageType) -> List[Dict[str, Any]]:
        return [data for _, t, data in self.broadcasts if t == msg_type.value]

    def player_messages_of_type(self, player_id: str, msg_type: ServerMessageType) -> List[Dict[str, Any]]:
        return [data for t, data in self.player_messages.get(player_id, []) if t == msg_type.value]

    def status_texts(self) -> List[str]:
        return [data["text"] for data in self.broadcasts_of_type(ServerMessageType.STATUS_MESSAGE)]

    def clear(self):
        self.broadcasts.clear()
        self.player_messages.clear()


class RoomDriver:
    """Drives one room through the engine without waiting on real timers.

    Timer events are taken from the room's live timer slots, so they carry the
    same token and data the real timer would deliver.
    """

    def __init__(self, engine: RoundEngine, room: Room):
        self.engine = engine
        self.room = room

    async def send(self, event_type: GameEventType, player_id: Optional[str] = None):
        await self.engine.handle_event(GameEvent(
            type=event_type,
            player_id=player_id,
            room_id=self.room.room_id
        ))

    async def hold(self, *player_ids: str):
        for player_id in player_ids:
            await self.send(GameEventType.PLAYER_HOLD, player_id)

    async def release(self, *player_ids: str):
        for player_id in player_ids:
            await self.send(GameEventType.PLAYER_RELEASE, player_id)

    async def leave(self, player_id: str):
        await self.send(GameEventType.PLAYER_LEAVE, player_id)

    async def fire(self, slot: str):
        event = self.room.timers.pending_event(slot)
        assert event is not None, f"no live timer in slot {slot!r}"
        await self.engine.handle_event(event)

    async def countdown_ticks(self, count: int):
        for _ in range(count):
            await self.fire(RoundEngine.TIMER_COUNTDOWN)

    async def finish_countdown(self):
        while self.room.timers.is_active(RoundEngine.TIMER_COUNTDOWN):
            await self.fire(RoundEngine.TIMER_COUNTDOWN)

    async def bidding_ticks(self, count: int):
        for _ in range(count):
            await self.fire(RoundEngine.TIMER_BIDDING)

    async def transition(self):
        await self.fire(RoundEngine.TIMER_TRANSITION)

    def player(self, player_id: str):
        return self.room.get_player(player_id)


@pytest.fixture
def collector():
    """Create a fresh message collector."""
    return MessageCollector()


@pytest_asyncio.fixture
async def engine(collector):
    """Round engine whose real timers are far too slow to fire during a test."""
    engine = RoundEngine(
        registry=RoomRegistry(),
        broadcast=collector.broadcast,
        send_to_player=collector.send_to_player,
        countdown_seconds=5,
        tick_seconds=60,
        no_contest_delay=60,
        round_result_delay=60,
        countdown_recheck_delay=60,
        round_restart_delay=60
    )
    yield engine
    engine.shutdown()
    await asyncio.sleep(0)


@pytest.fixture
def open_room(engine):
    """Factory: create a room through the engine and seat extra players.

    Returns a RoomDriver for the room, already past ROOM_OPENED (round 1).
    """
    async def _open(*names: str, initial_time: int = 20, max_rounds: int = 5) -> RoomDriver:
        first, *others = names or ("Alice",)
        room, _ = await engine.create_room(first.lower(), first, initial_time, max_rounds)
        driver = RoomDriver(engine, room)
        await driver.send(GameEventType.ROOM_OPENED, first.lower())
        for name in others:
            await engine.join_room(room.room_id, name.lower(), name)
            await driver.send(GameEventType.PLAYER_JOINED, name.lower())
        return driver

    return _open


@pytest.fixture
def temp_config_dir(tmp_path, monkeypatch):
    """Create temporary config directory with a test settings file."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    server_settings = {
        "server": {
            "port": 9999
        },
        "timings": {
            "countdown_seconds": 3,
            "tick_seconds": 0.5
        },
        "rooms": {
            "stats_every_rounds": 2
        }
    }
    (config_dir / "server_settings.json").write_text(json.dumps(server_settings, indent=2))

    # Reset the singleton instance FIRST
    ConfigLoader._instance = None
    monkeypatch.setattr(ConfigLoader, '_config_dir', str(config_dir))

    yield config_dir

    # Cleanup: reset singleton
    ConfigLoader._instance = None

"""
WebSocket server entry point for the time-auction game.

This module provides:
- WebSocket server using websockets library
- Room creation and joining by room code
- Message routing to the round engine
- Disconnect handling (a dropped connection leaves its room)
"""

import argparse
import asyncio
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, Optional

from rich.logging import RichHandler
from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from auction.config_loader import ConfigLoader
from server.engine import RoundEngine
from server.errors import AlreadyInRoom, AuctionError
from server.events import GameEvent, GameEventType
from server.protocol import (
    ClientMessageType, Message,
    error_message, parse_create_room_message, parse_join_room_message,
    room_created_message, room_joined_message, room_left_message, welcome_message
)
from server.registry import RoomRegistry

logger = logging.getLogger(__name__)

INPUT_EVENTS = {
    ClientMessageType.HOLD.value: GameEventType.PLAYER_HOLD,
    ClientMessageType.RELEASE.value: GameEventType.PLAYER_RELEASE,
}


@dataclass
class ConnectedClient:
    """Represents a connected WebSocket client."""
    websocket: ServerConnection
    player_id: str
    room_id: Optional[str] = None


class GameServer:
    """
    WebSocket game server hosting any number of rooms.

    Handles:
    - Client connections and disconnections
    - Room creation and joining
    - Message routing to the round engine
    """

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 8765,
        timings: Optional[Dict[str, float]] = None,
        room_settings: Optional[Dict[str, int]] = None
    ):
        self.host = host
        self.port = port

        # Connection tracking
        self.clients: Dict[str, ConnectedClient] = {}  # player_id -> client

        # Room management
        self.registry = RoomRegistry()
        self.engine = RoundEngine(
            registry=self.registry,
            broadcast=self.broadcast_to_room,
            send_to_player=self.send_to_player,
            **(timings or {}),
            **(room_settings or {})
        )

        self._server = None

    async def start(self):
        """Start the WebSocket server and serve until cancelled."""
        async with serve(self.handle_connection, self.host, self.port, reuse_address=True) as server:
            self._server = server
            logger.info("Time auction server listening on ws://%s:%s", self.host, self.port)
            try:
                await asyncio.Future()  # Run forever
            finally:
                self.engine.shutdown()

    @property
    def bound_port(self) -> Optional[int]:
        """Port actually bound, useful when started on port 0."""
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return None

    async def handle_connection(self, websocket: ServerConnection):
        """Handle a new WebSocket connection."""
        player_id = str(uuid.uuid4())
        self.clients[player_id] = ConnectedClient(websocket=websocket, player_id=player_id)
        logger.info("New connection: %s", player_id)

        try:
            await self.send_to_websocket(websocket, welcome_message(player_id))
            async for message in websocket:
                await self.handle_message(player_id, message)
        except ConnectionClosed:
            logger.info("Connection closed: %s", player_id)
        finally:
            await self.handle_disconnect(player_id)

    async def handle_message(self, player_id: str, raw_message):
        """Handle an incoming message."""
        client = self.clients.get(player_id)
        if client is None:
            return

        try:
            msg = Message.from_json(raw_message)
        except (json.JSONDecodeError, ValueError):
            await self.send_to_player(player_id, error_message("INVALID_JSON", "Invalid JSON message"))
            return

        msg_type = msg.type

        try:
            if msg_type == ClientMessageType.CREATE_ROOM.value:
                await self.handle_create_room(client, msg.data)

            elif msg_type == ClientMessageType.JOIN_ROOM.value:
                await self.handle_join_room(client, msg.data)

            elif msg_type == ClientMessageType.LEAVE_ROOM.value:
                await self.handle_leave_room(client)

            elif msg_type in INPUT_EVENTS:
                await self.handle_input(client, INPUT_EVENTS[msg_type])

            else:
                await self.send_to_player(
                    player_id,
                    error_message("UNKNOWN_TYPE", f"Unknown message type: {msg_type}")
                )
        except AuctionError as exc:
            logger.debug("Request %s from %s rejected: %s", msg_type, player_id, exc)
            await self.send_to_player(player_id, error_message(exc.code, str(exc)))

    async def handle_create_room(self, client: ConnectedClient, data: dict):
        """Handle CREATE_ROOM - the sender becomes the room's first player."""
        if client.room_id is not None:
            raise AlreadyInRoom(client.room_id)

        parsed = parse_create_room_message(data)
        name = parsed["name"] or self.default_name(client.player_id)
        room, player = await self.engine.create_room(
            player_id=client.player_id,
            name=name,
            initial_time=parsed["initial_time"],
            max_rounds=parsed["max_rounds"]
        )
        client.room_id = room.room_id

        await self.send_to_player(client.player_id, room_created_message(room.room_id, player.to_public_dict()))
        await self.engine.handle_event(GameEvent(
            type=GameEventType.ROOM_OPENED,
            player_id=client.player_id,
            room_id=room.room_id
        ))

    async def handle_join_room(self, client: ConnectedClient, data: dict):
        """Handle JOIN_ROOM - join an existing room by its code."""
        if client.room_id is not None:
            raise AlreadyInRoom(client.room_id)

        parsed = parse_join_room_message(data)
        name = parsed["name"] or self.default_name(client.player_id)
        room, player = await self.engine.join_room(parsed["room_id"], client.player_id, name)
        client.room_id = room.room_id

        await self.send_to_player(client.player_id, room_joined_message(room.room_id, player.to_public_dict()))
        await self.engine.handle_event(GameEvent(
            type=GameEventType.PLAYER_JOINED,
            player_id=client.player_id,
            room_id=room.room_id
        ))

    async def handle_leave_room(self, client: ConnectedClient):
        """Handle LEAVE_ROOM."""
        room_id = client.room_id
        if room_id is None:
            return

        client.room_id = None
        await self.engine.handle_event(GameEvent(
            type=GameEventType.PLAYER_LEAVE,
            player_id=client.player_id,
            room_id=room_id
        ))
        await self.send_to_player(client.player_id, room_left_message(room_id))

    async def handle_input(self, client: ConnectedClient, event_type: GameEventType):
        """Handle HOLD / RELEASE."""
        if client.room_id is None:
            return
        await self.engine.handle_event(GameEvent(
            type=event_type,
            player_id=client.player_id,
            room_id=client.room_id
        ))

    async def handle_disconnect(self, player_id: str):
        """Handle player disconnection."""
        client = self.clients.pop(player_id, None)
        if client is None or client.room_id is None:
            return

        room_id = client.room_id
        client.room_id = None
        await self.engine.handle_event(GameEvent(
            type=GameEventType.PLAYER_DISCONNECT,
            player_id=player_id,
            room_id=room_id
        ))

    async def send_to_websocket(self, websocket: ServerConnection, message: Message):
        """Send a message to a specific websocket."""
        try:
            await websocket.send(message.to_json())
        except ConnectionClosed:
            logger.debug("Dropped %s for a closed connection", message.type)

    async def send_to_player(self, player_id: str, message: Message):
        """Send a message to a specific player."""
        client = self.clients.get(player_id)
        if client:
            await self.send_to_websocket(client.websocket, message)

    async def broadcast_to_room(self, room_id: str, message: Message):
        """Broadcast a message to all players in a room."""
        room = self.registry.get_room(room_id)
        if not room:
            return

        for player in list(room.players):
            await self.send_to_player(player.player_id, message)

    @staticmethod
    def default_name(player_id: str) -> str:
        return f"Player_{player_id[:8]}"


def configure_logging(level: str = "INFO") -> None:
    """Route log records through rich's console handler."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)]
    )
    # Handshake failures from TCP probes are not worth reporting
    logging.getLogger("websockets").setLevel(logging.WARNING)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Time Auction Multiplayer Server")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--config-dir", default=None, help="Directory holding server_settings.json")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, ...)")
    args = parser.parse_args()

    configure_logging(args.log_level)
    config = ConfigLoader.reload(args.config_dir)

    server = GameServer(
        host=args.host or config.get("server", "host", default="0.0.0.0"),
        port=args.port if args.port is not None else config.get("server", "port", default=8765),
        timings=config.get_timings(),
        room_settings=config.get_room_settings()
    )

    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Server stopped")

    return 0


if __name__ == "__main__":
    exit(main())

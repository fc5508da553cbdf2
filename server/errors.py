# server/errors.py
"""Errors reported back to the connection that made a request."""


class AuctionError(Exception):
    """Base class for request failures. ``code`` is sent on the wire."""

    code = "ERROR"


class InvalidConfig(AuctionError):
    """Room creation parameters are out of range."""

    code = "INVALID_CONFIG"


class RoomNotFound(AuctionError):
    code = "ROOM_NOT_FOUND"

    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class NameTaken(AuctionError):
    code = "NAME_TAKEN"

    def __init__(self, name):
        self.name = name
        super().__init__(f"The name {name!r} is already taken in this room")


class RoomFull(AuctionError):
    code = "ROOM_FULL"

    def __init__(self, room_id, capacity):
        self.room_id = room_id
        self.capacity = capacity
        super().__init__(f"Room {room_id} is full ({capacity} players)")


class PhaseNotJoinable(AuctionError):
    """The room is counting down or bidding."""

    code = "PHASE_NOT_JOINABLE"

    def __init__(self, room_id, phase):
        self.room_id = room_id
        self.phase = phase
        super().__init__(f"Room {room_id} cannot be joined while {phase}")


class AlreadyInRoom(AuctionError):
    code = "ALREADY_IN_ROOM"

    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__(f"Already in room {room_id}; leave it first")

# server/timers.py
"""Timer manager for the room state machine.

Each timer lives in a named slot. Starting a timer revokes whatever held the
slot before, and every start hands out a fresh token. Fired events carry that
token in ``data["token"]`` so the receiver can tell a live timer from a stale
one with ``is_current``.
"""

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from server.events import GameEvent, GameEventType

logger = logging.getLogger(__name__)


def _running_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


class TimerManager:
    """Manages timers that fire events when they expire."""

    def __init__(
        self,
        event_callback: Callable[[GameEvent], Awaitable[None]],
        room_id: Optional[str] = None
    ):
        """Initialize timer manager.

        Args:
            event_callback: Async function to call when a timer expires.
            room_id: Room stamped on every fired event.
        """
        self._event_callback = event_callback
        self._room_id = room_id
        self._timers: Dict[str, asyncio.Task] = {}
        self._tokens: Dict[str, int] = {}
        self._pending: Dict[str, Tuple[GameEventType, Dict[str, Any]]] = {}
        self._counter = itertools.count(1)

    def start_timer(
        self,
        timer_id: str,
        duration_seconds: float,
        event_type: GameEventType,
        data: Optional[Dict[str, Any]] = None
    ) -> int:
        """Start a one-shot timer that fires an event when it expires.

        Args:
            timer_id: Slot for this timer.
            duration_seconds: How long until the timer fires.
            event_type: The event type to fire.
            data: Optional data to include in the event.

        Returns:
            The token identifying this timer.
        """
        return self._schedule(timer_id, duration_seconds, event_type, data, repeat=False)

    def start_interval(
        self,
        timer_id: str,
        interval_seconds: float,
        event_type: GameEventType,
        data: Optional[Dict[str, Any]] = None
    ) -> int:
        """Start a timer that fires every ``interval_seconds`` until cancelled."""
        return self._schedule(timer_id, interval_seconds, event_type, data, repeat=True)

    def _schedule(
        self,
        timer_id: str,
        delay: float,
        event_type: GameEventType,
        data: Optional[Dict[str, Any]],
        repeat: bool
    ) -> int:
        self.cancel_timer(timer_id)

        token = next(self._counter)
        payload = dict(data or {})
        payload["token"] = token

        async def timer_task():
            try:
                while True:
                    await asyncio.sleep(delay)
                    if self._tokens.get(timer_id) != token:
                        return
                    event = GameEvent(type=event_type, data=dict(payload), room_id=self._room_id)
                    await self._event_callback(event)
                    if not repeat or self._tokens.get(timer_id) != token:
                        return
            except asyncio.CancelledError:
                pass  # Timer was cancelled, don't fire event
            except Exception:
                logger.exception("Timer %s for room %s failed", timer_id, self._room_id)
            finally:
                if self._tokens.get(timer_id) == token:
                    self._tokens.pop(timer_id, None)
                    self._timers.pop(timer_id, None)
                    self._pending.pop(timer_id, None)

        self._tokens[timer_id] = token
        self._pending[timer_id] = (event_type, payload)
        self._timers[timer_id] = asyncio.create_task(timer_task())
        return token

    def cancel_timer(self, timer_id: str) -> bool:
        """Cancel a timer if it exists.

        A timer may cancel itself from inside its own callback; the callback
        then runs to completion and the timer simply does not fire again.

        Returns:
            True if a timer was cancelled, False if no such timer.
        """
        self._tokens.pop(timer_id, None)
        self._pending.pop(timer_id, None)
        task = self._timers.pop(timer_id, None)
        if task is None:
            return False
        if task is not _running_task():
            task.cancel()
        return True

    def cancel_all(self) -> None:
        """Cancel all active timers."""
        for timer_id in list(self._timers):
            self.cancel_timer(timer_id)
        self._tokens.clear()
        self._pending.clear()

    def is_active(self, timer_id: str) -> bool:
        """Check if a timer is currently active."""
        return timer_id in self._tokens

    def is_current(self, timer_id: str, token: Optional[int]) -> bool:
        """Check whether ``token`` belongs to the live timer in ``timer_id``."""
        return token is not None and self._tokens.get(timer_id) == token

    def token(self, timer_id: str) -> Optional[int]:
        """Token of the live timer in ``timer_id``, if any."""
        return self._tokens.get(timer_id)

    def pending_event(self, timer_id: str) -> Optional[GameEvent]:
        """The event the live timer in ``timer_id`` will fire next, if any."""
        pending = self._pending.get(timer_id)
        if pending is None:
            return None
        event_type, payload = pending
        return GameEvent(type=event_type, data=dict(payload), room_id=self._room_id)

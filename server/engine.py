# server/engine.py
"""Event-driven round engine for time-auction rooms.

This engine:
- Drives every room through waiting -> countdown -> bidding -> result
- Never blocks - handle_event applies one transition and returns
- Receives timer ticks and delayed transitions through handle_event too
- Processes one event at a time per room
"""

import logging
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from auction.player import Player
from auction.standings import final_winner, rank_players, round_winners
from server.errors import AlreadyInRoom, NameTaken, PhaseNotJoinable, RoomFull, RoomNotFound
from server.events import GameEvent, GameEventType
from server.protocol import (
    GameOverReason, Message, RoomPhase, ServerMessageType,
    bidding_started_message, countdown_update_message, game_over_message,
    new_round_message, player_eliminated_message, player_status_message,
    round_timer_message, round_winner_message, show_round_stats_message,
    status_text_message
)
from server.registry import RoomRegistry
from server.room import MAX_PLAYERS, Room, RoomConfig

logger = logging.getLogger(__name__)


# Type aliases
RoomBroadcaster = Callable[[str, Message], Awaitable[None]]
PlayerMessageSender = Callable[[str, Message], Awaitable[None]]

JOINABLE_PHASES = (RoomPhase.WAITING, RoomPhase.ROUND_ENDED, RoomPhase.GAME_OVER)
ARMABLE_PHASES = (RoomPhase.WAITING, RoomPhase.ROUND_ENDED)
ACTIVE_PHASES = (RoomPhase.PRE_COUNTDOWN, RoomPhase.IN_ROUND)

GAME_OVER_TEXT = {
    GameOverReason.SOLE_SURVIVOR: "Only one player still has time left. Game over!",
    GameOverReason.ALL_ELIMINATED: "Every player has run out of time. Game over!",
    GameOverReason.ROUNDS_EXHAUSTED: "All rounds have been played. Game over!",
    GameOverReason.INSUFFICIENT_PLAYERS: "Not enough players left. Game over!",
}


class RoundEngine:
    """Round state machine shared by every room in the registry."""

    # Timer slots
    TIMER_COUNTDOWN = "countdown"
    TIMER_BIDDING = "bidding"
    TIMER_TRANSITION = "transition"

    def __init__(
        self,
        registry: RoomRegistry,
        broadcast: RoomBroadcaster,
        send_to_player: PlayerMessageSender,
        countdown_seconds: int = 5,
        tick_seconds: float = 1.0,
        no_contest_delay: float = 2.0,
        round_result_delay: float = 3.0,
        countdown_recheck_delay: float = 1.5,
        round_restart_delay: float = 1.0,
        max_players: int = MAX_PLAYERS,
        stats_every_rounds: int = 3
    ):
        self.registry = registry
        self.broadcast = broadcast
        self.send_to_player = send_to_player

        # Settings
        self.countdown_seconds = countdown_seconds
        self.tick_seconds = tick_seconds
        self.no_contest_delay = no_contest_delay
        self.round_result_delay = round_result_delay
        self.countdown_recheck_delay = countdown_recheck_delay
        self.round_restart_delay = round_restart_delay
        self.max_players = min(max_players, MAX_PLAYERS)
        self.stats_every_rounds = stats_every_rounds

        self._handlers: Dict[GameEventType, Callable] = {
            GameEventType.ROOM_OPENED: self._handle_room_opened,
            GameEventType.PLAYER_JOINED: self._handle_player_joined,
            GameEventType.PLAYER_LEAVE: self._handle_player_leave,
            GameEventType.PLAYER_DISCONNECT: self._handle_player_leave,
            GameEventType.PLAYER_HOLD: self._handle_hold,
            GameEventType.PLAYER_RELEASE: self._handle_release,
            GameEventType.COUNTDOWN_TICK: self._handle_countdown_tick,
            GameEventType.BIDDING_TICK: self._handle_bidding_tick,
            GameEventType.NEXT_ROUND_DUE: self._handle_next_round_due,
            GameEventType.ROUND_RESTART_DUE: self._handle_round_restart_due,
            GameEventType.COUNTDOWN_RECHECK_DUE: self._handle_countdown_recheck_due,
        }

        # Events that only count while their timer slot still holds the same token
        self._timer_slots: Dict[GameEventType, str] = {
            GameEventType.COUNTDOWN_TICK: self.TIMER_COUNTDOWN,
            GameEventType.BIDDING_TICK: self.TIMER_BIDDING,
            GameEventType.NEXT_ROUND_DUE: self.TIMER_TRANSITION,
            GameEventType.ROUND_RESTART_DUE: self.TIMER_TRANSITION,
            GameEventType.COUNTDOWN_RECHECK_DUE: self.TIMER_TRANSITION,
        }

    # --- Requests ---

    async def create_room(
        self,
        player_id: str,
        name: str,
        initial_time: int,
        max_rounds: int
    ) -> Tuple[Room, Player]:
        """Create a room holding its creator.

        The first round is prepared once ROOM_OPENED is handled, so the caller
        can acknowledge the creation before any room broadcast goes out.

        Raises:
            InvalidConfig: if ``initial_time`` or ``max_rounds`` is out of range.
        """
        room = self.registry.create_room(RoomConfig(initial_time, max_rounds), self.handle_event)
        player = Player(player_id=player_id, name=name, time_budget=room.initial_time)
        room.players.append(player)
        logger.info("Player %s (%s) created room %s", name, player_id, room.room_id)
        return room, player

    async def join_room(self, room_id: str, player_id: str, name: str) -> Tuple[Room, Player]:
        """Add a player to an existing room.

        The status broadcast and phase replay follow when PLAYER_JOINED is
        handled.

        Raises:
            RoomNotFound, PhaseNotJoinable, RoomFull, NameTaken, AlreadyInRoom
        """
        room = self.registry.get_room(room_id)
        if room is None:
            raise RoomNotFound(room_id)

        async with room.lock:
            if self.registry.get_room(room_id) is not room:
                raise RoomNotFound(room_id)
            if room.phase not in JOINABLE_PHASES:
                raise PhaseNotJoinable(room_id, room.phase.value)
            if len(room.players) >= self.max_players:
                raise RoomFull(room_id, self.max_players)
            if room.get_player(player_id) is not None:
                raise AlreadyInRoom(room_id)
            if room.has_name(name):
                raise NameTaken(name)

            player = Player(player_id=player_id, name=name, time_budget=room.initial_time)
            room.players.append(player)

        logger.info("Player %s (%s) joined room %s", name, player_id, room_id)
        return room, player

    async def handle_event(self, event: GameEvent) -> None:
        """Handle an incoming event. Never blocks."""
        handler = self._handlers.get(event.type)
        if handler is None:
            return

        room = self.registry.get_room(event.room_id)
        if room is None:
            logger.debug("Ignoring %s for missing room %s", event.type.name, event.room_id)
            return

        async with room.lock:
            if self.registry.get_room(room.room_id) is not room:
                logger.debug("Ignoring %s for removed room %s", event.type.name, room.room_id)
                return

            slot = self._timer_slots.get(event.type)
            if slot is not None and not room.timers.is_current(slot, event.data.get("token")):
                logger.debug("Ignoring stale %s in room %s", event.type.name, room.room_id)
                return
            if slot == self.TIMER_TRANSITION:
                # Delayed transitions fire at most once
                room.timers.cancel_timer(slot)

            await handler(room, event)

    def shutdown(self) -> None:
        """Drop every room and cancel all timers."""
        self.registry.close_all()

    # --- Membership Events ---

    async def _handle_room_opened(self, room: Room, event: GameEvent) -> None:
        """Prepare round one for a freshly created room."""
        if room.current_round == 0 and room.phase == RoomPhase.WAITING:
            await self._start_next_round(room)

    async def _handle_player_joined(self, room: Room, event: GameEvent) -> None:
        player = room.get_player(event.player_id)
        if player is None:
            return
        await self._broadcast_status(room)
        await self._replay_phase(room, player)

    async def _handle_player_leave(self, room: Room, event: GameEvent) -> None:
        """Handle PLAYER_LEAVE and PLAYER_DISCONNECT."""
        player = room.remove_player(event.player_id)
        if player is None:
            return

        logger.info(
            "Player %s left room %s during %s (%d remaining)",
            player.name, room.room_id, room.phase.value, len(room.players)
        )

        if room.is_empty:
            self.registry.remove_room(room.room_id)
            return

        if room.phase in ACTIVE_PHASES and len(room.alive_players) < 2:
            await self._end_game(room, GameOverReason.INSUFFICIENT_PLAYERS)
            return

        if (room.phase == RoomPhase.PRE_COUNTDOWN and player.is_holding
                and room.timers.is_active(self.TIMER_COUNTDOWN)):
            await self._interrupt_countdown(room, f"{player.name} left, countdown interrupted.")
            return

        await self._broadcast_status(room)

        if room.phase == RoomPhase.IN_ROUND and player.is_holding:
            await self._check_all_released(room)
        elif room.phase == RoomPhase.WAITING:
            await self._try_arm(room)

    # --- Player Input ---

    async def _handle_hold(self, room: Room, event: GameEvent) -> None:
        player = room.get_player(event.player_id)
        if player is None:
            return

        if not player.can_hold:
            await self.send_to_player(
                player.player_id,
                status_text_message("You are out of time and cannot hold.")
            )
            return

        if player.is_holding:
            return

        if room.phase == RoomPhase.GAME_OVER:
            logger.debug("Ignoring hold from %s in finished room %s", player.name, room.room_id)
            return

        # Opted-out players may hold again but only contenders accrue
        player.is_holding = True
        await self._broadcast_status(room)
        if room.phase in ARMABLE_PHASES:
            await self._try_arm(room)

    async def _handle_release(self, room: Room, event: GameEvent) -> None:
        player = room.get_player(event.player_id)
        if player is None or not player.is_holding:
            return

        player.is_holding = False

        if room.phase == RoomPhase.PRE_COUNTDOWN and room.timers.is_active(self.TIMER_COUNTDOWN):
            await self._interrupt_countdown(
                room,
                f"{player.name} let go, countdown interrupted. Waiting for the others...",
                releaser=player
            )
            return

        await self._broadcast_status(room)

        if room.phase == RoomPhase.IN_ROUND:
            await self._check_all_released(room)

    # --- Countdown ---

    @staticmethod
    def arming_met(room: Room) -> bool:
        """Every alive player holds (with one alive player, that one holds)."""
        alive = room.alive_players
        return bool(alive) and all(p.is_holding for p in alive)

    async def _try_arm(self, room: Room) -> None:
        if room.phase not in ARMABLE_PHASES or room.timers.is_active(self.TIMER_COUNTDOWN):
            return
        if not self.arming_met(room):
            return

        if room.phase == RoomPhase.ROUND_ENDED:
            # The pending next-round transition is pulled forward so the round counter stays exact
            room.timers.cancel_timer(self.TIMER_TRANSITION)
            await self._start_next_round(room, keep_holding=True)
            if room.phase != RoomPhase.WAITING:
                return

        await self._start_countdown(room)

    async def _start_countdown(self, room: Room) -> None:
        room.timers.cancel_timer(self.TIMER_TRANSITION)
        room.phase = RoomPhase.PRE_COUNTDOWN
        room.pre_round_countdown = self.countdown_seconds
        for player in room.players:
            player.has_opted_out = False
            player.round_hold_duration = 0

        room.timers.start_interval(
            self.TIMER_COUNTDOWN,
            self.tick_seconds,
            GameEventType.COUNTDOWN_TICK
        )
        logger.info("Room %s: countdown started for round %d", room.room_id, room.current_round)

        await self._broadcast_status(room)
        await self.broadcast(room.room_id, countdown_update_message(room.pre_round_countdown))
        await self._say(room, self._countdown_text(room))

    async def _handle_countdown_tick(self, room: Room, event: GameEvent) -> None:
        if room.phase != RoomPhase.PRE_COUNTDOWN:
            room.timers.cancel_timer(self.TIMER_COUNTDOWN)
            return

        room.pre_round_countdown -= 1
        logger.debug("Room %s countdown: %d", room.room_id, room.pre_round_countdown)
        await self.broadcast(room.room_id, countdown_update_message(room.pre_round_countdown))

        if room.pre_round_countdown <= 0:
            room.timers.cancel_timer(self.TIMER_COUNTDOWN)
            await self._end_countdown(room)

    async def _end_countdown(self, room: Room) -> None:
        """Fix who contests the round, then start bidding or skip the round."""
        for player in room.players:
            if player.time_budget <= 0 and not player.is_eliminated:
                player.exhaust()
                await self._say(room, f"{player.name} is out of time and cannot contest this round.")
            elif not player.is_holding and not player.has_opted_out:
                player.has_opted_out = True

        room.active_players_in_round = [p.player_id for p in room.players if p.is_contesting]

        if room.active_players_in_round:
            await self._start_bidding(room)
            return

        room.phase = RoomPhase.ROUND_ENDED
        self._schedule_transition(room, GameEventType.NEXT_ROUND_DUE, self.no_contest_delay)
        logger.info("Room %s: nobody contested round %d", room.room_id, room.current_round)

        await self._broadcast_status(room)
        await self._say(room, "The countdown finished but nobody held on. No winner this round.")

    async def _interrupt_countdown(
        self,
        room: Room,
        notice: str,
        releaser: Optional[Player] = None
    ) -> None:
        """Abort a running countdown after a release or a departure.

        The room folds back to waiting on the same round number. With nobody
        left holding the round prompt is re-issued; otherwise the remaining
        holders get a grace period before the countdown is re-checked.
        """
        room.timers.cancel_timer(self.TIMER_COUNTDOWN)
        room.phase = RoomPhase.WAITING
        room.pre_round_countdown = 0
        if releaser is not None:
            releaser.has_opted_out = True

        if not any(p.is_holding for p in room.players):
            for player in room.players:
                player.has_opted_out = False
            self._schedule_transition(room, GameEventType.ROUND_RESTART_DUE, self.no_contest_delay)
            logger.info("Room %s: countdown abandoned, nobody holding", room.room_id)

            await self._broadcast_status(room)
            await self._say(room, "Everyone let go. Nothing is happening this round.")
            return

        self._schedule_transition(
            room, GameEventType.COUNTDOWN_RECHECK_DUE, self.countdown_recheck_delay
        )
        logger.info("Room %s: countdown interrupted", room.room_id)

        await self._broadcast_status(room)
        await self._say(room, notice)

    async def _handle_countdown_recheck_due(self, room: Room, event: GameEvent) -> None:
        if not self._phase_matches(room, event):
            return

        alive = room.alive_players
        surviving = [p for p in alive if not p.has_opted_out]
        enough = len(surviving) >= 2 or (len(alive) == 1 and len(surviving) == 1)

        if enough and all(p.is_holding for p in surviving):
            await self._start_countdown(room)
            return

        for player in room.players:
            player.has_opted_out = False
        self._schedule_transition(room, GameEventType.ROUND_RESTART_DUE, self.round_restart_delay)

        await self._broadcast_status(room)
        await self._say(room, "Countdown interrupted. Everyone hold again to get ready.")

    async def _handle_round_restart_due(self, room: Room, event: GameEvent) -> None:
        if not self._phase_matches(room, event):
            return
        await self._prepare_round(room)

    # --- Bidding ---

    async def _start_bidding(self, room: Room) -> None:
        room.phase = RoomPhase.IN_ROUND
        room.round_elapsed_time = 0
        room.timers.start_interval(
            self.TIMER_BIDDING,
            self.tick_seconds,
            GameEventType.BIDDING_TICK
        )
        logger.info(
            "Room %s: bidding started for round %d with %s",
            room.room_id, room.current_round, ", ".join(p.name for p in room.contenders())
        )

        await self._broadcast_status(room)
        await self._say(room, "Bidding has started!")
        await self.broadcast(room.room_id, bidding_started_message(room.current_round))

    async def _handle_bidding_tick(self, room: Room, event: GameEvent) -> None:
        if room.phase != RoomPhase.IN_ROUND:
            room.timers.cancel_timer(self.TIMER_BIDDING)
            return

        room.round_elapsed_time += 1

        exhausted: List[Player] = []
        for player in room.players:
            if not player.is_contesting:
                continue
            player.round_hold_duration += 1
            if player.round_hold_duration >= player.time_budget:
                player.exhaust()
                exhausted.append(player)

        for player in exhausted:
            logger.info("Room %s: %s ran out of time", room.room_id, player.name)
            await self._say(room, f"{player.name} ran out of time!")
            await self.broadcast(room.room_id, player_eliminated_message(player.player_id, player.name))
        if exhausted:
            await self._broadcast_status(room)

        await self.broadcast(room.room_id, round_timer_message(room.round_elapsed_time))
        await self._check_all_released(room)

    async def _check_all_released(self, room: Room) -> None:
        """End the round once no contender is still holding."""
        if room.phase != RoomPhase.IN_ROUND:
            return
        if any(p.is_contesting for p in room.contenders()):
            return

        room.timers.cancel_timer(self.TIMER_BIDDING)
        await self._resolve_round(room)

    async def _resolve_round(self, room: Room) -> None:
        room.phase = RoomPhase.ROUND_ENDED

        winners, duration = round_winners(room.contenders())
        for winner in winners:
            winner.award_win(duration)

        if not winners:
            text = "Nobody won this round."
        elif len(winners) == 1:
            text = f"{winners[0].name} wins this round with {duration} seconds!"
        else:
            names = " and ".join(w.name for w in winners)
            text = f"It's a tie! {names} share this round with {duration} seconds."

        for player in room.players:
            player.is_holding = False
            player.has_opted_out = False

        self._schedule_transition(room, GameEventType.NEXT_ROUND_DUE, self.round_result_delay)
        logger.info("Room %s round %d: %s", room.room_id, room.current_round, text)

        await self._say(room, text)
        await self.broadcast(room.room_id, round_winner_message(
            message=text,
            winners=[{"player_id": w.player_id, "name": w.name} for w in winners],
            duration=duration,
            is_tie=len(winners) > 1
        ))
        await self._broadcast_status(room)

    # --- Round Lifecycle ---

    async def _handle_next_round_due(self, room: Room, event: GameEvent) -> None:
        if not self._phase_matches(room, event):
            return
        await self._start_next_round(room)

    async def _start_next_round(self, room: Room, keep_holding: bool = False) -> None:
        """Advance to the next round, or end the game if it cannot go on."""
        alive = room.alive_players
        if room.current_round > 0:
            if not alive:
                await self._end_game(room, GameOverReason.ALL_ELIMINATED)
                return
            if len(alive) == 1 and len(room.players) > 1:
                await self._end_game(room, GameOverReason.SOLE_SURVIVOR)
                return

        if room.current_round >= room.max_rounds:
            await self._end_game(room, GameOverReason.ROUNDS_EXHAUSTED)
            return

        room.current_round += 1
        logger.info("Room %s: round %d of %d", room.room_id, room.current_round, room.max_rounds)
        await self._prepare_round(room, keep_holding=keep_holding)

        if (self.stats_every_rounds
                and room.current_round % self.stats_every_rounds == 0
                and room.current_round != room.max_rounds):
            await self.broadcast(room.room_id, show_round_stats_message(room.current_round))

    async def _prepare_round(self, room: Room, keep_holding: bool = False) -> None:
        """Put the room in waiting for the current round number."""
        room.phase = RoomPhase.WAITING
        room.pre_round_countdown = 0
        room.round_elapsed_time = 0
        room.active_players_in_round = []
        for player in room.players:
            player.reset_round(keep_holding=keep_holding)

        prompt = self._round_prompt(room)
        await self._broadcast_status(room)
        await self._say(room, prompt)
        await self.broadcast(room.room_id, new_round_message(
            round_num=room.current_round,
            max_rounds=room.max_rounds,
            players=[p.to_public_dict() for p in room.players],
            message=prompt
        ))

    async def _end_game(self, room: Room, reason: GameOverReason) -> None:
        room.timers.cancel_all()
        room.phase = RoomPhase.GAME_OVER
        room.game_over_reason = reason
        for player in room.players:
            player.is_holding = False

        message = game_over_message(
            reason=reason.value,
            message=GAME_OVER_TEXT[reason],
            final_standings=[p.to_public_dict() for p in rank_players(room.players)],
            final_winner=final_winner(room.players)
        )
        room.final_result = message.data
        logger.info("Room %s game over after round %d: %s",
                    room.room_id, room.current_round, reason.value)

        await self.broadcast(room.room_id, message)
        await self._broadcast_status(room)

    # --- Helpers ---

    def _schedule_transition(self, room: Room, event_type: GameEventType, delay: float) -> None:
        """Schedule a delayed transition that only applies if the phase is unchanged."""
        room.timers.start_timer(
            self.TIMER_TRANSITION,
            delay,
            event_type,
            data={"expected_phase": room.phase.value}
        )

    @staticmethod
    def _phase_matches(room: Room, event: GameEvent) -> bool:
        if event.data.get("expected_phase") == room.phase.value:
            return True
        logger.debug("Skipping %s in room %s: phase is now %s",
                     event.type.name, room.room_id, room.phase.value)
        return False

    @staticmethod
    def _round_prompt(room: Room) -> str:
        return f"Round {room.current_round}: everyone hold the button to get ready!"

    @staticmethod
    def _countdown_text(room: Room) -> str:
        return f"Everyone is holding! Countdown: {room.pre_round_countdown} seconds"

    async def _replay_phase(self, room: Room, player: Player) -> None:
        """Send the joining player what the room is currently doing."""
        player_id = player.player_id
        if room.phase == RoomPhase.PRE_COUNTDOWN:
            await self.send_to_player(player_id, countdown_update_message(room.pre_round_countdown))
            await self.send_to_player(player_id, status_text_message(self._countdown_text(room)))
        elif room.phase == RoomPhase.IN_ROUND:
            await self.send_to_player(player_id, bidding_started_message(room.current_round))
            await self.send_to_player(player_id, round_timer_message(room.round_elapsed_time))
            await self.send_to_player(player_id, status_text_message("Bidding has started!"))
        elif room.phase == RoomPhase.GAME_OVER and room.final_result is not None:
            await self.send_to_player(player_id, Message(
                type=ServerMessageType.GAME_OVER.value,
                data=dict(room.final_result)
            ))
        else:
            await self.send_to_player(player_id, status_text_message(self._round_prompt(room)))

    async def _broadcast_status(self, room: Room) -> None:
        await self.broadcast(room.room_id, player_status_message(**room.to_public_dict()))

    async def _say(self, room: Room, text: str) -> None:
        await self.broadcast(room.room_id, status_text_message(text))

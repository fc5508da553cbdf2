"""Player record for a time-auction room."""
from dataclasses import dataclass
from typing import Any, Dict


@dataclass(eq=False)
class Player:
    """Per-participant state inside one room.

    ``time_budget`` only ever goes down and ``tokens`` only ever goes up.
    ``has_opted_out`` and ``round_hold_duration`` describe the current round
    and are cleared when a new round is prepared. ``is_eliminated`` is
    permanent.
    """

    player_id: str
    name: str
    time_budget: int

    tokens: int = 0
    is_holding: bool = False
    has_opted_out: bool = False
    round_hold_duration: int = 0
    is_eliminated: bool = False

    def __hash__(self):
        return hash(self.player_id)

    def __eq__(self, other):
        if isinstance(other, Player):
            return self.player_id == other.player_id
        return False

    @property
    def can_hold(self) -> bool:
        """Whether a hold from this player may take effect."""
        return not self.is_eliminated and self.time_budget > 0

    @property
    def is_contesting(self) -> bool:
        """Holding, still in the round, and not out of time."""
        return self.is_holding and not self.has_opted_out and not self.is_eliminated

    def reset_round(self, keep_holding: bool = False) -> None:
        """Clear per-round state ahead of a fresh round."""
        if not keep_holding:
            self.is_holding = False
        self.has_opted_out = False
        self.round_hold_duration = 0

    def exhaust(self) -> None:
        """Force-release a player whose budget has run out.

        The hold duration is clamped to what was left of the budget and the
        budget drops to zero, so the player is out of this round and every
        round after it.
        """
        if self.round_hold_duration > self.time_budget:
            self.round_hold_duration = max(self.time_budget, 0)
        self.time_budget = min(self.time_budget, 0)
        self.is_holding = False
        self.has_opted_out = True
        self.is_eliminated = True

    def award_win(self, duration: int) -> None:
        """Pay for a round win: one token for ``duration`` seconds of budget."""
        self.tokens += 1
        self.time_budget -= duration
        if self.time_budget <= 0:
            self.time_budget = 0
            self.is_holding = False
            self.is_eliminated = True

    def to_public_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "name": self.name,
            "time_budget": self.time_budget,
            "tokens": self.tokens,
            "is_holding": self.is_holding,
            "has_opted_out": self.has_opted_out,
            "round_hold_duration": self.round_hold_duration,
            "is_eliminated": self.is_eliminated,
        }

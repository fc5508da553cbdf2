"""Round resolution and final ranking rules.

These are pure functions over player records so they can be re-run on the
same state and yield the same answer.
"""
from typing import Any, Dict, Iterable, List, Optional, Tuple

from auction.player import Player


def round_winners(contenders: Iterable[Player]) -> Tuple[List[Player], int]:
    """Pick the winners of a bidding round.

    Only contenders who neither opted out nor were eliminated are eligible.
    Everyone matching the longest hold wins (ties share the win). A longest
    hold of zero means nobody won.

    Returns:
        (winners, duration) where winners is empty when nobody won.
    """
    eligible = [p for p in contenders if not p.has_opted_out and not p.is_eliminated]
    if not eligible:
        return [], 0

    best = max(p.round_hold_duration for p in eligible)
    if best <= 0:
        return [], 0

    return [p for p in eligible if p.round_hold_duration == best], best


def _rank_key(player: Player) -> Tuple[int, int]:
    return (-player.tokens, -player.time_budget)


def rank_players(players: Iterable[Player]) -> List[Player]:
    """Order every player for the final standings.

    Survivors come first, ordered by tokens then remaining time (both
    descending); eliminated players follow in the same order. Exact ties keep
    join order.
    """
    return sorted(players, key=lambda p: (p.is_eliminated,) + _rank_key(p))


def _winner_entry(player: Player) -> Dict[str, Any]:
    return {
        "player_id": player.player_id,
        "name": player.name,
        "tokens": player.tokens,
        "time_budget": player.time_budget,
    }


def final_winner(players: Iterable[Player]) -> Optional[Dict[str, Any]]:
    """Describe the overall winner, or the tied set of winners.

    Returns None when no player survived.
    """
    survivors = sorted((p for p in players if not p.is_eliminated), key=_rank_key)
    if not survivors:
        return None

    top = _rank_key(survivors[0])
    leaders = [p for p in survivors if _rank_key(p) == top]
    if len(leaders) > 1:
        return {
            "is_tie": True,
            "players": [_winner_entry(p) for p in leaders],
        }
    return {
        "is_tie": False,
        "player": _winner_entry(leaders[0]),
    }

"""Unit tests for auction/standings.py - round winners and final ranking."""
from auction.player import Player
from auction.standings import final_winner, rank_players, round_winners


def contender(player_id, duration, **overrides) -> Player:
    player = Player(player_id=player_id, name=player_id.upper(), time_budget=30)
    player.round_hold_duration = duration
    for key, value in overrides.items():
        setattr(player, key, value)
    return player


class TestRoundWinners:
    """Tests for round_winners."""

    def test_longest_hold_wins(self):
        x = contender("x", 4)
        y = contender("y", 7)

        winners, duration = round_winners([x, y])

        assert winners == [y]
        assert duration == 7

    def test_tie_shares_the_win(self):
        x = contender("x", 5)
        y = contender("y", 5)
        z = contender("z", 2)

        winners, duration = round_winners([x, y, z])

        assert winners == [x, y]
        assert duration == 5

    def test_zero_duration_means_nobody_won(self):
        winners, duration = round_winners([contender("x", 0), contender("y", 0)])

        assert winners == []
        assert duration == 0

    def test_empty_contenders(self):
        assert round_winners([]) == ([], 0)

    def test_eliminated_players_are_excluded(self):
        x = contender("x", 10, is_eliminated=True)
        y = contender("y", 3)

        winners, duration = round_winners([x, y])

        assert winners == [y]
        assert duration == 3

    def test_opted_out_players_are_excluded(self):
        x = contender("x", 9, has_opted_out=True)
        y = contender("y", 1)

        winners, _ = round_winners([x, y])

        assert winners == [y]

    def test_all_excluded_means_nobody_won(self):
        winners, duration = round_winners([contender("x", 10, is_eliminated=True)])

        assert winners == []
        assert duration == 0


class TestRankPlayers:
    """Tests for rank_players."""

    def test_survivors_before_eliminated(self):
        a = contender("a", 0, tokens=5, is_eliminated=True, time_budget=0)
        b = contender("b", 0, tokens=1)

        assert rank_players([a, b]) == [b, a]

    def test_tokens_then_budget(self):
        a = contender("a", 0, tokens=2, time_budget=5)
        b = contender("b", 0, tokens=2, time_budget=9)
        c = contender("c", 0, tokens=3, time_budget=1)

        assert rank_players([a, b, c]) == [c, b, a]

    def test_exact_ties_keep_order(self):
        a = contender("a", 0, tokens=1, time_budget=5)
        b = contender("b", 0, tokens=1, time_budget=5)

        assert rank_players([a, b]) == [a, b]
        assert rank_players([b, a]) == [b, a]


class TestFinalWinner:
    """Tests for final_winner."""

    def test_single_winner(self):
        a = contender("a", 0, tokens=2, time_budget=5)
        b = contender("b", 0, tokens=1, time_budget=20)

        result = final_winner([a, b])

        assert result["is_tie"] is False
        assert result["player"]["player_id"] == "a"
        assert result["player"]["tokens"] == 2

    def test_budget_breaks_token_tie(self):
        a = contender("a", 0, tokens=2, time_budget=5)
        b = contender("b", 0, tokens=2, time_budget=8)

        result = final_winner([a, b])

        assert result["is_tie"] is False
        assert result["player"]["player_id"] == "b"

    def test_exact_tie(self):
        a = contender("a", 0, tokens=2, time_budget=5)
        b = contender("b", 0, tokens=2, time_budget=5)
        c = contender("c", 0, tokens=1, time_budget=5)

        result = final_winner([a, b, c])

        assert result["is_tie"] is True
        assert [p["player_id"] for p in result["players"]] == ["a", "b"]

    def test_eliminated_players_never_win(self):
        a = contender("a", 0, tokens=9, time_budget=0, is_eliminated=True)
        b = contender("b", 0, tokens=0, time_budget=3)

        result = final_winner([a, b])

        assert result["player"]["player_id"] == "b"

    def test_nobody_survived(self):
        a = contender("a", 0, tokens=9, time_budget=0, is_eliminated=True)

        assert final_winner([a]) is None

    def test_recomputing_gives_same_answer(self):
        players = [
            contender("a", 0, tokens=1, time_budget=4),
            contender("b", 0, tokens=1, time_budget=4),
            contender("c", 0, tokens=0, time_budget=0, is_eliminated=True),
        ]

        assert final_winner(players) == final_winner(players)
        assert rank_players(players) == rank_players(rank_players(players))

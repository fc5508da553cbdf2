"""Unit tests for auction/player.py - Player record."""
from auction.player import Player


def make_player(**overrides) -> Player:
    fields = {"player_id": "p1", "name": "Alice", "time_budget": 20}
    fields.update(overrides)
    return Player(**fields)


class TestPlayerInitialization:
    """Tests for a fresh Player."""

    def test_defaults(self):
        player = make_player()

        assert player.tokens == 0
        assert player.is_holding is False
        assert player.has_opted_out is False
        assert player.round_hold_duration == 0
        assert player.is_eliminated is False

    def test_equality_is_by_player_id(self):
        assert make_player() == make_player(name="Someone else", time_budget=5)
        assert make_player() != make_player(player_id="p2")
        assert len({make_player(), make_player()}) == 1


class TestHoldState:
    """Tests for can_hold / is_contesting."""

    def test_can_hold_with_budget(self):
        assert make_player().can_hold is True

    def test_cannot_hold_without_budget(self):
        assert make_player(time_budget=0).can_hold is False

    def test_cannot_hold_when_eliminated(self):
        assert make_player(is_eliminated=True).can_hold is False

    def test_contesting_requires_holding(self):
        player = make_player()
        assert player.is_contesting is False

        player.is_holding = True
        assert player.is_contesting is True

        player.has_opted_out = True
        assert player.is_contesting is False


class TestRoundReset:
    """Tests for reset_round."""

    def test_reset_clears_round_state(self):
        player = make_player(is_holding=True, has_opted_out=True, round_hold_duration=7)

        player.reset_round()

        assert player.is_holding is False
        assert player.has_opted_out is False
        assert player.round_hold_duration == 0

    def test_reset_can_keep_holding(self):
        player = make_player(is_holding=True, round_hold_duration=3)

        player.reset_round(keep_holding=True)

        assert player.is_holding is True
        assert player.round_hold_duration == 0

    def test_reset_keeps_budget_and_tokens(self):
        player = make_player(tokens=2, time_budget=11)

        player.reset_round()

        assert player.tokens == 2
        assert player.time_budget == 11


class TestExhaust:
    """Tests for forced release on budget exhaustion."""

    def test_exhaust_eliminates_and_zeroes_budget(self):
        player = make_player(time_budget=10, is_holding=True, round_hold_duration=10)

        player.exhaust()

        assert player.time_budget == 0
        assert player.is_eliminated is True
        assert player.is_holding is False
        assert player.has_opted_out is True
        assert player.round_hold_duration == 10

    def test_exhaust_clamps_hold_duration(self):
        player = make_player(time_budget=10, round_hold_duration=12)

        player.exhaust()

        assert player.round_hold_duration == 10

    def test_exhaust_keeps_tokens(self):
        player = make_player(tokens=3)

        player.exhaust()

        assert player.tokens == 3


class TestAwardWin:
    """Tests for paying a round win."""

    def test_win_costs_duration_and_pays_token(self):
        player = make_player(time_budget=20)

        player.award_win(7)

        assert player.tokens == 1
        assert player.time_budget == 13
        assert player.is_eliminated is False

    def test_win_spending_whole_budget_eliminates(self):
        player = make_player(time_budget=7, is_holding=True)

        player.award_win(7)

        assert player.tokens == 1
        assert player.time_budget == 0
        assert player.is_eliminated is True
        assert player.is_holding is False


class TestPublicDict:
    def test_public_dict_fields(self):
        data = make_player(tokens=1).to_public_dict()

        assert data == {
            "player_id": "p1",
            "name": "Alice",
            "time_budget": 20,
            "tokens": 1,
            "is_holding": False,
            "has_opted_out": False,
            "round_hold_duration": 0,
            "is_eliminated": False,
        }

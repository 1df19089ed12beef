"""
Unit tests for player historical stats.
"""

import pytest

from lineup_backend.database.models import Game, Player
from lineup_backend.services import stats_service
from lineup_backend.services.stats_service import FinalizedLineup, aggregate_player_stats
from lineup_backend.utils.datetime_utils import utcnow


def _lineup(game_id, slot_count, *entries):
    return FinalizedLineup(game_id=game_id, slot_count=slot_count, entries=list(entries))


class TestAggregatePlayerStats:
    """Tests for aggregate_player_stats."""

    def test_player_in_no_lineups_has_zero_share(self):
        lineups = [_lineup(1, 6, {"player_id": 2, "innings": {"1": "SS"}, "batting_order": 1})]
        stats = aggregate_player_stats(lineups, 1)
        assert stats.pct_slots_played == 0
        assert stats.top_position is None
        assert stats.avg_batting_order is None
        assert stats.position_counts == {}

    def test_no_lineups_at_all(self):
        stats = aggregate_player_stats([], 1)
        assert stats.pct_slots_played == 0

    def test_counts_played_slots_and_positions(self):
        lineups = [
            _lineup(1, 4, {"player_id": 1, "innings": {"1": "SS", "2": "SS", "3": "OUT", "4": "2B"}, "batting_order": 2}),
            _lineup(2, 4, {"player_id": 1, "innings": {"1": "P", "2": "bench", "3": "ss", "4": None}, "batting_order": 3}),
        ]
        stats = aggregate_player_stats(lineups, 1)
        # 5 played slots out of 8 available
        assert stats.pct_slots_played == 62.5
        assert stats.position_counts == {"2B": 1, "P": 1, "SS": 3}
        assert stats.top_position == "SS"
        assert stats.avg_batting_order == 3  # 2.5 rounds half up

    def test_share_is_rounded_to_one_decimal(self):
        lineups = [_lineup(1, 3, {"player_id": 7, "innings": {"1": "C"}})]
        stats = aggregate_player_stats(lineups, 7)
        assert stats.pct_slots_played == 33.3

    def test_player_id_matches_across_string_and_int(self):
        lineups = [_lineup(1, 2, {"player_id": "5", "innings": {"1": "LF", "2": "LF"}})]
        stats = aggregate_player_stats(lineups, 5)
        assert stats.pct_slots_played == 100.0
        assert stats.top_position == "LF"

    def test_top_position_tie_goes_to_alphabetically_first(self):
        lineups = [_lineup(1, 4, {"player_id": 1, "innings": {"1": "SS", "2": "CF", "3": "SS", "4": "CF"}})]
        assert aggregate_player_stats(lineups, 1).top_position == "CF"

    def test_slots_outside_game_range_do_not_count(self):
        lineups = [_lineup(1, 2, {"player_id": 1, "innings": {"1": "C", "2": "C", "3": "C", "x": "C"}})]
        stats = aggregate_player_stats(lineups, 1)
        assert stats.pct_slots_played == 100.0
        assert stats.position_counts == {"C": 2}

    def test_share_stays_within_bounds(self):
        lineups = [
            _lineup(game_id, slots, {"player_id": 1, "innings": {str(s): "P" for s in range(1, slots + 3)}})
            for game_id, slots in ((1, 1), (2, 5), (3, 9))
        ]
        stats = aggregate_player_stats(lineups, 1)
        assert 0 <= stats.pct_slots_played <= 100

    def test_malformed_entries_are_skipped(self):
        lineups = [
            _lineup(
                1,
                2,
                "not-a-dict",
                {"innings": {"1": "SS"}},
                {"player_id": 1, "innings": {"1": "SS"}, "batting_order": "leadoff"},
            ),
            _lineup(2, 2, {"player_id": 1, "innings": {"1": "SS", "2": "SS"}, "batting_order": 4}),
        ]
        stats = aggregate_player_stats(lineups, 1)
        assert stats.pct_slots_played == 75.0
        assert stats.avg_batting_order == 4

    def test_non_mapping_innings_still_counts_available_slots(self):
        lineups = [_lineup(1, 3, {"player_id": 1, "innings": ["SS", "SS"], "batting_order": 1})]
        stats = aggregate_player_stats(lineups, 1)
        assert stats.pct_slots_played == 0
        assert stats.avg_batting_order == 1

    def test_boolean_batting_order_is_ignored(self):
        lineups = [_lineup(1, 1, {"player_id": 1, "innings": {"1": "P"}, "batting_order": True})]
        assert aggregate_player_stats(lineups, 1).avg_batting_order is None

    @pytest.mark.parametrize("batting_order", ["2.7", 2.5, "inf", float("nan"), 10**400, 0, "-1"])
    def test_unusable_batting_order_is_skipped_but_game_still_counts(self, batting_order):
        lineups = [
            _lineup(1, 2, {"player_id": 1, "innings": {"1": "SS", "2": "SS"}, "batting_order": batting_order}),
            _lineup(2, 2, {"player_id": 1, "innings": {"1": "CF"}, "batting_order": 4}),
        ]
        stats = aggregate_player_stats(lineups, 1)
        assert stats.avg_batting_order == 4
        assert stats.pct_slots_played == 75.0
        assert stats.position_counts == {"CF": 1, "SS": 2}

    @pytest.mark.parametrize("batting_order, expected", [("3", 3), (3.0, 3), ("5.0", 5)])
    def test_whole_number_batting_order_forms(self, batting_order, expected):
        lineups = [_lineup(1, 1, {"player_id": 1, "innings": {"1": "P"}, "batting_order": batting_order})]
        assert aggregate_player_stats(lineups, 1).avg_batting_order == expected

    def test_identical_input_gives_identical_output(self):
        lineups = [
            _lineup(1, 3, {"player_id": 1, "innings": {"1": "SS", "2": "CF", "3": "OUT"}, "batting_order": 1}),
            _lineup(2, 3, {"player_id": 1, "innings": {"1": "CF", "2": "SS"}, "batting_order": 2}),
        ]
        first = aggregate_player_stats(lineups, 1)
        second = aggregate_player_stats(lineups, 1)
        assert first == second
        assert first.to_dict() == second.to_dict()


@pytest.mark.asyncio
async def test_get_player_stats_reads_only_finalized_games(db_session, team):
    player = Player(team_id=team.id, first_name="Dana", last_name="Diaz")
    db_session.add(player)
    await db_session.flush()

    db_session.add_all(
        [
            Game(
                team_id=team.id,
                innings=2,
                lineup_data=[{"player_id": player.id, "innings": {"1": "C", "2": "C"}, "batting_order": 1}],
                finalized_at=utcnow(),
            ),
            # Draft lineup, never finalized
            Game(
                team_id=team.id,
                innings=2,
                lineup_data=[{"player_id": player.id, "innings": {"1": "P", "2": "P"}, "batting_order": 9}],
            ),
        ]
    )
    await db_session.flush()

    stats = await stats_service.get_player_stats(db_session, player)
    assert stats.pct_slots_played == 100.0
    assert stats.position_counts == {"C": 2}
    assert stats.avg_batting_order == 1


@pytest.mark.asyncio
async def test_get_player_stats_without_team(db_session):
    player = Player(team_id=None, first_name="Free", last_name="Agent")
    db_session.add(player)
    await db_session.flush()

    stats = await stats_service.get_player_stats(db_session, player)
    assert stats.pct_slots_played is None
    assert stats.top_position is None
    assert stats.position_counts == {}

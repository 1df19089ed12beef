"""
Tests for lineup validation and persistence.
"""

import pytest

from lineup_backend.services import lineup_service
from lineup_backend.services.lineup_service import normalize_lineup_entries, validate_lineup
from lineup_backend.utils.exceptions import DuplicateAssignment, ValidationFailed


class TestValidateLineup:
    """Per-inning exclusivity checks."""

    def test_rejects_shared_position_in_same_inning(self):
        entries = [
            {"player_id": 1, "innings": {"3": "SS"}},
            {"player_id": 2, "innings": {"3": "SS"}},
        ]
        with pytest.raises(DuplicateAssignment) as exc_info:
            validate_lineup(entries, 6)
        assert exc_info.value.slot == 3
        assert exc_info.value.label == "SS"
        assert exc_info.value.to_dict()["error"] == "duplicate_assignment"

    def test_accepts_multiple_players_out_in_same_inning(self):
        entries = [
            {"player_id": 1, "innings": {"3": "OUT"}},
            {"player_id": 2, "innings": {"3": "OUT"}},
            {"player_id": 3, "innings": {"3": "bench"}},
            {"player_id": 4, "innings": {"3": "BENCH"}},
        ]
        validate_lineup(entries, 6)

    def test_duplicate_check_ignores_case(self):
        entries = [
            {"player_id": 1, "innings": {"1": "cf"}},
            {"player_id": 2, "innings": {"1": "CF"}},
        ]
        with pytest.raises(DuplicateAssignment) as exc_info:
            validate_lineup(entries, 1)
        assert exc_info.value.label == "CF"

    def test_same_position_in_different_innings_is_fine(self):
        entries = [
            {"player_id": 1, "innings": {"1": "P", "2": "SS"}},
            {"player_id": 2, "innings": {"1": "SS", "2": "P"}},
        ]
        validate_lineup(entries, 2)

    def test_integer_slot_keys_are_checked(self):
        entries = [
            {"player_id": 1, "innings": {2: "C"}},
            {"player_id": 2, "innings": {"2": "C"}},
        ]
        with pytest.raises(DuplicateAssignment):
            validate_lineup(entries, 2)

    def test_reports_first_inning_with_a_clash(self):
        entries = [
            {"player_id": 1, "innings": {"2": "LF", "4": "RF"}},
            {"player_id": 2, "innings": {"2": "LF", "4": "RF"}},
        ]
        with pytest.raises(DuplicateAssignment) as exc_info:
            validate_lineup(entries, 4)
        assert exc_info.value.slot == 2


class TestNormalizeLineupEntries:
    KNOWN = {"P", "C", "SS", "OUT", "BENCH"}

    def test_returns_stored_form(self):
        result = normalize_lineup_entries(
            [{"player_id": "4", "innings": {1: "ss", "2": None}, "batting_order": 1}], 2, {4}, self.KNOWN
        )
        assert result == [{"player_id": 4, "innings": {"1": "SS", "2": None}, "batting_order": 1}]

    def test_rejects_player_from_another_team(self):
        with pytest.raises(ValidationFailed):
            normalize_lineup_entries([{"player_id": 99, "innings": {}}], 2, {4}, self.KNOWN)

    def test_rejects_repeated_player(self):
        with pytest.raises(ValidationFailed):
            normalize_lineup_entries(
                [{"player_id": 4, "innings": {}}, {"player_id": 4, "innings": {}}], 2, {4}, self.KNOWN
            )

    def test_rejects_inning_outside_game(self):
        with pytest.raises(ValidationFailed):
            normalize_lineup_entries([{"player_id": 4, "innings": {"3": "P"}}], 2, {4}, self.KNOWN)

    def test_rejects_unknown_position(self):
        with pytest.raises(ValidationFailed):
            normalize_lineup_entries([{"player_id": 4, "innings": {"1": "GOALIE"}}], 2, {4}, self.KNOWN)

    def test_rejects_non_integer_batting_order(self):
        with pytest.raises(ValidationFailed):
            normalize_lineup_entries(
                [{"player_id": 4, "innings": {}, "batting_order": "first"}], 2, {4}, self.KNOWN
            )


@pytest.mark.asyncio
async def test_save_lineup_persists_and_finalizes(db_session, game, roster):
    entries = [
        {"player_id": roster[0].id, "innings": {"1": "P", "2": "C"}, "batting_order": 1},
        {"player_id": roster[1].id, "innings": {"1": "C", "2": "P"}, "batting_order": 2},
    ]
    result = await lineup_service.save_lineup(db_session, game, entries)

    assert result["game_id"] == game.id
    assert result["finalized_at"] is not None
    assert game.finalized_at is not None
    assert game.lineup_data[0]["innings"] == {"1": "P", "2": "C"}


@pytest.mark.asyncio
async def test_save_lineup_rejects_duplicate_without_writing(db_session, game, roster):
    entries = [
        {"player_id": roster[0].id, "innings": {"3": "SS"}},
        {"player_id": roster[1].id, "innings": {"3": "SS"}},
    ]
    with pytest.raises(DuplicateAssignment):
        await lineup_service.save_lineup(db_session, game, entries)

    assert game.lineup_data is None
    assert game.finalized_at is None


@pytest.mark.asyncio
async def test_get_lineup_includes_roster_and_preferences(db_session, game, roster):
    await lineup_service.save_lineup(
        db_session, game, [{"player_id": roster[0].id, "innings": {"1": "P"}, "batting_order": 1}]
    )

    data = await lineup_service.get_lineup(db_session, game)

    assert data["innings"] == 6
    assert len(data["players"]) == 9
    assert data["players"][0]["preferred_positions"] == []
    assert data["lineup"][0]["player_id"] == roster[0].id

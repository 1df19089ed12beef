"""
Lineup service.

Validates and persists game lineups. Manual submissions and optimizer
results go through the same save_lineup() path, so every stored lineup
satisfies per-inning position exclusivity.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set

from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.database.models import Game
from lineup_backend.services import data_service, preference_service
from lineup_backend.utils.constants import is_excluded_label, normalize_label
from lineup_backend.utils.datetime_utils import isoformat_or_none, utcnow
from lineup_backend.utils.exceptions import DuplicateAssignment, ValidationFailed

logger = logging.getLogger(__name__)


def _slot_label(innings: Mapping[Any, Any], slot: int) -> Optional[Any]:
    """Label for a slot whether keys were stored as "3" or 3."""
    if str(slot) in innings:
        return innings[str(slot)]
    return innings.get(slot)


def validate_lineup(entries: Sequence[Mapping[str, Any]], slot_count: int) -> None:
    """
    Enforce per-inning exclusivity of non-excluded labels.

    Within any inning no two entries may carry the same label (compared
    case-insensitively). OUT/BENCH may repeat freely.

    Args:
        entries: Proposed lineup entries, each with an "innings" mapping
        slot_count: Number of innings in the game

    Raises:
        DuplicateAssignment: On the first label that repeats within an inning
    """
    for slot in range(1, slot_count + 1):
        seen: Set[str] = set()
        for entry in entries:
            innings = entry.get("innings") or {}
            label = _slot_label(innings, slot)
            if not label or is_excluded_label(label):
                continue
            folded = normalize_label(label)
            if folded in seen:
                raise DuplicateAssignment(slot, folded)
            seen.add(folded)


def _coerce_player_id(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(value)
    return int(str(value).strip())


def normalize_lineup_entries(
    entries: Iterable[Any],
    slot_count: int,
    team_player_ids: Set[int],
    known_labels: Set[str],
) -> List[Dict[str, Any]]:
    """
    Check the shape of a proposed lineup and return it in stored form.

    Stored form: {"player_id": int, "innings": {"1": "SS", ...}, "batting_order": int | None}

    Raises:
        ValidationFailed: Unknown player, out-of-range inning, unknown position,
            repeated player or non-integer batting order
    """
    normalized: List[Dict[str, Any]] = []
    seen_players: Set[int] = set()

    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            raise ValidationFailed(f"Lineup entry {index} must be an object.")

        try:
            player_id = _coerce_player_id(entry.get("player_id"))
        except (TypeError, ValueError):
            raise ValidationFailed(f"Lineup entry {index} has an invalid player_id.")
        if player_id not in team_player_ids:
            raise ValidationFailed(f"Player {player_id} is not on this game's team.", player_id=player_id)
        if player_id in seen_players:
            raise ValidationFailed(f"Player {player_id} appears more than once.", player_id=player_id)
        seen_players.add(player_id)

        innings = entry.get("innings") or {}
        if not isinstance(innings, Mapping):
            raise ValidationFailed(f"Innings for player {player_id} must be an object.")

        stored_innings: Dict[str, Optional[str]] = {}
        for slot, label in innings.items():
            try:
                slot_number = int(slot)
            except (TypeError, ValueError):
                raise ValidationFailed(f"Inning '{slot}' for player {player_id} is not a number.")
            if not 1 <= slot_number <= slot_count:
                raise ValidationFailed(
                    f"Inning {slot_number} is outside 1..{slot_count}.", player_id=player_id
                )
            if label in (None, ""):
                stored_innings[str(slot_number)] = None
                continue
            if not isinstance(label, str) or normalize_label(label) not in known_labels:
                raise ValidationFailed(f"Unknown position '{label}'.", player_id=player_id)
            stored_innings[str(slot_number)] = normalize_label(label)

        batting_order = entry.get("batting_order")
        if batting_order is not None:
            if isinstance(batting_order, bool) or not isinstance(batting_order, int):
                raise ValidationFailed(
                    f"Batting order for player {player_id} must be an integer.", player_id=player_id
                )

        normalized.append(
            {"player_id": player_id, "innings": stored_innings, "batting_order": batting_order}
        )

    return normalized


async def save_lineup(
    session: AsyncSession, game: Game, entries: Sequence[Any]
) -> Dict[str, Any]:
    """
    Validate and persist a lineup for a game.

    Validation runs completely before the game row is touched.

    Args:
        session: Database session
        game: Game ORM instance
        entries: Proposed lineup entries

    Returns:
        Dict with lineup and finalized_at

    Raises:
        ValidationFailed / DuplicateAssignment: Lineup rejected, nothing written
    """
    if not isinstance(entries, (list, tuple)):
        raise ValidationFailed("Lineup must be a list of player entries.")

    roster = await data_service.get_team_players(session, game.team_id)
    known_labels = await data_service.get_position_names(session)
    normalized = normalize_lineup_entries(
        entries, game.innings, {player.id for player in roster}, known_labels
    )
    validate_lineup(normalized, game.innings)

    game.lineup_data = normalized
    game.finalized_at = utcnow()
    await session.flush()

    logger.info(f"Saved lineup for game {game.id} with {len(normalized)} entries")
    return {"game_id": game.id, "lineup": normalized, "finalized_at": isoformat_or_none(game.finalized_at)}


async def get_lineup(session: AsyncSession, game: Game) -> Dict[str, Any]:
    """
    Lineup editor payload: innings, roster with preferences, stored lineup.

    Args:
        session: Database session
        game: Game ORM instance

    Returns:
        Dict with game_id, innings, players, lineup, finalized_at
    """
    roster = await data_service.get_team_players(session, game.team_id)
    preferences = await preference_service.get_preference_names(session, [p.id for p in roster])
    players = [
        {
            "id": player.id,
            "first_name": player.first_name,
            "last_name": player.last_name,
            "jersey_number": player.jersey_number,
            "preferred_positions": preferences.get(player.id, {}).get("preferred", []),
            "restricted_positions": preferences.get(player.id, {}).get("restricted", []),
        }
        for player in roster
    ]
    return {
        "game_id": game.id,
        "innings": game.innings,
        "players": players,
        "lineup": game.lineup_data or [],
        "finalized_at": isoformat_or_none(game.finalized_at),
    }

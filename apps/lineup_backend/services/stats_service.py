"""
Player historical stats service.

Computes per-player participation statistics from a team's finalized lineups:
share of available innings played, most frequent position, average batting
order and per-position counts. Results are derived on demand and never stored.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.database.models import Game, Player
from lineup_backend.services import data_service
from lineup_backend.utils.constants import is_excluded_label, normalize_label

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FinalizedLineup:
    """One finalized game lineup as the aggregator sees it."""

    game_id: Optional[int]
    slot_count: int
    entries: Sequence[Any]

    @classmethod
    def from_game(cls, game: Game) -> "FinalizedLineup":
        entries = game.lineup_data if isinstance(game.lineup_data, list) else []
        return cls(game_id=game.id, slot_count=game.innings or 0, entries=entries)


@dataclass
class PlayerHistoricalStats:
    """Derived stats for a single player."""

    pct_slots_played: Optional[float] = 0.0
    top_position: Optional[str] = None
    avg_batting_order: Optional[int] = None
    position_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pct_slots_played": self.pct_slots_played,
            "top_position": self.top_position,
            "avg_batting_order": self.avg_batting_order,
            "position_counts": dict(self.position_counts),
        }


def _slot_in_range(slot: Any, slot_count: int) -> bool:
    try:
        return 1 <= int(slot) <= slot_count
    except (TypeError, ValueError):
        return False


def _parse_batting_order(value: Any) -> Optional[int]:
    """Positive whole batting order ("3", 3, 3.0), or None."""
    # bool is an int subclass but never a batting order
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number) or not number.is_integer() or number < 1:
        return None
    return int(number)


class StatsAccumulator:
    """Running totals for one player across lineups."""

    def __init__(self, player_id: Any):
        self.player_id = str(player_id)
        self.slots_available = 0
        self.slots_played = 0
        self.position_counts: Dict[str, int] = {}
        self.batting_orders: List[int] = []

    def _find_entry(self, lineup: FinalizedLineup) -> Optional[Dict[str, Any]]:
        """First well-formed entry for this player; malformed entries are skipped."""
        for entry in lineup.entries:
            if not isinstance(entry, dict) or entry.get("player_id") in (None, ""):
                logger.warning(
                    f"Stats calc: skipping lineup entry without player link in game {lineup.game_id}"
                )
                continue
            if str(entry["player_id"]) == self.player_id:
                return entry
        return None

    def add_lineup(self, lineup: FinalizedLineup) -> None:
        entry = self._find_entry(lineup)
        if entry is None:
            return

        self.slots_available += lineup.slot_count

        innings = entry.get("innings")
        if innings is not None and not isinstance(innings, dict):
            logger.warning(
                f"Stats calc: innings for player {self.player_id} in game {lineup.game_id} "
                f"is not a mapping, ignoring"
            )
            innings = None
        for slot, label in (innings or {}).items():
            if not label or not isinstance(label, str) or is_excluded_label(label):
                continue
            # Slots outside the game's range would push the share past 100%
            if not _slot_in_range(slot, lineup.slot_count):
                logger.warning(
                    f"Stats calc: ignoring inning {slot!r} outside 1..{lineup.slot_count} "
                    f"for player {self.player_id} in game {lineup.game_id}"
                )
                continue
            position = normalize_label(label)
            self.slots_played += 1
            self.position_counts[position] = self.position_counts.get(position, 0) + 1

        batting_order = entry.get("batting_order")
        if batting_order is None:
            return
        position_in_order = _parse_batting_order(batting_order)
        if position_in_order is None:
            logger.warning(
                f"Stats calc: invalid batting order {batting_order!r} for player "
                f"{self.player_id} in game {lineup.game_id}, skipping"
            )
            return
        self.batting_orders.append(position_in_order)

    @property
    def pct_slots_played(self) -> float:
        if self.slots_available <= 0:
            return 0.0
        return round(100 * self.slots_played / self.slots_available, 1)

    @property
    def top_position(self) -> Optional[str]:
        """Most frequent position; ties go to the alphabetically first label."""
        if not self.position_counts:
            return None
        return min(self.position_counts.items(), key=lambda item: (-item[1], item[0]))[0]

    @property
    def avg_batting_order(self) -> Optional[int]:
        if not self.batting_orders:
            return None
        # Half-up rounding; Python's round() would send 2.5 to 2
        mean = sum(self.batting_orders) / len(self.batting_orders)
        return int(mean + 0.5)

    def result(self) -> PlayerHistoricalStats:
        return PlayerHistoricalStats(
            pct_slots_played=self.pct_slots_played,
            top_position=self.top_position,
            avg_batting_order=self.avg_batting_order,
            position_counts=dict(sorted(self.position_counts.items())),
        )


def aggregate_player_stats(
    lineups: Iterable[FinalizedLineup], player_id: Any
) -> PlayerHistoricalStats:
    """
    Compute historical stats for one player from finalized lineups.

    Pure function: identical input always gives identical output.

    Args:
        lineups: The team's finalized lineups
        player_id: Target player

    Returns:
        PlayerHistoricalStats
    """
    accumulator = StatsAccumulator(player_id)
    for lineup in lineups:
        try:
            accumulator.add_lineup(lineup)
        except Exception as e:
            logger.warning(f"Stats calc: failed processing game {lineup.game_id}, player {player_id}: {e}")
    return accumulator.result()


def unlinked_player_stats() -> PlayerHistoricalStats:
    """Result for a player that has no team link."""
    return PlayerHistoricalStats(pct_slots_played=None)


async def load_team_lineups(session: AsyncSession, team_id: int) -> List[FinalizedLineup]:
    """
    Load a team's finalized lineups.

    Load once per request and reuse for every player on the roster; the result
    must not outlive the request since lineups change between calls.
    """
    games = await data_service.get_finalized_games(session, team_id)
    return [FinalizedLineup.from_game(game) for game in games]


async def get_player_stats(
    session: AsyncSession,
    player: Player,
    lineups: Optional[List[FinalizedLineup]] = None,
) -> PlayerHistoricalStats:
    """
    Stats for a player, loading the team's lineups unless already supplied.

    Args:
        session: Database session
        player: Player ORM instance
        lineups: Lineups already loaded in this request

    Returns:
        PlayerHistoricalStats
    """
    if player.team_id is None:
        logger.warning(f"Player ID {player.id} missing team relationship for stats calculation.")
        return unlinked_player_stats()
    if lineups is None:
        lineups = await load_team_lineups(session, player.team_id)
    return aggregate_player_stats(lineups, player.id)

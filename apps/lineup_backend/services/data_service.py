"""
Data access helpers shared by the services: settings rows and simple
record lookups for teams, games, players and positions.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.database.models import Game, Player, Position, Setting, Team
from lineup_backend.utils.exceptions import NotFound

logger = logging.getLogger(__name__)


async def get_setting(session: AsyncSession, key: str) -> Optional[str]:
    """
    Get a setting value.

    Args:
        session: Database session
        key: Setting key

    Returns:
        Setting value or None if not found
    """
    result = await session.execute(select(Setting).where(Setting.key == key))
    setting = result.scalar_one_or_none()
    return setting.value if setting else None


async def set_setting(session: AsyncSession, key: str, value: str) -> None:
    """
    Set a setting value (upsert).

    Args:
        session: Database session
        key: Setting key
        value: Setting value
    """
    setting = await session.get(Setting, key)
    if setting is None:
        session.add(Setting(key=key, value=value))
    else:
        setting.value = value
    await session.flush()


async def get_team(session: AsyncSession, team_id: int, for_update: bool = False) -> Team:
    """
    Load a team or raise NotFound.

    Args:
        session: Database session
        team_id: Team ID
        for_update: Lock the row (SELECT ... FOR UPDATE) for the rest of the transaction

    Returns:
        Team ORM instance
    """
    stmt = select(Team).where(Team.id == team_id)
    if for_update:
        # Re-read the row so an instance already in the session is refreshed
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(stmt)
    team = result.scalar_one_or_none()
    if team is None:
        raise NotFound("Team not found.")
    return team


async def get_game(session: AsyncSession, game_id: int) -> Game:
    """Load a game or raise NotFound."""
    game = await session.get(Game, game_id)
    if game is None:
        raise NotFound("Game not found.")
    return game


async def get_player(session: AsyncSession, player_id: int) -> Player:
    """Load a player or raise NotFound."""
    player = await session.get(Player, player_id)
    if player is None:
        raise NotFound("Player not found.")
    return player


async def get_team_players(session: AsyncSession, team_id: int) -> List[Player]:
    """Roster of a team ordered by last name, first name."""
    result = await session.execute(
        select(Player)
        .where(Player.team_id == team_id)
        .order_by(Player.last_name, Player.first_name, Player.id)
    )
    return list(result.scalars().all())


async def get_players_by_ids(session: AsyncSession, player_ids: Iterable[int]) -> Dict[int, Player]:
    """Map of player_id -> Player for the ids that exist."""
    ids = list(set(player_ids))
    if not ids:
        return {}
    result = await session.execute(select(Player).where(Player.id.in_(ids)))
    return {player.id: player for player in result.scalars().all()}


async def get_position_names(session: AsyncSession) -> Set[str]:
    """Known assignment labels, uppercase."""
    result = await session.execute(select(Position.name))
    return {name.upper() for name in result.scalars().all()}


async def get_finalized_games(session: AsyncSession, team_id: int) -> List[Game]:
    """
    Games of a team whose lineup has been finalized, oldest first.

    Args:
        session: Database session
        team_id: Team ID

    Returns:
        List of Game ORM instances with non-empty lineup_data
    """
    result = await session.execute(
        select(Game)
        .where(Game.team_id == team_id, Game.finalized_at.is_not(None))
        .order_by(Game.finalized_at, Game.id)
    )
    return [game for game in result.scalars().all() if game.lineup_data]

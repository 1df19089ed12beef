"""
Export gate and the read-only lineup export view.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.database.models import ACTIVE_ACCESS_STATUSES, AccessStatus, Game, Team
from lineup_backend.services import access_service, data_service
from lineup_backend.utils.datetime_utils import isoformat_or_none, utcnow
from lineup_backend.utils.exceptions import AccessDenied, NotFound

logger = logging.getLogger(__name__)


def ensure_team_owner(team: Team, user: Dict, is_admin: bool = False) -> None:
    """Raise AccessDenied(not_owner) unless the user owns the team or is an admin."""
    if is_admin or team.user_id == user.get("id"):
        return
    raise AccessDenied(AccessDenied.NOT_OWNER)


def check_export_access(team: Team, user: Dict, is_admin: bool = False) -> None:
    """
    Allow an export iff the requester owns the team (or is an admin) and the
    team's access is active.

    Raises:
        AccessDenied: reason not_owner, no_access or access_expired
    """
    ensure_team_owner(team, user, is_admin)

    state = access_service.get_access_state(team, utcnow())
    if state in ACTIVE_ACCESS_STATUSES:
        return
    if state == AccessStatus.EXPIRED.value:
        logger.info(f"Export denied for team {team.id}: access expired")
        raise AccessDenied(AccessDenied.ACCESS_EXPIRED)
    logger.info(f"Export denied for team {team.id}: no access")
    raise AccessDenied(AccessDenied.NO_ACCESS)


def _entry_player_id(entry: Any) -> Optional[int]:
    if not isinstance(entry, dict):
        return None
    try:
        return int(entry.get("player_id"))
    except (TypeError, ValueError):
        return None


async def get_lineup_export(session: AsyncSession, team: Team, game: Game) -> Dict[str, Any]:
    """
    Structured export of a game's lineup.

    Args:
        session: Database session
        team: The game's team
        game: Game ORM instance with a saved lineup

    Returns:
        Dict with game_details, players_info and lineup_assignments

    Raises:
        NotFound: The game has no lineup
    """
    lineup = game.lineup_data if isinstance(game.lineup_data, list) else []
    if not lineup:
        raise NotFound("Lineup data not found for this game.")

    player_ids = [pid for pid in (_entry_player_id(entry) for entry in lineup) if pid is not None]
    players = await data_service.get_players_by_ids(session, player_ids)

    return {
        "game_details": {
            "id": game.id,
            "team_name": team.name,
            "opponent_name": game.opponent_name,
            "game_date": isoformat_or_none(game.game_date),
            "innings": game.innings,
            "location_type": game.location_type,
            "finalized_at": isoformat_or_none(game.finalized_at),
        },
        "players_info": [
            {
                "id": players[pid].id,
                "full_name": players[pid].full_name,
                "jersey_number": players[pid].jersey_number,
            }
            for pid in player_ids
            if pid in players
        ],
        "lineup_assignments": lineup,
    }

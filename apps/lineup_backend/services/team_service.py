"""
Team roster listings with historical stats.

Owners and administrators get separate query functions; the admin view adds
the team's access state and contact details.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.database.models import Player, Team
from lineup_backend.services import access_service, data_service, stats_service

logger = logging.getLogger(__name__)


def _player_with_stats(player: Player, stats: stats_service.PlayerHistoricalStats) -> Dict[str, Any]:
    return {
        "id": player.id,
        "team_id": player.team_id,
        "first_name": player.first_name,
        "last_name": player.last_name,
        "full_name": player.full_name,
        "jersey_number": player.jersey_number,
        "stats": stats.to_dict(),
    }


async def _roster_with_stats(session: AsyncSession, team: Team) -> List[tuple]:
    roster = await data_service.get_team_players(session, team.id)
    # One lineup load serves every player in this request
    lineups = await stats_service.load_team_lineups(session, team.id)
    return [
        (player, await stats_service.get_player_stats(session, player, lineups=lineups))
        for player in roster
    ]


async def list_owner_team_players(session: AsyncSession, team: Team) -> List[Dict[str, Any]]:
    """Roster of a team for its owner, each player with historical stats."""
    return [_player_with_stats(player, stats) for player, stats in await _roster_with_stats(session, team)]


async def list_admin_team_players(session: AsyncSession, team: Team) -> Dict[str, Any]:
    """
    Roster of any team for an administrator.

    Returns:
        Dict with team (including derived access state) and players with
        stats and email
    """
    players = []
    for player, stats in await _roster_with_stats(session, team):
        data = _player_with_stats(player, stats)
        data["email"] = player.email
        players.append(data)
    return {
        "team": {
            "id": team.id,
            "name": team.name,
            "user_id": team.user_id,
            **access_service.access_summary(team),
        },
        "players": players,
    }

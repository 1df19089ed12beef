"""Team roster and player preference route handlers."""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.api.auth_dependencies import get_current_user, get_owned_team
from lineup_backend.database.db import get_db_session
from lineup_backend.models.schemas import (
    PlayerPreferencesRequest,
    PlayerPreferencesResponse,
    TeamPlayerResponse,
)
from lineup_backend.services import data_service, preference_service, team_service
from lineup_backend.utils.exceptions import NotFound

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/teams/{team_id}/players", response_model=List[TeamPlayerResponse])
async def list_team_players(
    team_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Roster of a team the user manages, each player with historical stats."""
    team = await get_owned_team(session, team_id, current_user)
    return await team_service.list_owner_team_players(session, team)


async def _get_owned_player(session: AsyncSession, player_id: int, user: dict):
    player = await data_service.get_player(session, player_id)
    if player.team_id is None:
        raise NotFound("Player is not on a team.")
    await get_owned_team(session, player.team_id, user)
    return player


@router.get("/api/players/{player_id}/preferences", response_model=PlayerPreferencesResponse)
async def get_player_preferences(
    player_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Preferred and restricted position ids for a player."""
    player = await _get_owned_player(session, player_id, current_user)
    return await preference_service.get_player_preferences(session, player)


@router.put("/api/players/{player_id}/preferences", response_model=PlayerPreferencesResponse)
async def update_player_preferences(
    player_id: int,
    request: PlayerPreferencesRequest,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Replace a player's position preferences.

    Request body:
        {"preferred_positions": [1, 6], "restricted_positions": [2]}
    """
    player = await _get_owned_player(session, player_id, current_user)
    return await preference_service.set_player_preferences(
        session, player, request.preferred_positions, request.restricted_positions
    )

"""Lineup read/save, auto-assign and export route handlers."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.api.auth_dependencies import is_system_admin, get_current_user, get_owned_game
from lineup_backend.database.db import get_db_session
from lineup_backend.models.schemas import (
    AutocompleteLineupRequest,
    AutocompleteLineupResponse,
    LineupResponse,
    LineupUpdateRequest,
)
from lineup_backend.services import (
    data_service,
    export_service,
    lineup_service,
    optimizer_service,
    settings_service,
)
from lineup_backend.utils.exceptions import LineupCoreError

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/games/{game_id}/lineup")
async def get_game_lineup(
    game_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Lineup editor data: innings, roster with preferences and the saved lineup."""
    game, _team = await get_owned_game(session, game_id, current_user)
    return await lineup_service.get_lineup(session, game)


@router.put("/api/games/{game_id}/lineup", response_model=LineupResponse)
async def update_game_lineup(
    game_id: int,
    request: LineupUpdateRequest,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Save a lineup for a game.

    Request body:
        {"lineup": [{"player_id": 1, "innings": {"1": "SS", "2": "OUT"}, "batting_order": 1}, ...]}

    Two players may not share a position in the same inning (OUT/BENCH excepted).
    """
    game, _team = await get_owned_game(session, game_id, current_user)
    entries = [entry.model_dump() for entry in request.lineup]
    return await lineup_service.save_lineup(session, game, entries)


@router.post("/api/games/{game_id}/autocomplete-lineup", response_model=AutocompleteLineupResponse)
async def autocomplete_lineup(
    game_id: int,
    request: AutocompleteLineupRequest,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Fill a lineup with the optimizer and save it.

    Request body:
        {
            "players_in_game": [4, 2, 9],          // batting order
            "fixed_assignments": {"4": {"1": "P"}}  // optional
        }
    """
    game, _team = await get_owned_game(session, game_id, current_user)
    config = await settings_service.load_app_config(session)
    try:
        return await optimizer_service.optimize_lineup(
            session, config, game, request.players_in_game, request.fixed_assignments
        )
    except (HTTPException, LineupCoreError):
        raise
    except Exception as e:
        logger.error(f"Unexpected error optimizing lineup for game {game_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=500, detail="An internal error occurred during lineup optimization."
        )


@router.get("/api/games/{game_id}/export")
async def export_game_lineup(
    game_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Structured lineup export. Requires team ownership and active access.

    403 responses carry reason not_owner, no_access or access_expired.
    """
    game = await data_service.get_game(session, game_id)
    team = await data_service.get_team(session, game.team_id)
    is_admin = await is_system_admin(session, current_user)
    export_service.check_export_access(team, current_user, is_admin)
    return await export_service.get_lineup_export(session, team, game)

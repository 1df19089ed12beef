"""Admin settings, promo code management and team roster route handlers."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.api.auth_dependencies import require_system_admin
from lineup_backend.database.db import get_db_session
from lineup_backend.models.schemas import (
    PromoCodeCreate,
    PromoCodeResponse,
    PromoCodeUpdate,
    SettingUpdateRequest,
)
from lineup_backend.services import data_service, promo_service, settings_service, team_service

logger = logging.getLogger(__name__)
router = APIRouter()


# ---------------------------------------------------------------------------
# Settings endpoints
# ---------------------------------------------------------------------------


@router.get("/api/admin/settings")
async def get_admin_settings(
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Stored values of the admin-editable settings (system_admin)."""
    return {key: await data_service.get_setting(session, key) for key in settings_service.ADMIN_SETTING_KEYS}


@router.put("/api/admin/settings/{key}")
async def set_admin_setting(
    key: str,
    request: SettingUpdateRequest,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Set a setting value (system_admin)."""
    value = settings_service.validate_setting_value(key, request.value)
    await data_service.set_setting(session, key, value)
    await settings_service.invalidate_settings_cache()
    logger.info(f"Setting {key} updated by user {user['id']}")
    return {"key": key, "value": value}


# ---------------------------------------------------------------------------
# Promo codes
# ---------------------------------------------------------------------------


@router.get("/api/admin/promo-codes")
async def list_promo_codes(
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    return await promo_service.list_promo_codes(session)


@router.post("/api/admin/promo-codes", response_model=PromoCodeResponse, status_code=201)
async def create_promo_code(
    request: PromoCodeCreate,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Create a promo code; a random code is generated when none is given."""
    return await promo_service.create_promo_code(session, **request.model_dump())


@router.put("/api/admin/promo-codes/{promo_code_id}", response_model=PromoCodeResponse)
async def update_promo_code(
    promo_code_id: int,
    request: PromoCodeUpdate,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Update a promo code. Only fields sent in the body change."""
    return await promo_service.update_promo_code(
        session, promo_code_id, **request.model_dump(exclude_unset=True)
    )


@router.delete("/api/admin/promo-codes/{promo_code_id}")
async def delete_promo_code(
    promo_code_id: int,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Delete a promo code that has never been redeemed."""
    await promo_service.delete_promo_code(session, promo_code_id)
    return {"success": True}


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------


@router.get("/api/admin/teams/{team_id}/players")
async def admin_list_team_players(
    team_id: int,
    user: dict = Depends(require_system_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Any team's roster with stats and the team's access state (system_admin)."""
    team = await data_service.get_team(session, team_id)
    return await team_service.list_admin_team_players(session, team)

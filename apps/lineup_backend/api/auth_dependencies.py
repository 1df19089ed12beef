"""
Authentication dependencies for FastAPI routes.
"""

import logging
from typing import Tuple

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.services import auth_service, user_service, data_service, export_service
from lineup_backend.database.db import get_db_session
from lineup_backend.database.models import Game, Team

logger = logging.getLogger(__name__)

security = HTTPBearer()


async def get_current_user(
    session: AsyncSession = Depends(get_db_session),
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    Dependency to get the current authenticated user from JWT token.

    Args:
        session: Database session
        credentials: HTTP Bearer token credentials

    Returns:
        User dictionary

    Raises:
        HTTPException: If token is invalid or user not found
    """
    payload = auth_service.verify_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await user_service.get_user_by_id(session, user_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return user


async def require_user(user: dict = Depends(get_current_user)) -> dict:
    """Require any authenticated user."""
    return user


async def is_system_admin(session: AsyncSession, user: dict) -> bool:
    """
    Determine if the user is a system admin.

    Admins are listed in the 'system_admin_emails' setting (comma-separated).
    """
    try:
        email_setting = await data_service.get_setting(session, "system_admin_emails")
    except Exception as e:
        logger.warning(f"Could not read system_admin_emails setting: {e}")
        return False
    if not email_setting or not user.get("email"):
        return False
    emails = {e.strip().lower() for e in email_setting.split(",") if e.strip()}
    return user["email"].strip().lower() in emails


async def require_system_admin(
    user: dict = Depends(get_current_user), session: AsyncSession = Depends(get_db_session)
) -> dict:
    """Require platform-wide admin."""
    if not await is_system_admin(session, user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user


async def get_owned_team(session: AsyncSession, team_id: int, user: dict) -> Team:
    """
    Load a team the user manages (system admins manage every team).

    Raises:
        NotFound: Unknown team
        AccessDenied: not_owner
    """
    team = await data_service.get_team(session, team_id)
    export_service.ensure_team_owner(team, user, await is_system_admin(session, user))
    return team


async def get_owned_game(session: AsyncSession, game_id: int, user: dict) -> Tuple[Game, Team]:
    """Load a game and its team, checking the user manages the team."""
    game = await data_service.get_game(session, game_id)
    team = await get_owned_team(session, game.team_id, user)
    return game, team

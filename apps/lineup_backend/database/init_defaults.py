#!/usr/bin/env python3
"""
Initialize default database values.
This script is run on startup to seed the position catalogue and admin settings.
"""

import asyncio
import logging
import os

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.database import db
from lineup_backend.database.models import Position
from lineup_backend.services import data_service
from lineup_backend.utils.constants import DEFAULT_POSITIONS

logger = logging.getLogger(__name__)


async def seed_positions(session: AsyncSession) -> int:
    """Insert missing catalogue positions. Returns how many were added."""
    result = await session.execute(select(Position.name))
    existing = {name.upper() for name in result.scalars().all()}
    added = 0
    for name, category, is_editable in DEFAULT_POSITIONS:
        if name in existing:
            continue
        session.add(Position(name=name, category=category, is_editable=is_editable))
        added += 1
    await session.flush()
    return added


async def seed_admin_emails(session: AsyncSession) -> None:
    """Merge SYSTEM_ADMIN_EMAILS from the environment into the system_admin_emails setting."""
    configured = {e.strip().lower() for e in os.getenv("SYSTEM_ADMIN_EMAILS", "").split(",") if e.strip()}
    if not configured:
        return

    existing_admins = await data_service.get_setting(session, "system_admin_emails")
    admin_set = {e.strip().lower() for e in (existing_admins or "").split(",") if e.strip()}
    if configured <= admin_set:
        return

    await data_service.set_setting(session, "system_admin_emails", ",".join(sorted(admin_set | configured)))
    logger.info(f"Added system admins: {', '.join(sorted(configured - admin_set))}")


async def init_defaults():
    """Initialize default database values."""
    logger.info("Initializing default database values...")

    async with db.AsyncSessionLocal() as session:
        added = await seed_positions(session)
        if added:
            logger.info(f"Seeded {added} positions")
        await seed_admin_emails(session)
        await session.commit()

    logger.info("Default values initialized")


if __name__ == "__main__":
    asyncio.run(init_defaults())

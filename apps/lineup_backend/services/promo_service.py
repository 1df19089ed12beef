"""
Promo code administration: create, update, delete and describe codes.

Redemption itself lives in access_service.redeem_promo.
"""

import logging
import secrets
import string
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.database.models import PromoCode, PromoCodeRedemption
from lineup_backend.utils.datetime_utils import ensure_utc, isoformat_or_none, utcnow
from lineup_backend.utils.exceptions import Conflict, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

GENERATED_CODE_LENGTH = 10
_CODE_ALPHABET = string.ascii_uppercase + string.digits


def promo_code_to_dict(promo_code: PromoCode, redemption_count: Optional[int] = None) -> Dict[str, Any]:
    data = {
        "id": promo_code.id,
        "code": promo_code.code,
        "description": promo_code.description,
        "is_active": promo_code.is_active,
        "expires_at": isoformat_or_none(promo_code.expires_at),
        "max_uses": promo_code.max_uses,
        "max_uses_per_user": promo_code.max_uses_per_user,
        "use_count": promo_code.use_count,
    }
    if redemption_count is not None:
        data["redemptions_count"] = redemption_count
    return data


async def get_promo_code(session: AsyncSession, promo_code_id: int) -> PromoCode:
    promo_code = await session.get(PromoCode, promo_code_id)
    if promo_code is None:
        raise NotFound("Promo code not found.")
    return promo_code


async def count_code_redemptions(session: AsyncSession, promo_code_id: int) -> int:
    result = await session.execute(
        select(func.count(PromoCodeRedemption.id)).where(PromoCodeRedemption.promo_code_id == promo_code_id)
    )
    return result.scalar_one()


async def _code_exists(session: AsyncSession, code: str) -> bool:
    result = await session.execute(select(PromoCode.id).where(func.upper(PromoCode.code) == code))
    return result.first() is not None


async def _generate_unique_code(session: AsyncSession) -> str:
    while True:
        code = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(GENERATED_CODE_LENGTH))
        if not await _code_exists(session, code):
            return code


async def create_promo_code(
    session: AsyncSession,
    code: Optional[str] = None,
    description: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    max_uses: Optional[int] = None,
    max_uses_per_user: int = 1,
    is_active: bool = True,
) -> Dict[str, Any]:
    """
    Create a promo code. A random 10-character code is generated when none is given.

    Raises:
        Conflict: Code already exists
        ValidationFailed: Past expiry or non-positive limits
    """
    if expires_at is not None and ensure_utc(expires_at) <= utcnow():
        raise ValidationFailed("expires_at must be in the future.")
    if max_uses is not None and max_uses < 1:
        raise ValidationFailed("max_uses must be at least 1.")
    if max_uses_per_user < 1:
        raise ValidationFailed("max_uses_per_user must be at least 1.")

    if code:
        code = code.strip().upper()
        if await _code_exists(session, code):
            raise Conflict(f"Promo code '{code}' already exists.")
    else:
        code = await _generate_unique_code(session)

    promo_code = PromoCode(
        code=code,
        description=description,
        expires_at=ensure_utc(expires_at),
        max_uses=max_uses,
        max_uses_per_user=max_uses_per_user,
        is_active=is_active,
        use_count=0,
    )
    session.add(promo_code)
    await session.flush()
    logger.info(f"Created promo code {promo_code.code} (max_uses={max_uses})")
    return promo_code_to_dict(promo_code, redemption_count=0)


async def update_promo_code(session: AsyncSession, promo_code_id: int, **changes: Any) -> Dict[str, Any]:
    """
    Update description, expiry, limits or active flag. The code itself is immutable.

    Raises:
        NotFound: Unknown promo code
        ValidationFailed: max_uses below the current use_count
    """
    promo_code = await get_promo_code(session, promo_code_id)

    if "max_uses" in changes and changes["max_uses"] is not None:
        if changes["max_uses"] < promo_code.use_count:
            raise ValidationFailed(
                f"max_uses cannot be lower than the current use count ({promo_code.use_count})."
            )
    if "max_uses_per_user" in changes and (changes["max_uses_per_user"] or 0) < 1:
        raise ValidationFailed("max_uses_per_user must be at least 1.")

    if changes.get("expires_at") is not None:
        changes["expires_at"] = ensure_utc(changes["expires_at"])
    for field in ("description", "expires_at", "max_uses", "max_uses_per_user", "is_active"):
        if field in changes:
            setattr(promo_code, field, changes[field])
    await session.flush()

    return promo_code_to_dict(promo_code, await count_code_redemptions(session, promo_code.id))


async def delete_promo_code(session: AsyncSession, promo_code_id: int) -> None:
    """
    Delete a promo code that was never used.

    Raises:
        NotFound: Unknown promo code
        Conflict: The code has been redeemed; deactivate it instead
    """
    promo_code = await get_promo_code(session, promo_code_id)
    if promo_code.use_count > 0:
        raise Conflict(
            "Cannot delete a promo code that has already been used. Deactivate it instead."
        )
    await session.delete(promo_code)
    await session.flush()
    logger.info(f"Deleted promo code {promo_code.code}")


async def list_promo_codes(session: AsyncSession) -> List[Dict[str, Any]]:
    """All promo codes, newest first, with their redemption counts."""
    counts = (
        select(PromoCodeRedemption.promo_code_id, func.count(PromoCodeRedemption.id).label("total"))
        .group_by(PromoCodeRedemption.promo_code_id)
        .subquery()
    )
    result = await session.execute(
        select(PromoCode, func.coalesce(counts.c.total, 0))
        .outerjoin(counts, counts.c.promo_code_id == PromoCode.id)
        .order_by(PromoCode.id.desc())
    )
    return [promo_code_to_dict(promo_code, total) for promo_code, total in result.all()]

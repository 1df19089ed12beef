"""
Team access ledger.

Grants team access from payments and promo redemptions, records payment
events idempotently and enforces promo usage limits.

Expiry is never written: a team whose access_expires_at has passed still
stores paid_active/promo_active and is reported as expired at read time.
Grants extend access from "now", never from a previous expiry.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.database.models import (
    ACTIVE_ACCESS_STATUSES,
    AccessStatus,
    Payment,
    PromoCode,
    PromoCodeRedemption,
    Team,
)
from lineup_backend.services import data_service
from lineup_backend.services.settings_service import AppConfig
from lineup_backend.utils.datetime_utils import ensure_utc, isoformat_or_none, utcnow
from lineup_backend.utils.exceptions import (
    AlreadyHasAccess,
    InternalInconsistency,
    PromoInvalid,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Read side
# ============================================================================

def get_access_state(team: Team, now: Optional[datetime] = None) -> str:
    """
    Derived access status of a team.

    Returns one of none, paid_active, promo_active or expired. Has no side effects.
    """
    status = team.access_status or AccessStatus.NONE.value
    if status not in ACTIVE_ACCESS_STATUSES:
        return AccessStatus.NONE.value
    expires_at = ensure_utc(team.access_expires_at)
    if expires_at is not None and expires_at <= (now or utcnow()):
        return AccessStatus.EXPIRED.value
    return status


def has_active_access(team: Team, now: Optional[datetime] = None) -> bool:
    """True iff the team holds an active status that has not expired."""
    return get_access_state(team, now) in ACTIVE_ACCESS_STATUSES


def access_summary(team: Team, config: Optional[AppConfig] = None) -> Dict[str, Any]:
    """Access fields of a team for API responses."""
    summary = {
        "team_id": team.id,
        "access_status": get_access_state(team),
        "has_active_access": has_active_access(team),
        "access_granted_at": isoformat_or_none(team.access_granted_at),
        "access_expires_at": isoformat_or_none(team.access_expires_at),
    }
    if config is not None:
        summary.update(
            {
                "unlock_price_amount": config.unlock_price_amount,
                "unlock_currency": config.unlock_currency,
                "unlock_currency_symbol": config.unlock_currency_symbol,
                "unlock_currency_symbol_position": config.unlock_currency_symbol_position,
            }
        )
    return summary


# ============================================================================
# Grants
# ============================================================================

def compute_expiry(config: AppConfig, now: datetime) -> Optional[datetime]:
    """Expiry for a grant made at ``now``; None when access is indefinite."""
    if not config.access_duration_days:
        return None
    return now + timedelta(days=config.access_duration_days)


def _grant_access(team: Team, status: AccessStatus, config: AppConfig, now: datetime) -> None:
    team.access_status = status.value
    team.access_granted_at = now
    team.access_expires_at = compute_expiry(config, now)


async def _rollback_and_raise(session: AsyncSession, message: str, error: Exception):
    """Discard the whole transaction so no part of a grant survives."""
    logger.error(f"{message}: {error}", exc_info=True)
    await session.rollback()
    raise InternalInconsistency(message) from error


async def get_payment_by_key(session: AsyncSession, provider_key: str) -> Optional[Payment]:
    result = await session.execute(select(Payment).where(Payment.provider_key == provider_key))
    return result.scalar_one_or_none()


def _payment_result(payment: Payment, duplicate: bool, access_granted: bool, team: Optional[Team]) -> Dict:
    return {
        "payment_id": payment.id,
        "provider_key": payment.provider_key,
        "team_id": payment.team_id,
        "duplicate": duplicate,
        "access_granted": access_granted,
        "access_status": get_access_state(team) if team is not None else None,
    }


async def record_payment(
    session: AsyncSession,
    config: AppConfig,
    provider_key: str,
    team_id: int,
    user_id: Optional[int],
    amount: Any,
    currency: str,
    paid_at: Optional[datetime] = None,
    status: str = "succeeded",
) -> Dict:
    """
    Record a successful payment and grant paid access to its team.

    Idempotent on provider_key: a repeated delivery returns the stored
    result without writing anything.

    If the team already has active access the payment is still recorded
    (the money was taken) but no second grant is made; the result reports
    already_had_access so an operator can refund.

    Args:
        session: Database session
        config: Runtime configuration (access duration)
        provider_key: Provider idempotency key (payment intent id)
        team_id: Team being unlocked
        user_id: Paying user
        amount: Amount in major currency units
        currency: ISO currency code
        paid_at: Payment time (defaults to now)
        status: Provider status

    Returns:
        Dict with payment_id, duplicate, access_granted, access_status

    Raises:
        NotFound: Team does not exist
        InternalInconsistency: Grant failed after the idempotency check; rolled back
    """
    existing = await get_payment_by_key(session, provider_key)
    if existing is not None:
        logger.info(f"Payment {provider_key} already processed, ignoring duplicate delivery")
        return _payment_result(existing, duplicate=True, access_granted=False, team=None)

    # Serializes concurrent grants for the same team
    team = await data_service.get_team(session, team_id, for_update=True)
    now = utcnow()
    already_active = has_active_access(team, now)

    try:
        payment = Payment(
            provider_key=provider_key,
            team_id=team.id,
            user_id=user_id,
            amount=Decimal(str(amount)),
            currency=(currency or "").lower()[:3],
            status=status,
            paid_at=paid_at or now,
        )
        session.add(payment)
        await session.flush()

        if not already_active:
            _grant_access(team, AccessStatus.PAID_ACTIVE, config, now)
            await session.flush()
    except IntegrityError:
        # Lost a race with a concurrent delivery of the same key
        await session.rollback()
        existing = await get_payment_by_key(session, provider_key)
        if existing is None:
            raise InternalInconsistency(f"Payment {provider_key} could not be recorded.")
        logger.info(f"Payment {provider_key} recorded concurrently, treating as duplicate")
        return _payment_result(existing, duplicate=True, access_granted=False, team=None)
    except Exception as e:
        await _rollback_and_raise(session, f"Granting paid access for payment {provider_key} failed", e)

    if already_active:
        logger.warning(
            f"Payment {provider_key} received for team {team.id} which already has active access; "
            f"no new grant made"
        )
    else:
        logger.info(f"Access granted for team {team.id} via payment {provider_key}")

    result = _payment_result(payment, duplicate=False, access_granted=not already_active, team=team)
    result["already_had_access"] = already_active
    return result


async def _get_promo_code_for_update(session: AsyncSession, code: str) -> Optional[PromoCode]:
    result = await session.execute(
        select(PromoCode)
        .where(func.upper(PromoCode.code) == code)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def count_redemptions(
    session: AsyncSession, user_id: int, promo_code_id: int, team_id: int
) -> int:
    """How often a user redeemed a code for a team."""
    result = await session.execute(
        select(func.count(PromoCodeRedemption.id)).where(
            PromoCodeRedemption.user_id == user_id,
            PromoCodeRedemption.promo_code_id == promo_code_id,
            PromoCodeRedemption.team_id == team_id,
        )
    )
    return result.scalar_one()


async def redeem_promo(
    session: AsyncSession,
    config: AppConfig,
    user_id: int,
    team_id: int,
    code: str,
) -> Dict:
    """
    Redeem a promo code, granting promo access to a team.

    Checks run in this order: code exists, is active, is not expired, has
    uses left, team does not already have access, user has not used up
    their per-user allowance for this team. The redemption record, the
    use_count increment and the grant are written as one unit.

    Args:
        session: Database session
        config: Runtime configuration (access duration)
        user_id: Redeeming user
        team_id: Team receiving access
        code: Code as typed (case-insensitive)

    Returns:
        Dict with team access fields and the code's new use_count

    Raises:
        NotFound: Team does not exist
        PromoInvalid: not_found, inactive, expired, limit_reached or already_used
        AlreadyHasAccess: Team access is currently active
        InternalInconsistency: Write unit failed; rolled back
    """
    code_string = (code or "").strip().upper()
    if not code_string:
        raise PromoInvalid(PromoInvalid.NOT_FOUND)

    # Lock order is team then code, same as record_payment
    team = await data_service.get_team(session, team_id, for_update=True)
    promo_code = await _get_promo_code_for_update(session, code_string)
    now = utcnow()

    if promo_code is None:
        raise PromoInvalid(PromoInvalid.NOT_FOUND)
    if not promo_code.is_active:
        raise PromoInvalid(PromoInvalid.INACTIVE)
    expires_at = ensure_utc(promo_code.expires_at)
    if expires_at is not None and expires_at <= now:
        raise PromoInvalid(PromoInvalid.EXPIRED)
    if promo_code.max_uses is not None and promo_code.use_count >= promo_code.max_uses:
        raise PromoInvalid(PromoInvalid.LIMIT_REACHED)
    if has_active_access(team, now):
        raise AlreadyHasAccess()
    used = await count_redemptions(session, user_id, promo_code.id, team.id)
    if used >= promo_code.max_uses_per_user:
        raise PromoInvalid(PromoInvalid.ALREADY_USED)

    try:
        session.add(
            PromoCodeRedemption(
                user_id=user_id, promo_code_id=promo_code.id, team_id=team.id, redeemed_at=now
            )
        )
        promo_code.use_count = promo_code.use_count + 1
        _grant_access(team, AccessStatus.PROMO_ACTIVE, config, now)
        await session.flush()
    except Exception as e:
        await _rollback_and_raise(
            session, f"Promo redemption failed: user {user_id}, code {code_string}, team {team_id}", e
        )

    logger.info(f"Promo code {promo_code.code} redeemed by user {user_id} for team {team.id}")
    return {
        **access_summary(team),
        "promo_code": promo_code.code,
        "use_count": promo_code.use_count,
        "message": f"Promo code redeemed successfully! Access granted for team {team.name}.",
    }

"""Team access, Stripe payment and promo redemption route handlers."""

import logging

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.api.auth_dependencies import get_current_user, get_owned_team
from lineup_backend.api.routes import limiter
from lineup_backend.database.db import get_db_session
from lineup_backend.models.schemas import PaymentIntentResponse, PromoRedeemRequest, TeamAccessResponse
from lineup_backend.services import access_service, payment_service, settings_service

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/teams/{team_id}/access", response_model=TeamAccessResponse)
async def get_team_access(
    team_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Derived access status of a team plus the unlock price shown to the owner."""
    team = await get_owned_team(session, team_id, current_user)
    config = await settings_service.load_app_config(session)
    return access_service.access_summary(team, config)


@router.post("/api/teams/{team_id}/payment-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    team_id: int,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Start a Stripe payment that unlocks the team once it succeeds."""
    team = await get_owned_team(session, team_id, current_user)
    config = await settings_service.load_app_config(session)
    return await payment_service.create_team_payment_intent(config, team, current_user)


@router.post("/api/stripe/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: str = Header(None),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Stripe webhook intake.

    Deliveries are idempotent on the payment intent id.
    """
    config = await settings_service.load_app_config(session)
    if not config.stripe_webhook_secret:
        logger.error("Stripe webhook secret is not configured.")
        raise HTTPException(status_code=500, detail="Webhook secret not configured.")
    if not stripe_signature:
        raise HTTPException(status_code=400, detail="Missing Stripe signature")

    payload = await request.body()
    try:
        event = payment_service.construct_event(payload, stripe_signature, config.stripe_webhook_secret)
    except ValueError:
        logger.error("Stripe webhook error: invalid payload.")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        logger.error("Stripe webhook error: invalid signature.")
        raise HTTPException(status_code=400, detail="Invalid signature")

    return await payment_service.handle_webhook_event(session, config, event)


@router.post("/api/promo-codes/redeem")
@limiter.limit("10/minute")
async def redeem_promo_code(
    request: Request,
    body: PromoRedeemRequest,
    current_user: dict = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Redeem a promo code for a team the user manages.

    Request body:
        {"code": "SAVE10", "team_id": 3}
    """
    team = await get_owned_team(session, body.team_id, current_user)
    config = await settings_service.load_app_config(session)
    return await access_service.redeem_promo(session, config, current_user["id"], team.id, body.code)

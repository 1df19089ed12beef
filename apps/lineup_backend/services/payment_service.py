"""
Stripe payment service: payment intents for team unlocks and webhook intake.

Successful payments are handed to access_service.record_payment, which is
idempotent on the payment intent id, so Stripe may deliver the same event
any number of times.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from lineup_backend.database.models import Team
from lineup_backend.services import access_service
from lineup_backend.services.settings_service import AppConfig
from lineup_backend.utils.exceptions import AlreadyHasAccess, NotFound, PaymentProviderError, ValidationFailed

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_FAILED = "payment_intent.payment_failed"


# Stripe amounts for these currencies are already in whole units
ZERO_DECIMAL_CURRENCIES = frozenset(
    {"bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga", "pyg", "rwf", "ugx", "vnd", "vuv", "xaf", "xof", "xpf"}
)
THREE_DECIMAL_CURRENCIES = frozenset({"bhd", "jod", "kwd", "omr", "tnd"})


def currency_exponent(currency: Optional[str]) -> int:
    """Number of minor-unit digits Stripe uses for a currency."""
    code = (currency or "").lower()
    if code in ZERO_DECIMAL_CURRENCIES:
        return 0
    if code in THREE_DECIMAL_CURRENCIES:
        return 3
    return 2


def to_minor_units(amount: float, currency: Optional[str] = "usd") -> int:
    """Major currency units to the integer minor units Stripe expects."""
    scaled = Decimal(str(amount)).scaleb(currency_exponent(currency))
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int, currency: Optional[str]) -> Decimal:
    """Stripe minor units back to major units."""
    return Decimal(int(amount)).scaleb(-currency_exponent(currency))


async def create_team_payment_intent(config: AppConfig, team: Team, user: Dict) -> Dict[str, Any]:
    """
    Create a Stripe PaymentIntent for unlocking a team.

    Args:
        config: Runtime configuration (price, currency, Stripe key)
        team: Team ORM instance, already checked for ownership
        user: Current user dict

    Returns:
        Dict with client_secret, payment_intent_id, amount and currency

    Raises:
        AlreadyHasAccess: Team access is currently active
        ValidationFailed: No price configured
        PaymentProviderError: Stripe refused the request
    """
    if access_service.has_active_access(team):
        raise AlreadyHasAccess()

    amount = to_minor_units(config.unlock_price_amount, config.unlock_currency)
    if amount <= 0:
        raise ValidationFailed("Unlock price is not configured.")

    try:
        intent = stripe.PaymentIntent.create(
            api_key=config.stripe_secret_key,
            amount=amount,
            currency=config.unlock_currency,
            automatic_payment_methods={"enabled": True},
            metadata={"team_id": str(team.id), "user_id": str(user["id"])},
        )
    except stripe.StripeError as e:
        logger.error(f"Stripe PaymentIntent creation failed for team {team.id}: {e}")
        raise PaymentProviderError("Failed to initiate payment process.")

    logger.info(f"Created PaymentIntent {intent['id']} for team {team.id}")
    return {
        "client_secret": intent["client_secret"],
        "payment_intent_id": intent["id"],
        "amount": amount,
        "currency": config.unlock_currency,
    }


def construct_event(payload: bytes, signature: Optional[str], secret: str) -> Any:
    """
    Verify a webhook payload and return the event as a plain dict.

    Raises:
        ValueError: Payload is not valid JSON
        stripe.SignatureVerificationError: Signature does not match
    """
    event = stripe.Webhook.construct_event(payload, signature, secret)
    return event.to_dict()


def _metadata_int(metadata: Any, key: str) -> Optional[int]:
    try:
        value = metadata.get(key) if metadata else None
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


async def handle_payment_succeeded(
    session: AsyncSession, config: AppConfig, payment_intent: Any
) -> Dict[str, Any]:
    intent_id = payment_intent["id"]
    metadata = payment_intent.get("metadata") or {}
    team_id = _metadata_int(metadata, "team_id")
    user_id = _metadata_int(metadata, "user_id")

    if team_id is None or user_id is None:
        logger.error(f"Webhook error: missing team_id or user_id in metadata for PaymentIntent {intent_id}")
        return {"handled": False, "reason": "missing_metadata"}

    amount_received = payment_intent.get("amount_received") or payment_intent.get("amount") or 0
    currency = payment_intent.get("currency") or config.unlock_currency
    try:
        result = await access_service.record_payment(
            session,
            config,
            provider_key=intent_id,
            team_id=team_id,
            user_id=user_id,
            amount=from_minor_units(amount_received, currency),
            currency=currency,
        )
    except NotFound:
        logger.error(f"Webhook error: team {team_id} not found for PaymentIntent {intent_id}")
        return {"handled": False, "reason": "team_not_found"}

    return {"handled": True, **result}


async def handle_webhook_event(session: AsyncSession, config: AppConfig, event: Any) -> Dict[str, Any]:
    """
    Dispatch a verified Stripe event.

    Problems with a single event (missing metadata, deleted team) are logged
    and acknowledged so Stripe does not keep redelivering it.

    Returns:
        Dict with the event type and what was done
    """
    event_type = event["type"]
    payment_intent = event["data"]["object"]
    logger.info(f"Stripe webhook received: type={event_type} id={event.get('id')}")

    if event_type == PAYMENT_SUCCEEDED:
        logger.info(f"Handling payment_intent.succeeded: {payment_intent['id']}")
        outcome = await handle_payment_succeeded(session, config, payment_intent)
    elif event_type == PAYMENT_FAILED:
        error = payment_intent.get("last_payment_error") or {}
        logger.warning(
            f"Handling payment_intent.payment_failed: {payment_intent['id']} "
            f"({error.get('message', 'no error message')})"
        )
        outcome = {"handled": True}
    else:
        logger.info(f"Received unhandled Stripe event type: {event_type}")
        outcome = {"handled": False, "reason": "unhandled_type"}

    return {"status": "success", "type": event_type, **outcome}

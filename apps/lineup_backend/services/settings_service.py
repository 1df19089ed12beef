"""
Settings service for runtime configuration with database overrides.

Supports checking database settings first, then falling back to environment variables.
Uses Redis for distributed caching across instances.

Request handlers build an AppConfig once per request with load_app_config()
and pass it explicitly to the services that need it.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from redis.asyncio import Redis
from lineup_backend.services import data_service
from lineup_backend.utils.exceptions import ValidationFailed
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

# Redis configuration
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
CACHE_TTL_SECONDS = 60  # Cache settings for 60 seconds
REDIS_KEY_PREFIX = "settings:"

# Setting keys editable from the admin settings endpoint
OPTIMIZER_URL_KEY = "optimizer_service_url"
OPTIMIZER_TIMEOUT_KEY = "optimizer_timeout"
ACCESS_DURATION_KEY = "access_duration_days"
PRICE_AMOUNT_KEY = "unlock_price_amount"
CURRENCY_KEY = "unlock_currency"
CURRENCY_SYMBOL_KEY = "unlock_currency_symbol"
CURRENCY_SYMBOL_POSITION_KEY = "unlock_currency_symbol_position"

ADMIN_SETTING_KEYS = (
    OPTIMIZER_URL_KEY,
    OPTIMIZER_TIMEOUT_KEY,
    ACCESS_DURATION_KEY,
    PRICE_AMOUNT_KEY,
    CURRENCY_KEY,
    CURRENCY_SYMBOL_KEY,
    CURRENCY_SYMBOL_POSITION_KEY,
)

DEFAULT_OPTIMIZER_TIMEOUT = 60.0

# Global Redis client (initialized on first use)
_redis_client: Optional[Redis] = None


@dataclass(frozen=True)
class AppConfig:
    """Resolved runtime configuration passed into the services."""

    optimizer_url: Optional[str] = None
    optimizer_timeout_seconds: float = DEFAULT_OPTIMIZER_TIMEOUT
    access_duration_days: Optional[int] = None  # None = access never expires
    unlock_price_amount: float = 0.0
    unlock_currency: str = "usd"
    unlock_currency_symbol: str = "$"
    unlock_currency_symbol_position: str = "before"
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None


async def get_redis_client() -> Optional[Redis]:
    """
    Get or create Redis client connection.

    Returns:
        Redis client or None if connection fails
    """
    global _redis_client

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            return _redis_client
        except Exception as e:
            logger.warning(f"Redis connection test failed, recreating client: {e}")
            try:
                await _redis_client.close()
            except Exception:
                pass
            _redis_client = None

    try:
        _redis_client = Redis(
            host=REDIS_HOST,
            port=REDIS_PORT,
            db=REDIS_DB,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        await _redis_client.ping()
        logger.info(f"Connected to Redis at {REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}")
        return _redis_client
    except Exception as e:
        logger.warning(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}: {e}")
        _redis_client = None
        return None


async def _get_cached_setting(key: str) -> Optional[str]:
    """Get cached setting value from Redis."""
    try:
        redis_client = await get_redis_client()
        if redis_client is None:
            return None
        return await redis_client.get(f"{REDIS_KEY_PREFIX}{key}")
    except Exception as e:
        logger.warning(f"Error getting cached setting {key} from Redis: {e}")
        return None


async def _set_cached_setting(key: str, value: Optional[str]):
    """Cache a setting value in Redis with TTL."""
    try:
        redis_client = await get_redis_client()
        if redis_client is None:
            return

        redis_key = f"{REDIS_KEY_PREFIX}{key}"
        if value is not None:
            await redis_client.setex(redis_key, CACHE_TTL_SECONDS, value)
        else:
            await redis_client.delete(redis_key)
    except Exception as e:
        logger.warning(f"Error setting cached setting {key} in Redis: {e}")


async def _clear_cache():
    """Clear all cached settings from Redis."""
    try:
        redis_client = await get_redis_client()
        if redis_client is None:
            return

        keys = []
        async for key in redis_client.scan_iter(match=f"{REDIS_KEY_PREFIX}*"):
            keys.append(key)

        if keys:
            await redis_client.delete(*keys)
            logger.info(f"Cleared {len(keys)} cached settings from Redis")
    except Exception as e:
        logger.warning(f"Error clearing cache from Redis: {e}")


async def get_setting_with_fallback(
    session: Optional[AsyncSession],
    key: str,
    env_var: Optional[str] = None,
    default: Optional[str] = None,
    fallback_to_cache: bool = True
) -> Optional[str]:
    """
    Get a setting value from database first, then cache, then env var, then default.

    Args:
        session: Database session (optional)
        key: Setting key in database
        env_var: Environment variable name to fall back to
        default: Default value if neither database nor env var is set
        fallback_to_cache: If True, consult Redis when the database has no value

    Returns:
        Setting value as string, or None
    """
    if session:
        try:
            value = await data_service.get_setting(session, key)
            if value is not None:
                await _set_cached_setting(key, value)
                return value
        except Exception as e:
            logger.warning(f"Error reading setting {key} from database: {e}")

    if fallback_to_cache:
        cached = await _get_cached_setting(key)
        if cached is not None:
            return cached

    if env_var:
        value = os.getenv(env_var)
        if value is not None:
            return value

    return default


async def get_float_setting(
    session: Optional[AsyncSession],
    key: str,
    env_var: Optional[str] = None,
    default: Optional[float] = None,
    fallback_to_cache: bool = True
) -> Optional[float]:
    """
    Get a float setting value.

    Returns:
        float: Setting value as float, or default
    """
    value = await get_setting_with_fallback(session, key, env_var, None, fallback_to_cache)

    if value is None or value == "":
        return default

    try:
        return float(value)
    except (ValueError, TypeError):
        logger.warning(f"Invalid float value for setting {key}: {value}")
        return default


async def get_int_setting(
    session: Optional[AsyncSession],
    key: str,
    env_var: Optional[str] = None,
    default: Optional[int] = None,
    fallback_to_cache: bool = True
) -> Optional[int]:
    """Get an integer setting value; blank means unset."""
    value = await get_setting_with_fallback(session, key, env_var, None, fallback_to_cache)

    if value is None or value.strip() == "":
        return default

    try:
        return int(value)
    except (ValueError, TypeError):
        logger.warning(f"Invalid integer value for setting {key}: {value}")
        return default


async def load_app_config(session: Optional[AsyncSession]) -> AppConfig:
    """
    Resolve the runtime configuration for one request.

    Args:
        session: Database session (optional)

    Returns:
        AppConfig
    """
    duration = await get_int_setting(session, ACCESS_DURATION_KEY, "ACCESS_DURATION_DAYS")
    if duration is not None and duration <= 0:
        duration = None

    return AppConfig(
        optimizer_url=await get_setting_with_fallback(session, OPTIMIZER_URL_KEY, "OPTIMIZER_SERVICE_URL"),
        optimizer_timeout_seconds=await get_float_setting(
            session, OPTIMIZER_TIMEOUT_KEY, "OPTIMIZER_TIMEOUT", DEFAULT_OPTIMIZER_TIMEOUT
        ),
        access_duration_days=duration,
        unlock_price_amount=await get_float_setting(session, PRICE_AMOUNT_KEY, "UNLOCK_PRICE_AMOUNT", 0.0),
        unlock_currency=(
            await get_setting_with_fallback(session, CURRENCY_KEY, "UNLOCK_CURRENCY", "usd")
        ).lower(),
        unlock_currency_symbol=await get_setting_with_fallback(
            session, CURRENCY_SYMBOL_KEY, "UNLOCK_CURRENCY_SYMBOL", "$"
        ),
        unlock_currency_symbol_position=await get_setting_with_fallback(
            session, CURRENCY_SYMBOL_POSITION_KEY, "UNLOCK_CURRENCY_SYMBOL_POSITION", "before"
        ),
        stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
        stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
    )


async def invalidate_settings_cache():
    """Invalidate the settings cache (call after updating settings)."""
    await _clear_cache()


async def close_redis_connection():
    """Close Redis connection (call on application shutdown)."""
    global _redis_client
    if _redis_client is not None:
        try:
            await _redis_client.close()
            logger.info("Closed Redis connection")
        except Exception as e:
            logger.warning(f"Error closing Redis connection: {e}")
        finally:
            _redis_client = None


def validate_setting_value(key: str, value: Optional[str]) -> Optional[str]:
    """
    Check an admin-supplied setting value and return it normalized.

    Blank values clear optional numeric settings.

    Raises:
        ValidationFailed: Unknown key or invalid value
    """
    if key not in ADMIN_SETTING_KEYS:
        raise ValidationFailed(f"Unknown setting '{key}'.")
    value = (value or "").strip()

    if key == OPTIMIZER_URL_KEY:
        if value and not value.startswith(("http://", "https://")):
            raise ValidationFailed("optimizer_service_url must be an http(s) URL.")
        return value
    if key in (OPTIMIZER_TIMEOUT_KEY, PRICE_AMOUNT_KEY):
        if not value:
            return value
        try:
            number = float(value)
        except ValueError:
            raise ValidationFailed(f"{key} must be a number.")
        if number < 0 or (key == OPTIMIZER_TIMEOUT_KEY and number == 0):
            raise ValidationFailed(f"{key} must be positive.")
        return value
    if key == ACCESS_DURATION_KEY:
        if value and not value.isdigit():
            raise ValidationFailed("access_duration_days must be a whole number of days (blank = never expires).")
        return value
    if key == CURRENCY_KEY:
        if len(value) != 3 or not value.isalpha():
            raise ValidationFailed("unlock_currency must be a 3-letter ISO code.")
        return value.lower()
    if key == CURRENCY_SYMBOL_POSITION_KEY:
        if value not in ("before", "after"):
            raise ValidationFailed("unlock_currency_symbol_position must be 'before' or 'after'.")
        return value
    if not value or len(value) > 5:
        raise ValidationFailed(f"{key} must be 1 to 5 characters.")
    return value

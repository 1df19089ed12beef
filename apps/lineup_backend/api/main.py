"""
Lineup API Server

FastAPI server for game lineups, lineup optimization, player stats and team
access (payments and promo codes).
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from lineup_backend.api.routes import router, limiter as routes_limiter
from lineup_backend.database import db
from lineup_backend.database.init_defaults import init_defaults
from lineup_backend.services import settings_service
from lineup_backend.utils.exceptions import LineupCoreError

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
# Note: Database setting will be checked after database initialization
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info("Starting up Lineup API...")

    # Fallback for tables not yet created by migrations
    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    try:
        await init_defaults()

        try:
            from lineup_backend.services import data_service

            async with db.AsyncSessionLocal() as session:
                log_level_setting = await data_service.get_setting(session, "log_level")
                if log_level_setting:
                    log_level_name = log_level_setting.upper()
                    logging.getLogger().setLevel(getattr(logging, log_level_name, logging.INFO))
                    logger.info(f"Log level set from database: {log_level_name}")
                else:
                    logger.info(f"Log level set from environment: {log_level}")
        except Exception as e:
            logger.warning(f"Could not load log level from database, using environment: {e}")
    except Exception as e:
        logger.error(f"Failed to initialize defaults: {e}", exc_info=True)

    yield  # App is running

    logger.info("Shutting down Lineup API...")
    try:
        await settings_service.close_redis_connection()
        logger.info("Redis connection closed")
    except Exception as e:
        logger.error(f"Error closing Redis connection: {e}", exc_info=True)


async def lineup_core_error_handler(request: Request, exc: LineupCoreError) -> JSONResponse:
    """Render typed service errors as {"error": kind, "detail": ..., **extra}."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app = FastAPI(
    title="Lineup API",
    description="API for game lineups, lineup optimization and team access",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(LineupCoreError, lineup_core_error_handler)

# Add CORS middleware - origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)

"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter) lives here; every sub-router imports what it
needs from this package.
"""

import os

from fastapi import APIRouter
from slowapi import Limiter
from slowapi.util import get_remote_address

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
limiter = Limiter(key_func=get_remote_address)
if IS_TEST_ENV:

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()

# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from lineup_backend.api.routes.lineups import router as lineups_router  # noqa: E402
from lineup_backend.api.routes.players import router as players_router  # noqa: E402
from lineup_backend.api.routes.access import router as access_router  # noqa: E402
from lineup_backend.api.routes.admin import router as admin_router  # noqa: E402

router = APIRouter()
router.include_router(lineups_router)
router.include_router(players_router)
router.include_router(access_router)
router.include_router(admin_router)

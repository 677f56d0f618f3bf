"""
API routes - combined router from all domain modules.

Shared infrastructure (limiter, error mapping) lives here; every sub-router
imports what it needs from this package.
"""

import logging
import os

from fastapi import APIRouter, HTTPException
from slowapi import Limiter
from slowapi.util import get_remote_address

from matchpro.services.errors import NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared rate limiter
# ---------------------------------------------------------------------------
IS_TEST_ENV = os.getenv("ENV", "").lower() == "test"
if IS_TEST_ENV:
    limiter = Limiter(key_func=get_remote_address)

    def no_op_limit(*args, **kwargs):
        """No-op decorator for test mode - doesn't apply any rate limiting."""
        def decorator(func):
            return func
        return decorator

    limiter.limit = lambda *args, **kwargs: no_op_limit()
else:
    limiter = Limiter(key_func=get_remote_address)

# ---------------------------------------------------------------------------
# Shared constants and helpers
# ---------------------------------------------------------------------------
INVALID_CREDENTIALS_RESPONSE = HTTPException(
    status_code=401, detail="Email or password is incorrect"
)


def to_http_exception(e: Exception, action: str) -> HTTPException:
    """
    Map a service exception to an HTTP error.

    NotFoundError -> 404, PermissionDeniedError -> 403, other ValueError -> 400.
    Anything else is logged and reported as 500.
    """
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, ValueError):
        return HTTPException(status_code=400, detail=str(e))
    logger.error(f"Error {action}: {e}", exc_info=True)
    return HTTPException(status_code=500, detail=f"Error {action}")


# ---------------------------------------------------------------------------
# Import sub-routers and combine
# ---------------------------------------------------------------------------
from matchpro.api.routes.health import router as health_router  # noqa: E402
from matchpro.api.routes.auth import router as auth_router  # noqa: E402
from matchpro.api.routes.teams import router as teams_router  # noqa: E402
from matchpro.api.routes.players import router as players_router  # noqa: E402
from matchpro.api.routes.matches import router as matches_router  # noqa: E402
from matchpro.api.routes.votes import router as votes_router  # noqa: E402
from matchpro.api.routes.finance import router as finance_router  # noqa: E402
from matchpro.api.routes.alerts import router as alerts_router  # noqa: E402
from matchpro.api.routes.members import router as members_router  # noqa: E402

router = APIRouter()
router.include_router(health_router)
router.include_router(auth_router)
router.include_router(teams_router)
router.include_router(players_router)
router.include_router(matches_router)
router.include_router(votes_router)
router.include_router(finance_router)
router.include_router(alerts_router)
router.include_router(members_router)

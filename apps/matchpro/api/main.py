"""
MatchPro API Server

FastAPI server for amateur team management: rosters, matches, stats,
post-match voting and team finances.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os
import uvicorn
from slowapi import _rate_limit_exceeded_handler  # type: ignore
from slowapi.errors import RateLimitExceeded  # type: ignore

from matchpro.api.routes import router, limiter as routes_limiter
from matchpro.database import db
from matchpro.services.billing_worker import get_billing_worker

# Set up logging
# Allow log level to be configured via environment variable (default: INFO)
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
numeric_level = getattr(logging, log_level, logging.INFO)
logging.basicConfig(
    level=numeric_level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

BILLING_WORKER_ENABLED = os.getenv("BILLING_WORKER_ENABLED", "true").lower() == "true"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup and shutdown events."""
    logger.info("Starting up MatchPro API...")

    try:
        await db.init_database()
        logger.info("Database initialized")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}", exc_info=True)

    if BILLING_WORKER_ENABLED:
        try:
            get_billing_worker().start()
            logger.info("✓ Billing worker started")
        except Exception as e:
            logger.error(f"Failed to start billing worker: {e}", exc_info=True)

    yield  # App is running

    logger.info("Shutting down MatchPro API...")

    if BILLING_WORKER_ENABLED:
        try:
            get_billing_worker().stop()
            logger.info("✓ Billing worker stopped")
        except Exception as e:
            logger.error(f"Error stopping billing worker: {e}", exc_info=True)


app = FastAPI(
    title="MatchPro API",
    description="API for managing amateur sports teams: matches, stats, voting and finances",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup rate limiter
app.state.limiter = routes_limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Add CORS middleware, origins configured via ALLOWED_ORIGINS env var
allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))

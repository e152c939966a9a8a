# middleware/rate_limit.py
"""
Rate limiting configuration using slowapi.

Forecast calls hit a paid model API, so they get a tighter limit than the
cheap form endpoints.

Usage in route files:
    from middleware.rate_limit import limiter, FORECAST_RATE_LIMIT

    @router.post("/forecast")
    @limiter.limit(FORECAST_RATE_LIMIT)
    async def my_endpoint(request: Request):
        ...
"""
import logging
import os

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

# ─── Default limits ────────────────────────────────────────────────
# Env-overridable so you can tune per-environment without redeploying.
DEFAULT_RATE_LIMIT = os.getenv("RATE_LIMIT_DEFAULT", "60/minute")
FORECAST_RATE_LIMIT = os.getenv("FORECAST_RATE_LIMIT", "10/minute")

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[DEFAULT_RATE_LIMIT],
    storage_uri=os.getenv("RATE_LIMIT_STORAGE_URI", "memory://"),
    strategy="fixed-window",
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning(
        "rate_limit_exceeded path=%s limit=%s",
        request.scope.get("path", ""), exc.detail,
    )
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests. Please wait a moment and try again."},
    )

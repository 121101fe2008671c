"""
Rate limiting middleware for FastAPI
Uses slowapi with Redis backend for distributed rate limiting
"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request, status
from fastapi.responses import JSONResponse
import logging

from app.config import settings

logger = logging.getLogger(__name__)


def get_rate_limit_key(request: Request) -> str:
    """
    Get rate limit key based on user authentication or IP address
    Prioritizes authenticated consultants for better rate limiting
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"rate_limit:user:{user_id}"

    # Fallback to IP address
    return f"rate_limit:ip:{get_remote_address(request)}"


# Use Redis if available, otherwise use in-memory storage
# Note: In-memory storage only works for single-instance deployments
storage_uri = settings.REDIS_URL or "memory://"
if storage_uri == "memory://":
    logger.warning("Rate limiting will use in-memory storage (not suitable for distributed deployments)")

limiter = Limiter(
    key_func=get_rate_limit_key,
    storage_uri=storage_uri,
    default_limits=[f"{settings.RATE_LIMIT_PER_MINUTE}/minute", f"{settings.RATE_LIMIT_PER_HOUR}/hour"],
    headers_enabled=True,  # Include rate limit headers in response
    retry_after="x-ratelimit-retry-after",
    enabled=settings.RATE_LIMIT_ENABLED,
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """
    Custom handler for rate limit exceeded errors
    """
    response = JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "Rate limit exceeded",
            "message": f"Too many requests. Limit: {exc.detail}",
            "code": "RATE_LIMIT_EXCEEDED",
            "statusCode": status.HTTP_429_TOO_MANY_REQUESTS,
        }
    )
    view_rate_limit = getattr(request.state, "view_rate_limit", None)
    if view_rate_limit is None:
        return response
    return request.app.state.limiter._inject_headers(response, view_rate_limit)

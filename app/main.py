"""
Nakksha Backend - Main FastAPI Application
"""
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from slowapi.errors import RateLimitExceeded
from contextlib import asynccontextmanager
from typing import Any, Optional
import logging
import traceback

from app.config import settings
from app.db.session import Database
from app.middleware.rate_limit import limiter, rate_limit_exceeded_handler
from app.middleware.timeout import RequestTimeoutMiddleware
from app.services.cache_service import CacheService
from app.services.email_service import EmailService
from app.services.notification_service import SideEffectDispatcher
from app.services.payment_service import RazorpayGateway
from app.utils.errors import AppError
from app.api.v1 import (
    availability,
    booking,
    payments
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

BOOKING_PATH = f"{settings.API_V1_PREFIX}/book"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events

    Anything already placed on ``app.state`` (e.g. by tests) is kept.
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug mode: {settings.DEBUG}")

    state = app.state
    if getattr(state, "database", None) is None:
        state.database = Database(settings.DATABASE_URL)
    if getattr(state, "cache", None) is None:
        state.cache = CacheService.from_settings()
    if getattr(state, "payment_gateway", None) is None:
        state.payment_gateway = RazorpayGateway.from_settings()
    if getattr(state, "side_effects", None) is None:
        state.side_effects = SideEffectDispatcher(EmailService(), state.cache)

    yield

    # Shutdown
    logger.info("Shutting down...")
    state.side_effects.shutdown(wait=True)
    state.cache.close()
    state.database.dispose()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Consultant session booking & payments API",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    lifespan=lifespan,
    debug=settings.DEBUG
)

# Add rate limiter to app state
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


# ============================================================================
# MIDDLEWARE
# ============================================================================

# Hard wall-clock budget for public booking; added first so CORS wraps its 408
app.add_middleware(RequestTimeoutMiddleware, paths=[BOOKING_PATH])

logger.info(f"CORS configured for origins: {settings.CORS_ORIGINS}")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Trusted Host Middleware (security)
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.ALLOWED_HOSTS
)


# ============================================================================
# ROUTES
# ============================================================================

@app.get("/")
async def root():
    """
    Root endpoint - API status
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "docs": "/docs",
        "health": "/health"
    }


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring
    """
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT
    }


# Include API routers
app.include_router(
    booking.router,
    prefix=BOOKING_PATH,
    tags=["Booking"]
)

app.include_router(
    availability.router,
    prefix=f"{settings.API_V1_PREFIX}/availability",
    tags=["Availability"]
)

app.include_router(
    payments.router,
    prefix=f"{settings.API_V1_PREFIX}/payments",
    tags=["Payments"]
)


# ============================================================================
# ERROR HANDLERS
# ============================================================================

def error_body(
    request: Request,
    error: str,
    message: str,
    code: str,
    status_code: int,
    details: Optional[Any] = None,
    exc: Optional[BaseException] = None
) -> dict:
    body = {
        "error": error,
        "message": message,
        "code": code,
        "statusCode": status_code,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "path": request.url.path,
        "method": request.method,
    }
    if details is not None:
        body["details"] = details
    if exc is not None and not settings.is_production:
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    """
    Operational errors keep their status, code and message
    """
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(
            request,
            type(exc).__name__,
            exc.message,
            exc.code,
            exc.status_code,
            details=exc.details,
            exc=exc if exc.status_code >= 500 else None,
        )
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """
    Malformed request bodies are reported as 400 validation errors
    """
    details = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]) or "root",
            "message": err.get("msg"),
            "code": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=error_body(request, "ValidationError", "Validation failed", "VALIDATION_ERROR", 400, details=details)
    )


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    """
    Custom 404 handler
    """
    return JSONResponse(
        status_code=404,
        content=error_body(request, "Not Found", "The requested resource was not found", "NOT_FOUND", 404)
    )


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    """
    Custom 500 handler
    """
    logger.error(f"Internal server error: {exc}", exc_info=exc)
    if settings.is_production:
        return JSONResponse(
            status_code=500,
            content=error_body(
                request,
                "Internal Server Error",
                "Something went wrong. Please try again later.",
                "INTERNAL_ERROR",
                500,
            )
        )
    return JSONResponse(
        status_code=500,
        content=error_body(request, type(exc).__name__, str(exc), "INTERNAL_ERROR", 500, exc=exc)
    )


# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )

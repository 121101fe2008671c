"""Public session booking endpoint"""
from fastapi import APIRouter, Depends, Request, Response, status

from app.config import settings
from app.dependencies.services import get_booking_orchestrator
from app.middleware.rate_limit import limiter
from app.schemas.booking import BookSessionRequest, BookSessionResponse
from app.services.booking_service import BookingOrchestrator

router = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED, response_model=BookSessionResponse)
@limiter.limit(settings.BOOKING_RATE_LIMIT)
def book_session(
    request: Request,
    response: Response,
    booking: BookSessionRequest,
    orchestrator: BookingOrchestrator = Depends(get_booking_orchestrator)
):
    """
    Book a session with a consultant (no authentication)

    Runs in the threadpool so the request timeout middleware can answer 408
    while the transaction finishes or rolls back on its own budget.
    """
    return orchestrator.book_session(booking)

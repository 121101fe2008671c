"""Request and transaction time budgets for booking"""
import asyncio
import time

import pytest
from fastapi.testclient import TestClient
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route

from app.config import settings
from app.middleware.timeout import RequestTimeoutMiddleware
from app.models.availability import AvailabilitySlot
from app.models.client import Client
from app.models.consultation import ConsultationSession
from app.schemas.booking import BookSessionRequest
from app.services.booking_service import BookingOrchestrator, _Deadline
from app.services.client_service import ClientService
from app.utils.errors import AppError, TransactionTimeoutError

BOOK_URL = "/api/v1/book"


@pytest.fixture
def slow_client_upsert(monkeypatch):
    original = ClientService.find_or_create

    def slow_find_or_create(self, *args, **kwargs):
        time.sleep(0.6)
        return original(self, *args, **kwargs)

    monkeypatch.setattr(ClientService, "find_or_create", slow_find_or_create)


def test_slow_booking_gets_single_408(client, database, open_slot, booking_payload, monkeypatch, slow_client_upsert):
    monkeypatch.setattr(settings, "BOOKING_REQUEST_TIMEOUT_SECONDS", 0.3)
    monkeypatch.setattr(settings, "BOOKING_TRANSACTION_TIMEOUT_SECONDS", 0.2)

    started = time.monotonic()
    response = client.post(BOOK_URL, json=booking_payload)
    elapsed = time.monotonic() - started

    assert response.status_code == 408
    assert response.json() == {
        "error": "Request Timeout",
        "message": "Booking request took too long. Please try again.",
        "code": "BOOKING_TIMEOUT",
    }
    assert elapsed < 0.6

    # The abandoned handler finishes on its own budget and rolls back
    time.sleep(1.0)
    with database.session() as s:
        assert s.query(ConsultationSession).count() == 0
        assert s.query(Client).count() == 0
        assert s.get(AvailabilitySlot, open_slot.id).is_booked is False


def test_timeout_response_carries_cors_headers(client, open_slot, booking_payload, monkeypatch, slow_client_upsert):
    monkeypatch.setattr(settings, "BOOKING_REQUEST_TIMEOUT_SECONDS", 0.3)
    monkeypatch.setattr(settings, "BOOKING_TRANSACTION_TIMEOUT_SECONDS", 0.2)
    origin = "http://localhost:3000"

    response = client.post(BOOK_URL, json=booking_payload, headers={"Origin": origin})

    assert response.status_code == 408
    assert response.json()["code"] == "BOOKING_TIMEOUT"
    assert response.headers["access-control-allow-origin"] == origin
    # Let the abandoned handler roll back before the database goes away
    time.sleep(1.0)


def test_fast_booking_is_untouched_by_timeout(client, open_slot, booking_payload, monkeypatch):
    monkeypatch.setattr(settings, "BOOKING_REQUEST_TIMEOUT_SECONDS", 5.0)

    response = client.post(BOOK_URL, json=booking_payload)

    assert response.status_code == 201


def test_transaction_budget_rolls_back(database, open_slot, booking_payload, slow_client_upsert):
    orchestrator = BookingOrchestrator(database, side_effects=None, transaction_timeout=0.2)
    request = BookSessionRequest.model_validate(booking_payload)

    with pytest.raises(AppError) as exc_info:
        orchestrator.book_session(request)

    assert exc_info.value.code == "SESSION_BOOKING_ERROR"
    assert exc_info.value.status_code == 500
    assert isinstance(exc_info.value.__cause__, TransactionTimeoutError)
    with database.session() as s:
        assert s.query(ConsultationSession).count() == 0
        assert s.query(Client).count() == 0
        assert s.get(AvailabilitySlot, open_slot.id).is_booked is False


def test_deadline_check():
    deadline = _Deadline(0.05)
    deadline.check("start")
    time.sleep(0.1)
    with pytest.raises(TransactionTimeoutError):
        deadline.check("later")


# ============================================================================
# MIDDLEWARE IN ISOLATION
# ============================================================================

def _timed_app(delay: float) -> Starlette:
    async def slow(request):
        await asyncio.sleep(delay)
        return JSONResponse({"ok": True})

    app = Starlette(routes=[Route("/slow", slow), Route("/other", slow)])
    app.add_middleware(RequestTimeoutMiddleware, paths=["/slow"], timeout_seconds=0.1, code="SLOW")
    return app


def test_middleware_answers_408_for_guarded_path():
    with TestClient(_timed_app(0.5)) as test_client:
        response = test_client.get("/slow")

    assert response.status_code == 408
    assert response.json()["code"] == "SLOW"


def test_middleware_ignores_other_paths():
    with TestClient(_timed_app(0.2)) as test_client:
        response = test_client.get("/other")

    assert response.status_code == 200
    assert response.json() == {"ok": True}


def test_middleware_passes_fast_responses():
    with TestClient(_timed_app(0.0)) as test_client:
        response = test_client.get("/slow")

    assert response.status_code == 200

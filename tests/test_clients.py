"""Client registry, consultant tokens and shared HTTP plumbing"""
import json
from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

from slowapi.errors import RateLimitExceeded
from starlette.requests import Request

from app.middleware.rate_limit import rate_limit_exceeded_handler
from app.models.client import Client
from app.services.client_service import ClientService, split_full_name
from app.utils.auth import create_access_token, decode_access_token


def test_split_full_name():
    assert split_full_name("Asha K Rao") == ("Asha", "K Rao")
    assert split_full_name("  Asha ") == ("Asha", "")
    assert split_full_name("") == ("", "")


def test_find_or_create_is_keyed_by_lowercased_email(db, consultant):
    service = ClientService(db)

    created, was_created = service.find_or_create(consultant.id, "Anita@Example.com", "Anita Desai", "98123")
    found, found_created = service.find_or_create(consultant.id, "anita@example.com", "Someone Else")

    assert was_created is True
    assert found_created is False
    assert found.id == created.id
    assert created.email == "anita@example.com"
    assert (created.first_name, created.last_name) == ("Anita", "Desai")


def test_same_email_is_separate_client_per_consultant(db, consultant, unapproved_consultant):
    service = ClientService(db)

    first, _ = service.find_or_create(consultant.id, "anita@example.com", "Anita Desai")
    second, created = service.find_or_create(unapproved_consultant.id, "anita@example.com", "Anita Desai")

    assert created is True
    assert first.id != second.id


def test_concurrent_insert_falls_back_to_existing_row(db, database, consultant, monkeypatch):
    # Another request commits the same client between our lookup and insert
    with database.session() as other:
        other.add(Client(consultant_id=consultant.id, email="race@example.com", name="Race Winner"))
        other.commit()

    service = ClientService(db)
    lookups = []
    original = ClientService.get_by_email

    def miss_first(self, consultant_id, email):
        lookups.append(email)
        if len(lookups) == 1:
            return None
        return original(self, consultant_id, email)

    monkeypatch.setattr(ClientService, "get_by_email", miss_first)

    client, created = service.find_or_create(consultant.id, "race@example.com", "Race Loser")

    assert created is False
    assert client.name == "Race Winner"
    # The outer transaction survives the failed savepoint
    assert db.query(Client).count() == 1


def test_counters_are_updated_in_sql(db, consultant):
    service = ClientService(db)
    client, _ = service.find_or_create(consultant.id, "anita@example.com", "Anita Desai")

    service.increment_total_sessions(client.id)
    service.increment_total_sessions(client.id)
    service.add_amount_paid(client.id, Decimal("1500"))
    service.add_amount_paid(client.id, Decimal("-500"))
    db.refresh(client)

    assert client.total_sessions == 2
    assert client.total_amount_paid == Decimal("1000.00")


def test_access_token_round_trip(consultant):
    token = create_access_token({"sub": consultant.id})

    assert decode_access_token(token)["sub"] == consultant.id
    assert decode_access_token(token + "x") is None
    expired = create_access_token({"sub": consultant.id}, expires_delta=timedelta(seconds=-1))
    assert decode_access_token(expired) is None


def test_expired_token_is_rejected(client, consultant):
    expired = create_access_token({"sub": consultant.id}, expires_delta=timedelta(seconds=-1))

    response = client.get(
        "/api/v1/availability/patterns", headers={"Authorization": f"Bearer {expired}"}
    )

    assert response.status_code == 401


def test_cookie_token_is_accepted(client, consultant):
    client.cookies.set("access_token", create_access_token({"sub": consultant.id}))

    response = client.get("/api/v1/availability/patterns")

    assert response.status_code == 200
    assert response.json()["data"]["patterns"] == []


def test_error_body_shape(client):
    response = client.get("/api/v1/availability/patterns")

    body = response.json()
    assert body["error"] == "AuthenticationError"
    assert body["statusCode"] == 401
    assert body["path"] == "/api/v1/availability/patterns"
    assert body["method"] == "GET"
    assert "timestamp" in body


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


def test_rate_limit_handler_without_view_limit():
    request = Request({"type": "http", "method": "POST", "path": "/api/v1/book", "headers": []})
    exc = RateLimitExceeded(SimpleNamespace(error_message=None, limit="5 per 1 minute"))

    response = rate_limit_exceeded_handler(request, exc)

    assert response.status_code == 429
    assert json.loads(response.body)["code"] == "RATE_LIMIT_EXCEEDED"

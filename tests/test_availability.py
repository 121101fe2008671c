"""Weekly patterns, slot generation and the public slots listing"""
from datetime import date, timedelta

import pytest

from app.models.availability import AvailabilitySlot, WeeklyAvailabilityPattern
from app.models.enums import SessionType
from app.services.availability_service import AvailabilityService
from app.utils.errors import NotFoundError, ValidationError
from app.utils.time_utils import js_weekday, local_to_utc, normalize_time, validate_time_range

FRIDAY = date(2026, 10, 16)
MONDAY = 1


@pytest.fixture
def service(db):
    return AvailabilityService(db)


def _slots(db, consultant_id):
    return (
        db.query(AvailabilitySlot)
        .filter(AvailabilitySlot.consultant_id == consultant_id)
        .order_by(AvailabilitySlot.date, AvailabilitySlot.start_time)
        .all()
    )


# ============================================================================
# TIME HELPERS
# ============================================================================

def test_hourly_windows_fit_inside_range():
    assert AvailabilityService.hourly_windows("09:00", "12:00") == [
        ("09:00", "10:00"), ("10:00", "11:00"), ("11:00", "12:00"),
    ]
    assert AvailabilityService.hourly_windows("09:30", "11:00") == [("09:30", "10:30")]
    assert AvailabilityService.hourly_windows("09:00", "09:30") == []


def test_time_helpers():
    assert normalize_time("9:05") == "09:05"
    assert js_weekday(FRIDAY) == 5
    assert js_weekday(FRIDAY + timedelta(days=2)) == 0
    assert local_to_utc(FRIDAY, "10:00", "Asia/Kolkata").isoformat() == "2026-10-16T04:30:00"
    validate_time_range("09:00", "09:01")
    with pytest.raises(ValidationError):
        validate_time_range("10:00", "10:00")
    with pytest.raises(ValidationError):
        validate_time_range("11:00", "10:00")


# ============================================================================
# GENERATION
# ============================================================================

def test_generates_slots_on_matching_weekdays(db, service, consultant):
    service.create_pattern(consultant.id, SessionType.PERSONAL, MONDAY, "09:00", "11:00")

    created = service.generate_slots_from_patterns(
        consultant.id, FRIDAY, FRIDAY + timedelta(days=13), today=FRIDAY
    )

    assert created == 4
    slots = _slots(db, consultant.id)
    assert [(s.date, s.start_time, s.end_time) for s in slots] == [
        (date(2026, 10, 19), "09:00", "10:00"),
        (date(2026, 10, 19), "10:00", "11:00"),
        (date(2026, 10, 26), "09:00", "10:00"),
        (date(2026, 10, 26), "10:00", "11:00"),
    ]
    assert all(not s.is_booked and not s.is_blocked for s in slots)


def test_generation_skips_existing_slots(db, service, consultant):
    service.create_pattern(consultant.id, SessionType.PERSONAL, MONDAY, "09:00", "11:00")
    end = FRIDAY + timedelta(days=13)

    assert service.generate_slots_from_patterns(consultant.id, FRIDAY, end, today=FRIDAY) == 4
    assert service.generate_slots_from_patterns(consultant.id, FRIDAY, end, today=FRIDAY) == 0
    assert len(_slots(db, consultant.id)) == 4


def test_generation_never_fills_past_dates(db, service, consultant):
    service.create_pattern(consultant.id, SessionType.PERSONAL, MONDAY, "09:00", "11:00")

    created = service.generate_slots_from_patterns(
        consultant.id, date(2026, 10, 1), date(2026, 10, 20), today=FRIDAY
    )

    assert created == 2
    assert {s.date for s in _slots(db, consultant.id)} == {date(2026, 10, 19)}


def test_generation_filters_by_session_type_and_active(db, service, consultant):
    service.create_pattern(consultant.id, SessionType.PERSONAL, MONDAY, "09:00", "10:00")
    service.create_pattern(consultant.id, SessionType.WEBINAR, MONDAY, "15:00", "16:00")
    service.create_pattern(consultant.id, SessionType.WEBINAR, 2, "15:00", "16:00", is_active=False)

    created = service.generate_slots_from_patterns(
        consultant.id, FRIDAY, FRIDAY + timedelta(days=6),
        session_type=SessionType.WEBINAR, today=FRIDAY,
    )

    assert created == 1
    (slot,) = _slots(db, consultant.id)
    assert slot.session_type == SessionType.WEBINAR
    assert slot.date == date(2026, 10, 19)


def test_generation_range_limits(service, consultant):
    with pytest.raises(ValidationError, match="cannot exceed 90 days"):
        service.generate_slots_from_patterns(
            consultant.id, FRIDAY, FRIDAY + timedelta(days=91), today=FRIDAY
        )
    with pytest.raises(ValidationError, match="must not be before"):
        service.generate_slots_from_patterns(
            consultant.id, FRIDAY, FRIDAY - timedelta(days=1), today=FRIDAY
        )
    assert service.generate_slots_from_patterns(
        consultant.id, FRIDAY, FRIDAY + timedelta(days=90), today=FRIDAY
    ) == 0


# ============================================================================
# PATTERNS
# ============================================================================

def test_overlapping_patterns_are_rejected(service, consultant):
    service.create_pattern(consultant.id, SessionType.PERSONAL, MONDAY, "09:00", "12:00")

    with pytest.raises(ValidationError, match="overlaps"):
        service.create_pattern(consultant.id, SessionType.PERSONAL, MONDAY, "11:00", "13:00")

    # Touching ranges, other types and other days are fine
    service.create_pattern(consultant.id, SessionType.PERSONAL, MONDAY, "12:00", "13:00")
    service.create_pattern(consultant.id, SessionType.WEBINAR, MONDAY, "09:00", "12:00")
    service.create_pattern(consultant.id, SessionType.PERSONAL, 2, "09:00", "12:00")
    assert len(service.list_patterns(consultant.id)) == 4


def test_pattern_with_inverted_range_is_rejected(service, consultant):
    with pytest.raises(ValidationError, match="End time must be after start time"):
        service.create_pattern(consultant.id, SessionType.PERSONAL, MONDAY, "12:00", "09:00")


def test_update_pattern_ignores_itself_for_overlap(service, consultant):
    pattern = service.create_pattern(consultant.id, SessionType.PERSONAL, MONDAY, "09:00", "12:00")
    other = service.create_pattern(consultant.id, SessionType.PERSONAL, MONDAY, "14:00", "15:00")

    updated = service.update_pattern(consultant.id, pattern.id, {"end_time": "13:00"})
    assert updated.end_time == "13:00"

    with pytest.raises(ValidationError):
        service.update_pattern(consultant.id, other.id, {"start_time": "12:30"})


def test_unknown_pattern_is_not_found(service, consultant):
    with pytest.raises(NotFoundError):
        service.get_pattern(consultant.id, "missing")


def test_delete_pattern_blocks_future_unbooked_slots(db, service, consultant):
    pattern = service.create_pattern(consultant.id, SessionType.PERSONAL, MONDAY, "09:00", "11:00")
    service.create_pattern(consultant.id, SessionType.PERSONAL, 2, "09:00", "11:00")
    service.generate_slots_from_patterns(consultant.id, FRIDAY, FRIDAY + timedelta(days=6), today=FRIDAY)
    booked = next(
        s for s in _slots(db, consultant.id) if s.date == date(2026, 10, 19) and s.start_time == "09:00"
    )
    booked.is_booked = True
    db.flush()

    blocked = service.delete_pattern(consultant.id, pattern.id, today=FRIDAY)

    assert blocked == 1
    by_key = {(s.date, s.start_time): s for s in _slots(db, consultant.id)}
    assert by_key[(date(2026, 10, 19), "09:00")].is_blocked is False
    assert by_key[(date(2026, 10, 19), "10:00")].is_blocked is True
    # Tuesday slots belong to the other pattern
    assert by_key[(date(2026, 10, 20), "09:00")].is_blocked is False
    assert db.query(WeeklyAvailabilityPattern).count() == 1


# ============================================================================
# OPEN SLOT LISTING
# ============================================================================

def test_list_open_slots_pages_and_filters(db, service, consultant):
    service.create_pattern(consultant.id, SessionType.PERSONAL, MONDAY, "09:00", "12:00")
    service.generate_slots_from_patterns(consultant.id, FRIDAY, FRIDAY + timedelta(days=13), today=FRIDAY)
    slots = _slots(db, consultant.id)
    slots[0].is_booked = True
    slots[1].is_blocked = True
    db.flush()

    page, total = service.list_open_slots(consultant.id, limit=3, offset=0, today=FRIDAY)
    assert total == 4
    assert [s.id for s in page] == [s.id for s in slots[2:5]]

    page, total = service.list_open_slots(consultant.id, limit=3, offset=3, today=FRIDAY)
    assert [s.id for s in page] == [slots[5].id]

    page, total = service.list_open_slots(
        consultant.id, session_type=SessionType.WEBINAR, today=FRIDAY
    )
    assert (page, total) == ([], 0)


# ============================================================================
# API
# ============================================================================

def test_public_slots_endpoint(client, consultant, open_slot, booking_day):
    response = client.get(f"/api/v1/availability/slots/{consultant.slug}")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["totalSlots"] == 1
    assert data["totalAvailable"] == 1
    assert data["slots"][0] == {
        "id": open_slot.id,
        "sessionType": "PERSONAL",
        "date": booking_day.isoformat(),
        "startTime": "10:00",
        "endTime": "11:00",
    }
    assert list(data["slotsByDate"]) == [booking_day.isoformat()]
    assert data["pagination"] == {"limit": 100, "offset": 0, "hasMore": False}
    assert data["consultant"] == {"name": "Meera Iyer"}


def test_public_slots_hide_booked_slots(client, open_slot, booking_payload, consultant):
    assert client.post("/api/v1/book", json=booking_payload).status_code == 201

    response = client.get(f"/api/v1/availability/slots/{consultant.slug}")

    assert response.status_code == 200
    assert response.json()["data"]["slots"] == []


def test_public_slots_unknown_consultant(client):
    response = client.get("/api/v1/availability/slots/nobody")
    assert response.status_code == 404


def test_pattern_endpoints_require_auth(client):
    response = client.get("/api/v1/availability/patterns")
    assert response.status_code == 401
    assert response.json()["code"] == "AUTHENTICATION_ERROR"


def test_pattern_lifecycle_via_api(client, auth_headers, today):
    created = client.post(
        "/api/v1/availability/patterns",
        json={"sessionType": "PERSONAL", "dayOfWeek": js_weekday(today + timedelta(days=1)),
              "startTime": "09:00", "endTime": "11:00"},
        headers=auth_headers,
    )
    assert created.status_code == 201
    pattern = created.json()["data"]["pattern"]
    assert pattern["startTime"] == "09:00"
    assert pattern["isActive"] is True

    overlap = client.post(
        "/api/v1/availability/patterns",
        json={"sessionType": "PERSONAL", "dayOfWeek": pattern["dayOfWeek"],
              "startTime": "10:00", "endTime": "12:00"},
        headers=auth_headers,
    )
    assert overlap.status_code == 400

    generated = client.post(
        "/api/v1/availability/generate-slots",
        json={"startDate": today.isoformat(), "endDate": (today + timedelta(days=6)).isoformat()},
        headers=auth_headers,
    )
    assert generated.status_code == 201
    assert generated.json()["data"]["slotsCreated"] == 2

    listed = client.get("/api/v1/availability/patterns", headers=auth_headers)
    assert [p["id"] for p in listed.json()["data"]["patterns"]] == [pattern["id"]]

    deleted = client.delete(f"/api/v1/availability/patterns/{pattern['id']}", headers=auth_headers)
    assert deleted.status_code == 200
    assert deleted.json()["data"]["slotsBlocked"] == 2


def test_slot_claim_is_conditional(db, service, open_slot):
    assert service.find_open_slot(open_slot.consultant_id, SessionType.PERSONAL, open_slot.date, "10:00") == open_slot.id

    assert service.mark_booked(open_slot.id, "session-1") is True
    assert service.mark_booked(open_slot.id, "session-2") is False
    assert service.find_open_slot(open_slot.consultant_id, SessionType.PERSONAL, open_slot.date, "10:00") is None

    assert service.mark_unbooked(open_slot.id) is True
    db.expire_all()
    slot = db.get(AvailabilitySlot, open_slot.id)
    assert (slot.is_booked, slot.session_id) == (False, None)

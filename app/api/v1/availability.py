"""Availability endpoints - weekly patterns, slot generation and public slots"""
from collections import OrderedDict
from datetime import date
from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from app.config import settings
from app.db.session import get_db
from app.dependencies.auth import get_current_consultant
from app.dependencies.services import get_cache, get_side_effects
from app.middleware.rate_limit import limiter
from app.models.consultant import Consultant
from app.models.enums import SessionType
from app.schemas.availability import (
    GenerateSlotsRequest,
    PatternCreate,
    PatternResponse,
    PatternUpdate,
    SlotResponse,
)
from app.services.availability_service import AvailabilityService
from app.services.cache_service import CacheService
from app.services.notification_service import SideEffectDispatcher
from app.utils.errors import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter()


def _slot_caches(consultant: Consultant):
    return [f"slots:{consultant.slug}:*", f"availability:{consultant.id}:*"]


def _commit(db: Session) -> None:
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise


def _pattern_out(pattern) -> dict:
    return PatternResponse.model_validate(pattern).model_dump(by_alias=True, mode="json")


@router.get("/patterns")
def list_patterns(
    db: Session = Depends(get_db),
    consultant: Consultant = Depends(get_current_consultant)
):
    patterns = AvailabilityService(db).list_patterns(consultant.id)
    return {
        "message": "Weekly availability patterns retrieved successfully",
        "data": {"patterns": [_pattern_out(p) for p in patterns]},
    }


@router.post("/patterns", status_code=status.HTTP_201_CREATED)
def create_pattern(
    pattern_in: PatternCreate,
    db: Session = Depends(get_db),
    consultant: Consultant = Depends(get_current_consultant),
    side_effects: SideEffectDispatcher = Depends(get_side_effects)
):
    """Create a weekly pattern; overlapping ranges for the same day and type are rejected"""
    pattern = AvailabilityService(db).create_pattern(
        consultant.id,
        pattern_in.session_type,
        pattern_in.day_of_week,
        pattern_in.start_time,
        pattern_in.end_time,
        is_active=pattern_in.is_active,
        timezone=pattern_in.timezone,
    )
    _commit(db)
    side_effects.invalidate_cache(_slot_caches(consultant))
    return {
        "message": "Weekly availability pattern created successfully",
        "data": {"pattern": _pattern_out(pattern)},
    }


@router.put("/patterns/{pattern_id}")
def update_pattern(
    pattern_id: str,
    changes: PatternUpdate,
    db: Session = Depends(get_db),
    consultant: Consultant = Depends(get_current_consultant),
    side_effects: SideEffectDispatcher = Depends(get_side_effects)
):
    pattern = AvailabilityService(db).update_pattern(
        consultant.id, pattern_id, changes.model_dump(exclude_unset=True)
    )
    _commit(db)
    side_effects.invalidate_cache(_slot_caches(consultant))
    return {
        "message": "Weekly availability pattern updated successfully",
        "data": {"pattern": _pattern_out(pattern)},
    }


@router.delete("/patterns/{pattern_id}")
def delete_pattern(
    pattern_id: str,
    db: Session = Depends(get_db),
    consultant: Consultant = Depends(get_current_consultant),
    side_effects: SideEffectDispatcher = Depends(get_side_effects)
):
    """Delete a pattern; its future unbooked slots are blocked, booked ones kept"""
    blocked = AvailabilityService(db).delete_pattern(consultant.id, pattern_id)
    _commit(db)
    side_effects.invalidate_cache(_slot_caches(consultant))
    return {
        "message": "Weekly availability pattern deleted successfully",
        "data": {"patternId": pattern_id, "slotsBlocked": blocked},
    }


@router.post("/generate-slots", status_code=status.HTTP_201_CREATED)
def generate_slots(
    request_in: GenerateSlotsRequest,
    db: Session = Depends(get_db),
    consultant: Consultant = Depends(get_current_consultant),
    side_effects: SideEffectDispatcher = Depends(get_side_effects)
):
    """Expand active weekly patterns into bookable slots (at most 90 days)"""
    created = AvailabilityService(db).generate_slots_from_patterns(
        consultant.id,
        request_in.start_date,
        request_in.end_date,
        session_type=request_in.session_type,
    )
    _commit(db)
    if created:
        side_effects.invalidate_cache(_slot_caches(consultant))
    return {
        "message": f"Generated {created} availability slots",
        "data": {
            "slotsCreated": created,
            "startDate": request_in.start_date.isoformat(),
            "endDate": request_in.end_date.isoformat(),
        },
    }


@router.get("/slots/{consultant_slug}")
@limiter.limit("60/minute")
def list_public_slots(
    request: Request,
    response: Response,
    consultant_slug: str,
    session_type: Optional[SessionType] = Query(None, alias="sessionType"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    limit: int = Query(100, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    cache: CacheService = Depends(get_cache)
):
    """Open slots for a consultant's public booking page"""
    limit = min(limit, 200)
    cache_key = (
        f"slots:{consultant_slug}:{session_type.value if session_type else 'all'}:"
        f"{start_date or 'today'}:{end_date or 'default'}:{limit}:{offset}"
    )
    cached = cache.get(cache_key)
    if cached:
        return cached

    consultant = db.query(Consultant).filter(Consultant.slug == consultant_slug).first()
    if not consultant:
        raise NotFoundError("Consultant not found")

    slots, total = AvailabilityService(db).list_open_slots(
        consultant.id,
        session_type=session_type,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )
    slot_dicts = [
        SlotResponse.model_validate(slot).model_dump(by_alias=True, mode="json") for slot in slots
    ]
    by_date = OrderedDict()
    for slot in slot_dicts:
        by_date.setdefault(slot["date"], []).append(slot)

    payload = {
        "message": "Available slots retrieved successfully",
        "data": {
            "slots": slot_dicts,
            "slotsByDate": by_date,
            "totalSlots": len(slot_dicts),
            "totalAvailable": total,
            "pagination": {
                "limit": limit,
                "offset": offset,
                "hasMore": total > offset + len(slot_dicts),
            },
            "consultant": {"name": consultant.full_name},
        },
    }
    cache.set(cache_key, payload, settings.PUBLIC_SLOTS_CACHE_TTL)
    return payload

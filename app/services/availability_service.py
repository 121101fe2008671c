"""
Availability service - weekly patterns and the bookable slots expanded from them
"""
from datetime import date, timedelta
from typing import Any, Dict, List, Optional, Tuple
import logging

from sqlalchemy import and_, update
from sqlalchemy.orm import Session

from app.config import settings
from app.models.availability import AvailabilitySlot, WeeklyAvailabilityPattern
from app.models.enums import SessionType
from app.utils.errors import NotFoundError, ValidationError
from app.utils.time_utils import (
    format_minutes,
    js_weekday,
    minutes_since_midnight,
    normalize_time,
    date_range,
    today_in,
    validate_time_range,
)

logger = logging.getLogger(__name__)

SLOT_LENGTH_MINUTES = 60
DEFAULT_PUBLIC_WINDOW_DAYS = 14
MAX_PUBLIC_SLOTS = 200


class AvailabilityService:
    """Slot lookups and mutations for one database session"""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Booking primitives
    # ------------------------------------------------------------------

    def find_open_slot(
        self,
        consultant_id: str,
        session_type: SessionType,
        day: date,
        start_time: str,
        lock: bool = True
    ) -> Optional[str]:
        """
        Id of the free slot at (consultant, type, date, start), or None

        Only the id column is selected so the row lock never joins in related
        rows.
        """
        query = self.db.query(AvailabilitySlot.id).filter(
            AvailabilitySlot.consultant_id == consultant_id,
            AvailabilitySlot.session_type == session_type,
            AvailabilitySlot.date == day,
            AvailabilitySlot.start_time == start_time,
            AvailabilitySlot.is_booked.is_(False),
            AvailabilitySlot.is_blocked.is_(False),
        )
        if lock:
            query = query.with_for_update()
        row = query.first()
        return row[0] if row else None

    def mark_booked(self, slot_id: str, session_id: str) -> bool:
        """Claim the slot; False when someone else already holds or blocked it"""
        result = self.db.execute(
            update(AvailabilitySlot)
            .where(
                and_(
                    AvailabilitySlot.id == slot_id,
                    AvailabilitySlot.is_booked.is_(False),
                    AvailabilitySlot.is_blocked.is_(False),
                )
            )
            .values(is_booked=True, session_id=session_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def mark_unbooked(self, slot_id: str) -> bool:
        result = self.db.execute(
            update(AvailabilitySlot)
            .where(AvailabilitySlot.id == slot_id)
            .values(is_booked=False, session_id=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Slot generation
    # ------------------------------------------------------------------

    @staticmethod
    def hourly_windows(start_time: str, end_time: str) -> List[Tuple[str, str]]:
        """Split a pattern range into whole-hour (start, end) pairs that fit inside it"""
        start = minutes_since_midnight(start_time)
        end = minutes_since_midnight(end_time)
        windows = []
        current = start
        while current + SLOT_LENGTH_MINUTES <= end:
            windows.append((format_minutes(current), format_minutes(current + SLOT_LENGTH_MINUTES)))
            current += SLOT_LENGTH_MINUTES
        return windows

    def generate_slots_from_patterns(
        self,
        consultant_id: str,
        start_date: date,
        end_date: date,
        session_type: Optional[SessionType] = None,
        today: Optional[date] = None
    ) -> int:
        """
        Expand active weekly patterns into concrete slots

        Returns the number of slots added. Existing slots are left alone and
        dates before today are never filled.
        """
        if end_date < start_date:
            raise ValidationError("End date must not be before start date")
        if (end_date - start_date).days > settings.SLOT_GENERATION_MAX_DAYS:
            raise ValidationError(f"Date range cannot exceed {settings.SLOT_GENERATION_MAX_DAYS} days")

        today = today or today_in(settings.DEFAULT_TIMEZONE)
        start_date = max(start_date, today)
        if end_date < start_date:
            return 0

        pattern_query = self.db.query(WeeklyAvailabilityPattern).filter(
            WeeklyAvailabilityPattern.consultant_id == consultant_id,
            WeeklyAvailabilityPattern.is_active.is_(True),
        )
        if session_type is not None:
            pattern_query = pattern_query.filter(WeeklyAvailabilityPattern.session_type == session_type)
        patterns = pattern_query.all()
        if not patterns:
            logger.info(f"No active patterns for consultant {consultant_id}; nothing to generate")
            return 0

        existing_query = self.db.query(
            AvailabilitySlot.session_type, AvailabilitySlot.date, AvailabilitySlot.start_time
        ).filter(
            AvailabilitySlot.consultant_id == consultant_id,
            AvailabilitySlot.date >= start_date,
            AvailabilitySlot.date <= end_date,
        )
        existing = {(row[0], row[1], row[2]) for row in existing_query.all()}

        new_slots = []
        for day in date_range(start_date, end_date):
            weekday = js_weekday(day)
            for pattern in patterns:
                if pattern.day_of_week != weekday:
                    continue
                for slot_start, slot_end in self.hourly_windows(pattern.start_time, pattern.end_time):
                    key = (pattern.session_type, day, slot_start)
                    if key in existing:
                        continue
                    existing.add(key)
                    new_slots.append(AvailabilitySlot(
                        consultant_id=consultant_id,
                        session_type=pattern.session_type,
                        date=day,
                        start_time=slot_start,
                        end_time=slot_end,
                        is_booked=False,
                        is_blocked=False,
                    ))

        if new_slots:
            self.db.add_all(new_slots)
            self.db.flush()
        logger.info(
            f"Generated {len(new_slots)} slots for consultant {consultant_id} "
            f"({start_date} to {end_date})"
        )
        return len(new_slots)

    # ------------------------------------------------------------------
    # Weekly patterns
    # ------------------------------------------------------------------

    def list_patterns(self, consultant_id: str) -> List[WeeklyAvailabilityPattern]:
        return (
            self.db.query(WeeklyAvailabilityPattern)
            .filter(WeeklyAvailabilityPattern.consultant_id == consultant_id)
            .order_by(WeeklyAvailabilityPattern.day_of_week, WeeklyAvailabilityPattern.start_time)
            .all()
        )

    def _find_overlap(
        self,
        consultant_id: str,
        session_type: SessionType,
        day_of_week: int,
        start_time: str,
        end_time: str,
        exclude_id: Optional[str] = None
    ) -> Optional[WeeklyAvailabilityPattern]:
        start = minutes_since_midnight(start_time)
        end = minutes_since_midnight(end_time)
        candidates = self.db.query(WeeklyAvailabilityPattern).filter(
            WeeklyAvailabilityPattern.consultant_id == consultant_id,
            WeeklyAvailabilityPattern.session_type == session_type,
            WeeklyAvailabilityPattern.day_of_week == day_of_week,
        ).all()
        for pattern in candidates:
            if exclude_id and pattern.id == exclude_id:
                continue
            other_start = minutes_since_midnight(pattern.start_time)
            other_end = minutes_since_midnight(pattern.end_time)
            if start < other_end and other_start < end:
                return pattern
        return None

    def create_pattern(
        self,
        consultant_id: str,
        session_type: SessionType,
        day_of_week: int,
        start_time: str,
        end_time: str,
        is_active: bool = True,
        timezone: Optional[str] = None
    ) -> WeeklyAvailabilityPattern:
        start_time, end_time = normalize_time(start_time), normalize_time(end_time)
        validate_time_range(start_time, end_time)
        if self._find_overlap(consultant_id, session_type, day_of_week, start_time, end_time):
            raise ValidationError("Time slot overlaps with existing pattern")

        pattern = WeeklyAvailabilityPattern(
            consultant_id=consultant_id,
            session_type=session_type,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            is_active=is_active,
            timezone=timezone or settings.DEFAULT_TIMEZONE,
        )
        self.db.add(pattern)
        self.db.flush()
        return pattern

    def get_pattern(self, consultant_id: str, pattern_id: str) -> WeeklyAvailabilityPattern:
        pattern = self.db.query(WeeklyAvailabilityPattern).filter(
            WeeklyAvailabilityPattern.id == pattern_id,
            WeeklyAvailabilityPattern.consultant_id == consultant_id,
        ).first()
        if not pattern:
            raise NotFoundError("Availability pattern not found")
        return pattern

    def update_pattern(self, consultant_id: str, pattern_id: str, changes: Dict[str, Any]) -> WeeklyAvailabilityPattern:
        pattern = self.get_pattern(consultant_id, pattern_id)
        start_time = normalize_time(changes.get("start_time") or pattern.start_time)
        end_time = normalize_time(changes.get("end_time") or pattern.end_time)
        validate_time_range(start_time, end_time)

        session_type = changes.get("session_type") or pattern.session_type
        day_of_week = changes.get("day_of_week", pattern.day_of_week)
        if self._find_overlap(consultant_id, session_type, day_of_week, start_time, end_time, exclude_id=pattern.id):
            raise ValidationError("Time slot overlaps with existing pattern")

        pattern.session_type = session_type
        pattern.day_of_week = day_of_week
        pattern.start_time = start_time
        pattern.end_time = end_time
        if changes.get("is_active") is not None:
            pattern.is_active = changes["is_active"]
        if changes.get("timezone"):
            pattern.timezone = changes["timezone"]
        self.db.flush()
        return pattern

    def delete_pattern(self, consultant_id: str, pattern_id: str, today: Optional[date] = None) -> int:
        """Remove the pattern and block its future unbooked slots; returns slots blocked"""
        pattern = self.get_pattern(consultant_id, pattern_id)
        today = today or today_in(settings.DEFAULT_TIMEZONE)

        slot_times = {start for start, _ in self.hourly_windows(pattern.start_time, pattern.end_time)}
        candidates = self.db.query(AvailabilitySlot).filter(
            AvailabilitySlot.consultant_id == consultant_id,
            AvailabilitySlot.session_type == pattern.session_type,
            AvailabilitySlot.is_booked.is_(False),
            AvailabilitySlot.date >= today,
        ).all()

        blocked = 0
        for slot in candidates:
            if js_weekday(slot.date) == pattern.day_of_week and slot.start_time in slot_times:
                slot.is_blocked = True
                blocked += 1

        self.db.delete(pattern)
        self.db.flush()
        logger.info(f"Pattern {pattern_id} deleted, {blocked} future slots blocked")
        return blocked

    # ------------------------------------------------------------------
    # Public listing
    # ------------------------------------------------------------------

    def list_open_slots(
        self,
        consultant_id: str,
        session_type: Optional[SessionType] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 100,
        offset: int = 0,
        today: Optional[date] = None
    ) -> Tuple[List[AvailabilitySlot], int]:
        """Free, unblocked slots from today onwards; returns (page, total)"""
        today = today or today_in(settings.DEFAULT_TIMEZONE)
        start = max(start_date, today) if start_date else today
        end = end_date or start + timedelta(days=DEFAULT_PUBLIC_WINDOW_DAYS)
        limit = max(1, min(limit, MAX_PUBLIC_SLOTS))

        query = self.db.query(AvailabilitySlot).filter(
            AvailabilitySlot.consultant_id == consultant_id,
            AvailabilitySlot.is_booked.is_(False),
            AvailabilitySlot.is_blocked.is_(False),
            AvailabilitySlot.date >= start,
            AvailabilitySlot.date <= end,
        )
        if session_type is not None:
            query = query.filter(AvailabilitySlot.session_type == session_type)

        total = query.count()
        slots = (
            query.order_by(AvailabilitySlot.date, AvailabilitySlot.start_time)
            .offset(max(offset, 0))
            .limit(limit)
            .all()
        )
        return slots, total

"""Availability models - weekly templates and the concrete bookable slots"""
from sqlalchemy import Column, String, Boolean, Integer, Date, ForeignKey, Enum as SQLEnum, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from app.models.base import Base, TimestampMixin, id_column
from app.models.enums import SessionType


class WeeklyAvailabilityPattern(Base, TimestampMixin):
    """Recurring availability (0 = Sunday ... 6 = Saturday)"""
    __tablename__ = "weekly_availability_patterns"
    __table_args__ = (
        UniqueConstraint(
            "consultant_id", "session_type", "day_of_week", "start_time",
            name="weekly_availability_patterns_consultant_id_session_type_day_key",
        ),
    )

    id = id_column()
    consultant_id = Column(String(36), ForeignKey("consultants.id"), nullable=False, index=True)
    session_type = Column(SQLEnum(SessionType), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    # Stored as metadata; time comparisons are done on the "HH:MM" strings
    timezone = Column(String(64), nullable=False, default="Asia/Kolkata")

    def __repr__(self):
        return f"<WeeklyAvailabilityPattern {self.day_of_week} {self.start_time}-{self.end_time}>"


class AvailabilitySlot(Base, TimestampMixin):
    """One bookable (consultant, session type, date, start time) unit"""
    __tablename__ = "availability_slots"
    __table_args__ = (
        UniqueConstraint(
            "consultant_id", "session_type", "date", "start_time",
            name="availability_slots_consultant_id_session_type_date_start_ti_key",
        ),
        Index("availability_slots_open_lookup_idx", "consultant_id", "is_booked", "is_blocked", "date"),
    )

    id = id_column()
    consultant_id = Column(String(36), ForeignKey("consultants.id"), nullable=False, index=True)
    session_type = Column(SQLEnum(SessionType), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    is_booked = Column(Boolean, nullable=False, default=False, index=True)
    is_blocked = Column(Boolean, nullable=False, default=False)
    # A session can hold at most one slot
    session_id = Column(String(36), ForeignKey("sessions.id"), nullable=True, unique=True)

    session = relationship("ConsultationSession")

    def __repr__(self):
        return f"<AvailabilitySlot {self.date} {self.start_time} booked={self.is_booked}>"

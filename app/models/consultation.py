"""Session ledger - the booking record and its two state machines"""
from sqlalchemy import Column, String, Text, Numeric, ForeignKey, DateTime, Enum as SQLEnum, Integer, Boolean
from sqlalchemy.orm import relationship
from typing import Dict, FrozenSet

from app.models.base import Base, TimestampMixin, id_column, utcnow
from app.models.enums import SessionType, SessionStatus, PaymentStatus


STATUS_TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.PENDING: frozenset({
        SessionStatus.CONFIRMED, SessionStatus.CANCELLED, SessionStatus.NO_SHOW,
    }),
    SessionStatus.CONFIRMED: frozenset({
        SessionStatus.IN_PROGRESS, SessionStatus.ONGOING,
        SessionStatus.CANCELLED, SessionStatus.NO_SHOW, SessionStatus.RETURNED,
    }),
    SessionStatus.IN_PROGRESS: frozenset({SessionStatus.COMPLETED}),
    SessionStatus.ONGOING: frozenset({SessionStatus.COMPLETED}),
    SessionStatus.COMPLETED: frozenset({SessionStatus.RETURNED}),
    SessionStatus.CANCELLED: frozenset({SessionStatus.RETURNED}),
    SessionStatus.NO_SHOW: frozenset(),
    SessionStatus.RETURNED: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PROCESSING, PaymentStatus.PAID, PaymentStatus.FAILED,
    }),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.PAID: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


def can_transition(current: SessionStatus, new: SessionStatus) -> bool:
    return new in STATUS_TRANSITIONS.get(current, frozenset())


def can_transition_payment(current: PaymentStatus, new: PaymentStatus) -> bool:
    return new in PAYMENT_TRANSITIONS.get(current, frozenset())


class ConsultationSession(Base, TimestampMixin):
    """A booked (possibly unscheduled) engagement between a client and a consultant"""
    __tablename__ = "sessions"

    id = id_column()
    consultant_id = Column(String(36), ForeignKey("consultants.id"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    session_type = Column(SQLEnum(SessionType), nullable=False, index=True)
    status = Column(SQLEnum(SessionStatus), nullable=False, default=SessionStatus.PENDING, index=True)

    # Schedule
    scheduled_date = Column(DateTime, nullable=False, index=True)
    scheduled_time = Column(String(5), nullable=False)
    duration = Column(Integer, nullable=False, default=60)
    timezone = Column(String(64), nullable=False, default="Asia/Kolkata")

    # Meeting
    platform = Column(String(50), nullable=True)
    meeting_id = Column(String(255), nullable=True)
    meeting_link = Column(String(500), nullable=True)
    meeting_password = Column(String(255), nullable=True)

    # Payment
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    payment_status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    payment_method = Column(String(50), nullable=True)
    payment_id = Column(String(100), nullable=True)

    # Notes
    client_notes = Column(Text, nullable=True)
    consultant_notes = Column(Text, nullable=True)

    reminder_sent = Column(Boolean, nullable=False, default=False)
    booking_source = Column(String(50), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)

    consultant = relationship("Consultant", back_populates="sessions")
    client = relationship("Client", back_populates="sessions")

    def mark_paid(self, payment_id: str, payment_method: str = None) -> None:
        """PENDING -> PAID; a paid session is confirmed"""
        if not can_transition_payment(self.payment_status, PaymentStatus.PAID):
            raise ValueError(f"Cannot mark {self.payment_status.value} session as PAID")
        self.payment_status = PaymentStatus.PAID
        self.payment_id = payment_id
        self.payment_method = payment_method
        if can_transition(self.status, SessionStatus.CONFIRMED):
            self.status = SessionStatus.CONFIRMED

    def mark_payment_failed(self) -> bool:
        """PENDING -> FAILED; returns False when the session already settled"""
        if not can_transition_payment(self.payment_status, PaymentStatus.FAILED):
            return False
        self.payment_status = PaymentStatus.FAILED
        return True

    def mark_refunded(self) -> None:
        self.payment_status = PaymentStatus.REFUNDED
        self.status = SessionStatus.RETURNED
        self.cancelled_at = self.cancelled_at or utcnow()

    def __repr__(self):
        return f"<ConsultationSession {self.id} - {self.status}/{self.payment_status}>"

"""Enumerations shared by the booking and payment models"""
import enum


class SessionType(str, enum.Enum):
    """Bookable session types"""
    PERSONAL = "PERSONAL"
    WEBINAR = "WEBINAR"


class SessionStatus(str, enum.Enum):
    """Scheduling state of a session"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    RETURNED = "RETURNED"


class PaymentStatus(str, enum.Enum):
    """Payment state of a session"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class PaymentTransactionStatus(str, enum.Enum):
    """Gateway-side transaction status"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class QuotationStatus(str, enum.Enum):
    """Quotation lifecycle"""
    DRAFT = "DRAFT"
    SENT = "SENT"
    VIEWED = "VIEWED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


# Statuses that occupy a consultant's time
ACTIVE_SESSION_STATUSES = (
    SessionStatus.PENDING,
    SessionStatus.CONFIRMED,
    SessionStatus.IN_PROGRESS,
    SessionStatus.ONGOING,
)

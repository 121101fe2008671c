"""Database models for the Nakksha platform"""
from app.models.base import Base
from app.models.enums import (
    SessionType,
    SessionStatus,
    PaymentStatus,
    PaymentTransactionStatus,
    QuotationStatus,
)
from app.models.consultant import Consultant
from app.models.client import Client
from app.models.consultation import ConsultationSession
from app.models.availability import AvailabilitySlot, WeeklyAvailabilityPattern
from app.models.payment import PaymentTransaction, Quotation

__all__ = [
    "Base",
    "SessionType",
    "SessionStatus",
    "PaymentStatus",
    "PaymentTransactionStatus",
    "QuotationStatus",
    "Consultant",
    "Client",
    "ConsultationSession",
    "AvailabilitySlot",
    "WeeklyAvailabilityPattern",
    "PaymentTransaction",
    "Quotation",
]

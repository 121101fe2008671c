"""Booking schemas for request/response validation"""
from datetime import date
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import List, Optional

from app.config import settings
from app.models.enums import SessionType

TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class BookSessionRequest(BaseModel):
    """Public booking payload, camelCase on the wire"""
    model_config = ConfigDict(populate_by_name=True)

    # Client
    full_name: str = Field(..., alias="fullName", min_length=2, max_length=200)
    email: EmailStr = Field(..., max_length=255)
    phone: str = Field(..., min_length=6, max_length=20)

    # Session
    session_type: SessionType = Field(..., alias="sessionType")
    selected_date: Optional[str] = Field(None, alias="selectedDate", pattern=DATE_PATTERN)
    selected_time: Optional[str] = Field(None, alias="selectedTime", pattern=TIME_PATTERN)
    duration: int = Field(
        default_factory=lambda: settings.DEFAULT_SESSION_DURATION, ge=30, le=480, description="Minutes"
    )
    amount: float = Field(..., ge=0)

    client_notes: Optional[str] = Field(None, alias="clientNotes", max_length=1000)
    consultant_slug: str = Field(..., alias="consultantSlug", min_length=1)

    @field_validator("selected_date")
    @classmethod
    def check_calendar_date(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            try:
                date.fromisoformat(value)
            except ValueError:
                raise ValueError("Invalid date format")
        return value

    @property
    def is_scheduled(self) -> bool:
        """Only a date together with a time pins the booking to a slot"""
        return bool(self.selected_date and self.selected_time)


class BookedSession(BaseModel):
    id: str
    title: str
    sessionType: SessionType
    scheduledDate: str
    scheduledTime: str
    duration: int
    amount: float
    status: str
    paymentStatus: str


class BookedClient(BaseModel):
    id: str
    name: str
    email: str


class BookedConsultant(BaseModel):
    name: str
    slug: str


class BookingData(BaseModel):
    session: BookedSession
    client: BookedClient
    consultant: BookedConsultant
    nextSteps: List[str]


class BookSessionResponse(BaseModel):
    """201 body for a successful booking"""
    message: str
    data: BookingData

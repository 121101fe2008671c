"""Availability schemas for weekly patterns and slots"""
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from app.models.enums import SessionType

TIME_PATTERN = r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$"


class PatternCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_type: SessionType = Field(..., alias="sessionType")
    day_of_week: int = Field(..., alias="dayOfWeek", ge=0, le=6, description="0 = Sunday")
    start_time: str = Field(..., alias="startTime", pattern=TIME_PATTERN)
    end_time: str = Field(..., alias="endTime", pattern=TIME_PATTERN)
    is_active: bool = Field(True, alias="isActive")
    timezone: Optional[str] = None


class PatternUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_type: Optional[SessionType] = Field(None, alias="sessionType")
    day_of_week: Optional[int] = Field(None, alias="dayOfWeek", ge=0, le=6)
    start_time: Optional[str] = Field(None, alias="startTime", pattern=TIME_PATTERN)
    end_time: Optional[str] = Field(None, alias="endTime", pattern=TIME_PATTERN)
    is_active: Optional[bool] = Field(None, alias="isActive")
    timezone: Optional[str] = None


class PatternResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    session_type: SessionType = Field(..., serialization_alias="sessionType")
    day_of_week: int = Field(..., serialization_alias="dayOfWeek")
    start_time: str = Field(..., serialization_alias="startTime")
    end_time: str = Field(..., serialization_alias="endTime")
    is_active: bool = Field(..., serialization_alias="isActive")
    timezone: str
    created_at: datetime = Field(..., serialization_alias="createdAt")


class GenerateSlotsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")
    session_type: Optional[SessionType] = Field(None, alias="sessionType")


class SlotResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str
    session_type: SessionType = Field(..., serialization_alias="sessionType")
    slot_date: date = Field(..., validation_alias="date", serialization_alias="date")
    start_time: str = Field(..., serialization_alias="startTime")
    end_time: str = Field(..., serialization_alias="endTime")

"""
Database Schemas for the school check-in backend

Each model corresponds to a MongoDB collection keyed by an opaque string id.

Collections:
- users: providers and administrators
- schools: check-in locations with a geofence radius
- schedules: weekly availability windows per (provider, school)
- sessions: check-in/check-out records, never deleted
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from time_window import DAYS_OF_WEEK, is_valid_time


class Role(str, Enum):
    PROVIDER = "provider"
    ADMINISTRATOR = "administrator"

    @property
    def requires_schedule(self) -> bool:
        if self is Role.PROVIDER:
            return True
        if self is Role.ADMINISTRATOR:
            return False
        raise ValueError(f"Unhandled role: {self}")


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    AUTO_COMPLETED = "auto_completed"
    # kept for API stability; no transition produces it
    CANCELLED = "cancelled"


class GeoPoint(BaseModel):
    model_config = {"frozen": True}

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class DeviceInfo(BaseModel):
    platform: Literal['ios', 'android', 'web']
    deviceId: Optional[str] = None
    appVersion: Optional[str] = None


class User(BaseModel):
    id: str = Field(..., description="Unique user id")
    displayName: str = ""
    email: Optional[str] = None
    role: Role = Field(..., description="provider|administrator")
    isActive: bool = True


class School(BaseModel):
    id: str
    name: str
    location: GeoPoint
    checkInRadiusMeters: Optional[int] = Field(None, description="Geofence radius, falls back to 150 m")
    address: Optional[str] = None
    geohash: Optional[str] = None


class ScheduleSlot(BaseModel):
    id: str
    providerId: str
    schoolId: str
    dayOfWeek: str = Field(..., description="sunday..saturday")
    startTime: str = Field(..., description="HH:MM, 24-hour")
    endTime: str = Field(..., description="HH:MM, 24-hour")
    effectiveFrom: datetime
    effectiveUntil: Optional[datetime] = None
    isActive: bool = True
    createdBy: Optional[str] = None

    @field_validator("dayOfWeek")
    @classmethod
    def _known_day(cls, value: str) -> str:
        value = value.lower()
        if value not in DAYS_OF_WEEK:
            raise ValueError(f"dayOfWeek must be one of {', '.join(DAYS_OF_WEEK)}")
        return value

    @field_validator("effectiveFrom", "effectiveUntil")
    @classmethod
    def _aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        # naive instants are taken as UTC
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("startTime", "endTime")
    @classmethod
    def _hh_mm(cls, value: str) -> str:
        if not is_valid_time(value):
            raise ValueError(f"Invalid time '{value}', expected HH:MM")
        return value

    @model_validator(mode="after")
    def _same_day_window(self):
        if self.startTime > self.endTime:
            raise ValueError("Overnight schedule slots are not supported (startTime must not be after endTime)")
        if self.effectiveUntil is not None and self.effectiveUntil < self.effectiveFrom:
            raise ValueError("effectiveUntil must not be before effectiveFrom")
        return self

    def is_effective(self, now: datetime) -> bool:
        if not self.isActive:
            return False
        if now < self.effectiveFrom:
            return False
        if self.effectiveUntil is not None and now > self.effectiveUntil:
            return False
        return True


class Session(BaseModel):
    id: str
    userId: str
    userRole: Role
    # snapshot at check-in, never refreshed
    userDisplayName: Optional[str] = None
    schoolId: str
    schoolName: Optional[str] = None
    scheduleId: Optional[str] = None
    checkInTime: datetime
    checkInLocation: GeoPoint
    checkInDistanceMeters: int
    checkOutTime: Optional[datetime] = None
    checkOutLocation: Optional[GeoPoint] = None
    checkOutDistanceMeters: Optional[int] = None
    status: SessionStatus = Field(SessionStatus.ACTIVE, description="active|completed|auto_completed|cancelled")
    durationMinutes: Optional[int] = None
    notes: str = ""
    notesUpdatedAt: Optional[datetime] = None
    deviceInfo: Optional[DeviceInfo] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

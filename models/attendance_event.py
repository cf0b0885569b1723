from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import field_serializer
from sqlmodel import Field, Index, SQLModel

from utils.timezone_helpers import format_utc_datetime


# Enum Limiting Event Type to Just Two Vals
class EventType(str, Enum):
    CLOCK_IN = "clock_in"
    CLOCK_OUT = "clock_out"

    @property
    def label(self) -> str:
        """Badge text used on evidence photos, e.g. 'CLOCK IN'."""
        return self.value.replace("_", " ").upper()


# Defines a Table "attendance_event" w/ Cols worker_id, event_type, recorded_at, ...
class AttendanceEvent(SQLModel, table=True):
    __tablename__ = "attendance_event"

    __table_args__ = (
        Index("ix_attendance_event_worker_id", "worker_id"),
        # Most common query: a worker's events, newest first
        Index("ix_attendance_event_worker_id_recorded_at", "worker_id", "recorded_at"),
        Index("ix_attendance_event_location_id", "location_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    worker_id: str
    event_type: EventType
    # Null when no geofence matched (unconfigured-geofence mode)
    location_id: Optional[str] = Field(default=None, foreign_key="authorized_location.id")
    latitude: float
    longitude: float
    accuracy_meters: float
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    evidence_uri: Optional[str] = Field(default=None)

    @field_serializer("recorded_at")
    def serialize_recorded_at(self, dt: datetime) -> str:
        """Ensure recorded_at is formatted as UTC with Z suffix"""
        result = format_utc_datetime(dt)
        return result if result is not None else dt.isoformat()

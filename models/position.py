from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from models.authorized_location import AuthorizedLocation
from utils.timezone_helpers import format_utc_datetime


# Raw Reading As Reported By the Worker's Device
class PositionReport(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    # Set by the device when its sensor failed instead of producing coordinates,
    # e.g. "PERMISSION_DENIED", "POSITION_UNAVAILABLE", "TIMEOUT", "UNSUPPORTED"
    sensor_error: str | None = None


# Validated Fix; Only PositionProvider Creates These
class PositionFix(BaseModel):
    model_config = ConfigDict(frozen=True, allow_inf_nan=False)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy_meters: float = Field(ge=0)
    captured_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_serializer("captured_at")
    def serialize_captured_at(self, dt: datetime) -> str:
        result = format_utc_datetime(dt)
        return result if result is not None else dt.isoformat()


class GeofenceVerdict(BaseModel):
    """
    Outcome of matching a fix against the authorized locations.

    within_range is tri-state: True (admissible), False (known to be outside
    every geofence) and None (unknown, the fix could not be acquired). Both
    False and None block submission.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    nearest_location: Optional[AuthorizedLocation] = None
    distance_meters: float = Field(default=0.0, ge=0)
    within_range: Optional[bool] = None

    @property
    def location_id(self) -> Optional[str]:
        return self.nearest_location.id if self.nearest_location else None


class ShiftState(str, Enum):
    NOT_PRESENT = "not_present"
    CLOCKED_IN = "clocked_in"
    CLOCKED_OUT = "clocked_out"


class TransitionGate(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_clock_in: bool
    can_clock_out: bool


class ShiftSnapshot(BaseModel):
    """Derived state for today plus the times shown on the status card."""

    model_config = ConfigDict(frozen=True)

    state: ShiftState
    last_clock_in: Optional[datetime] = None
    last_clock_out: Optional[datetime] = None

    @field_serializer("last_clock_in", "last_clock_out")
    def serialize_times(self, dt: Optional[datetime]) -> Optional[str]:
        return format_utc_datetime(dt)


class WorkerIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    display_name: str = ""
    email: str = ""

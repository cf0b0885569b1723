from typing import Optional

from sqlmodel import Field, SQLModel

# Defines a Site Where Workers Are Allowed to Clock In / Out

# Authorized Site w/ Circular Geofence
class AuthorizedLocation(SQLModel, table=True):
    __tablename__ = "authorized_location"

    id: str = Field(primary_key=True, description="Unique location identifier")
    name: Optional[str] = Field(default=None, description="Human-friendly location name")
    latitude: float = Field(..., ge=-90, le=90, description="Latitude of geofence center")
    longitude: float = Field(..., ge=-180, le=180, description="Longitude of geofence center")
    radius_meters: float = Field(..., gt=0, description="Allowed clock-in radius in meters")
    is_active: bool = Field(default=True, index=True, description="Inactive locations are ignored")

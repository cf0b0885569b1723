from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from core.deps import get_current_worker
from db.session import get_session
from models.authorized_location import AuthorizedLocation
from services.collaborators import SqlLocationDirectory

router = APIRouter()

# --- Pydantic Models for Response ---


class LocationGeofenceResponse(BaseModel):
    location_id: str
    name: Optional[str] = None
    latitude: float
    longitude: float
    radius_meters: float


def _to_response(location: AuthorizedLocation) -> LocationGeofenceResponse:
    return LocationGeofenceResponse(
        location_id=location.id,
        name=location.name,
        latitude=location.latitude,
        longitude=location.longitude,
        radius_meters=location.radius_meters,
    )


# --- API Endpoints ---


@router.get("", response_model=List[LocationGeofenceResponse])
def list_locations(
    session: Session = Depends(get_session),
    worker=Depends(get_current_worker),
):
    """
    All active authorized locations, for drawing geofences on the worker's map.
    """
    return [_to_response(loc) for loc in SqlLocationDirectory(session).list_active_locations()]


@router.get("/{location_id}/geofence", response_model=LocationGeofenceResponse)
def get_location_geofence(
    location_id: str,
    session: Session = Depends(get_session),
    worker=Depends(get_current_worker),
):
    location = session.get(AuthorizedLocation, location_id)

    if not location or not location.is_active:
        raise HTTPException(status_code=404, detail=f"Location with ID {location_id} not found.")

    return _to_response(location)

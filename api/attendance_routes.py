import asyncio
from datetime import datetime, timezone
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import BaseModel
from sqlmodel import Session

from core.config import Settings, get_settings
from core.deps import get_current_worker
from core.errors import AttendanceError, PositionError, to_http_exception
from db.session import get_session
from models.attendance_event import AttendanceEvent, EventType
from models.position import (
    PositionFix,
    PositionReport,
    ShiftSnapshot,
    ShiftState,
    WorkerIdentity,
)
from services.attendance_submitter import AttendanceSubmitter
from services.collaborators import ObjectStore, SqlEventStore, SqlLocationDirectory
from services.event_history import history_cache
from services.evidence_capture import EvidenceCapture, UploadedFrameSource
from services.geofence_resolver import GeofenceResolver
from services.position_provider import PositionProvider, ReportedPositionSensor
from services.status_machine import AttendanceStatusMachine
from utils.storage import FirebaseObjectStore

# --- Pydantic Models for Responses ---


class ErrorInfo(BaseModel):
    code: str
    message: str


class LocationStatusResponse(BaseModel):
    fix: Optional[PositionFix] = None
    error: Optional[ErrorInfo] = None
    within_range: Optional[bool] = None
    distance_meters: float = 0.0
    location_id: Optional[str] = None
    location_name: Optional[str] = None
    state: ShiftState
    can_clock_in: bool
    can_clock_out: bool


class ShiftStatusResponse(BaseModel):
    shift: ShiftSnapshot
    worker_name: str


# --- Dependencies ---


def get_object_store() -> ObjectStore:
    return FirebaseObjectStore()


def _provider(report: PositionReport, settings: Settings) -> PositionProvider:
    return PositionProvider(
        ReportedPositionSensor(report),
        accuracy_ceiling_meters=settings.accuracy_ceiling_meters,
        timeout_seconds=settings.position_timeout_seconds,
    )


def _recent_events(worker: WorkerIdentity, session: Session, settings: Settings) -> List[AttendanceEvent]:
    store = SqlEventStore(session)
    return history_cache.get(
        worker.id, lambda: store.list_recent_events(worker.id, settings.history_limit)
    )


# Defines API Endpoints
router = APIRouter()


# Current Shift State For Today
@router.get("/status")
def get_status(
    session: Session = Depends(get_session),
    worker: WorkerIdentity = Depends(get_current_worker),
    settings: Settings = Depends(get_settings),
):
    machine = AttendanceStatusMachine(settings.timezone)
    snapshot = machine.snapshot(
        _recent_events(worker, session, settings), datetime.now(timezone.utc)
    )
    return {
        "status": "success",
        "data": ShiftStatusResponse(shift=snapshot, worker_name=worker.display_name),
    }


# Check the Device's Position Against the Authorized Locations
@router.post("/verify-location", response_model=LocationStatusResponse)
async def verify_location(
    report: PositionReport,
    session: Session = Depends(get_session),
    worker: WorkerIdentity = Depends(get_current_worker),
    settings: Settings = Depends(get_settings),
):
    fix = None
    error = None
    try:
        fix = await _provider(report, settings).acquire()
    except PositionError as e:
        error = ErrorInfo(code=e.code.value, message=e.message)

    resolver = GeofenceResolver(allow_unconfigured=settings.allow_unconfigured_geofence)
    # DB reads run off the event loop
    locations = await asyncio.to_thread(SqlLocationDirectory(session).list_active_locations)
    verdict = resolver.resolve(fix, locations)

    machine = AttendanceStatusMachine(settings.timezone)
    events = await asyncio.to_thread(_recent_events, worker, session, settings)
    state = machine.derive_state(events, datetime.now(timezone.utc))
    gate = machine.gate(state, verdict.within_range)

    return LocationStatusResponse(
        fix=fix,
        error=error,
        within_range=verdict.within_range,
        distance_meters=verdict.distance_meters,
        location_id=verdict.location_id,
        location_name=verdict.nearest_location.name if verdict.nearest_location else None,
        state=state,
        can_clock_in=gate.can_clock_in,
        can_clock_out=gate.can_clock_out,
    )


async def _record(
    event_type: EventType,
    report: PositionReport,
    photo: Optional[UploadFile],
    session: Session,
    worker: WorkerIdentity,
    settings: Settings,
    object_store: ObjectStore,
):
    try:
        fix = await _provider(report, settings).acquire()
        resolver = GeofenceResolver(allow_unconfigured=settings.allow_unconfigured_geofence)
        locations = await asyncio.to_thread(SqlLocationDirectory(session).list_active_locations)
        verdict = resolver.resolve(fix, locations)

        submitter = AttendanceSubmitter(
            worker,
            event_store=SqlEventStore(session),
            object_store=object_store,
            evidence=EvidenceCapture(
                tz=settings.timezone,
                width=settings.evidence_width,
                height=settings.evidence_height,
                quality=settings.evidence_quality,
                verification_tag=settings.verification_tag,
            ),
            status_machine=AttendanceStatusMachine(settings.timezone),
            history=history_cache,
            history_limit=settings.history_limit,
        )

        frame = UploadedFrameSource(await photo.read()) if photo is not None else None
        result = await submitter.submit(event_type, fix, verdict, frame)
    except AttendanceError as e:
        raise to_http_exception(e)

    response = {"status": "success", "data": result.event}
    if result.evidence_warning:
        response["evidence_warning"] = result.evidence_warning
    return response


# Clock In Endpoint
@router.post("/clock-in")
async def clock_in(
    latitude: Annotated[Optional[float], Form()] = None,
    longitude: Annotated[Optional[float], Form()] = None,
    accuracy: Annotated[Optional[float], Form()] = None,
    sensor_error: Annotated[Optional[str], Form()] = None,
    photo: Annotated[Optional[UploadFile], File(description="Camera frame for evidence")] = None,
    session: Session = Depends(get_session),
    worker: WorkerIdentity = Depends(get_current_worker),
    settings: Settings = Depends(get_settings),
    object_store: ObjectStore = Depends(get_object_store),
):
    report = PositionReport(
        latitude=latitude, longitude=longitude, accuracy=accuracy, sensor_error=sensor_error
    )
    return await _record(EventType.CLOCK_IN, report, photo, session, worker, settings, object_store)


# Clock Out Endpoint
@router.post("/clock-out")
async def clock_out(
    latitude: Annotated[Optional[float], Form()] = None,
    longitude: Annotated[Optional[float], Form()] = None,
    accuracy: Annotated[Optional[float], Form()] = None,
    sensor_error: Annotated[Optional[str], Form()] = None,
    photo: Annotated[Optional[UploadFile], File(description="Camera frame for evidence")] = None,
    session: Session = Depends(get_session),
    worker: WorkerIdentity = Depends(get_current_worker),
    settings: Settings = Depends(get_settings),
    object_store: ObjectStore = Depends(get_object_store),
):
    report = PositionReport(
        latitude=latitude, longitude=longitude, accuracy=accuracy, sensor_error=sensor_error
    )
    return await _record(EventType.CLOCK_OUT, report, photo, session, worker, settings, object_store)


# Most Recent Events, Newest First
@router.get("/history")
def get_history(
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    session: Session = Depends(get_session),
    worker: WorkerIdentity = Depends(get_current_worker),
):
    events = SqlEventStore(session).list_recent_events(worker.id, limit)
    return {"status": "success", "data": events}

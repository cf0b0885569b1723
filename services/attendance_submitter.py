import asyncio
import logging
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

from core.errors import (
    EvidenceUploadError,
    GeofenceUnknownError,
    PersistError,
    SubmissionInProgressError,
    TransitionError,
)
from models.attendance_event import AttendanceEvent, EventType
from models.position import GeofenceVerdict, PositionFix, ShiftState, WorkerIdentity
from services.collaborators import EventStore, ObjectStore
from services.event_history import EventHistoryCache
from services.evidence_capture import EvidenceCapture, EvidenceMetadata, FrameSource
from services.status_machine import AttendanceStatusMachine
from utils.storage import evidence_object_key

logger = logging.getLogger(__name__)

EVIDENCE_WARNING = "Attendance recorded, but the photo could not be saved."


class SubmissionGuard:
    """At most one clock submission in flight per worker session."""

    def __init__(self):
        self._lock = threading.Lock()

    @contextmanager
    def hold(self) -> Iterator[None]:
        # Reject instead of waiting, a queued duplicate is still a duplicate
        if not self._lock.acquire(blocking=False):
            raise SubmissionInProgressError()
        try:
            yield
        finally:
            self._lock.release()


# A worker's guard lives as long as some submitter holds it
_guards: "weakref.WeakValueDictionary[str, SubmissionGuard]" = weakref.WeakValueDictionary()
_guards_lock = threading.Lock()


def guard_for(worker_id: str) -> SubmissionGuard:
    with _guards_lock:
        guard = _guards.get(worker_id)
        if guard is None:
            guard = _guards[worker_id] = SubmissionGuard()
        return guard


@dataclass(frozen=True)
class SubmissionResult:
    event: AttendanceEvent
    evidence_warning: Optional[str] = None


class AttendanceSubmitter:
    """
    The single write path for attendance events.

    Re-checks the transition gate against freshly read history, stores the
    optional evidence photo, writes exactly one event and invalidates the
    worker's cached history.
    """

    def __init__(
        self,
        worker: WorkerIdentity,
        *,
        event_store: EventStore,
        object_store: ObjectStore,
        evidence: EvidenceCapture,
        status_machine: AttendanceStatusMachine,
        guard: Optional[SubmissionGuard] = None,
        history: Optional[EventHistoryCache] = None,
        history_limit: int = 10,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._worker = worker
        self._events = event_store
        self._objects = object_store
        self._evidence = evidence
        self._machine = status_machine
        self._guard = guard or guard_for(worker.id)
        self._history = history or EventHistoryCache()
        self._history_limit = history_limit
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def submit(
        self,
        event_type: EventType,
        fix: Optional[PositionFix],
        verdict: GeofenceVerdict,
        evidence_frame: Optional[FrameSource] = None,
    ) -> SubmissionResult:
        with self._guard.hold():
            return await self._submit(EventType(event_type), fix, verdict, evidence_frame)

    async def _submit(
        self,
        event_type: EventType,
        fix: Optional[PositionFix],
        verdict: GeofenceVerdict,
        evidence_frame: Optional[FrameSource],
    ) -> SubmissionResult:
        worker_id = self._worker.id

        # 1) Location must be known before anything else is judged
        if fix is None or verdict.within_range is None:
            raise GeofenceUnknownError()

        # 2) Authoritative gate check against the store, not the cached view
        events = await asyncio.to_thread(self._events.list_recent_events, worker_id, self._history_limit)
        state = self._machine.derive_state(events, self._clock())
        if not self._machine.is_allowed(event_type, state, verdict.within_range):
            reason = _refusal_reason(event_type, state, verdict.within_range)
            logger.warning(f"[SUBMIT] Illegal {event_type.value} for {worker_id}: {reason}")
            raise TransitionError(reason)

        # 3) Evidence is auxiliary: failing to store it never loses the event
        evidence_uri = None
        evidence_key = None
        warning = None
        if evidence_frame is not None:
            captured_at = self._clock()
            metadata = EvidenceMetadata(
                worker_name=self._worker.display_name or self._worker.email or worker_id,
                event_type=event_type,
                latitude=fix.latitude,
                longitude=fix.longitude,
                captured_at=captured_at,
            )
            artifact = await asyncio.to_thread(self._evidence.capture, evidence_frame, metadata)

            key = evidence_object_key(worker_id, int(captured_at.timestamp() * 1000), event_type.value)
            try:
                evidence_uri = await self._objects.upload(artifact.data, key, artifact.content_type)
                evidence_key = key
            except EvidenceUploadError as e:
                logger.warning(f"[SUBMIT] Evidence upload failed for {worker_id}, recording without photo: {e.message}")
                warning = EVIDENCE_WARNING

        # 4) Persist exactly one event
        event = AttendanceEvent(
            worker_id=worker_id,
            event_type=event_type,
            location_id=verdict.location_id,
            latitude=fix.latitude,
            longitude=fix.longitude,
            accuracy_meters=fix.accuracy_meters,
            evidence_uri=evidence_uri,
        )
        try:
            await asyncio.to_thread(self._events.insert_event, event)
        except PersistError:
            if evidence_key is not None:
                await self._discard_evidence(evidence_key)
            raise

        # 5) Next read of the worker's history must include this event
        self._history.invalidate(worker_id)

        logger.info(
            f"[SUBMIT] {event_type.value} recorded for {worker_id} "
            f"(location={verdict.location_id}, evidence={'yes' if evidence_uri else 'no'})"
        )
        return SubmissionResult(event=event, evidence_warning=warning)

    async def _discard_evidence(self, key: str) -> None:
        try:
            await self._objects.delete(key)
        except EvidenceUploadError as e:
            logger.error(f"[SUBMIT] Could not remove orphaned evidence {key}: {e.message}")


def _refusal_reason(event_type: EventType, state: ShiftState, within_range: Optional[bool]) -> str:
    if within_range is not True:
        return "You must be within the geofence of an authorized location to clock in or out."
    if event_type == EventType.CLOCK_IN:
        return "You are already clocked in."
    if state == ShiftState.CLOCKED_OUT:
        return "You have already clocked out."
    return "Cannot clock out before clocking in."

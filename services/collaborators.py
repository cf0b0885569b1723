import logging
from datetime import datetime, timezone
from typing import List, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from core.errors import PersistError
from models.attendance_event import AttendanceEvent
from models.authorized_location import AuthorizedLocation

logger = logging.getLogger(__name__)


# --- Interfaces the engine consumes ---


class LocationDirectory(Protocol):
    def list_active_locations(self) -> List[AuthorizedLocation]: ...


class EventStore(Protocol):
    def list_recent_events(self, worker_id: str, limit: int) -> List[AttendanceEvent]: ...

    def insert_event(self, event: AttendanceEvent) -> int: ...


class ObjectStore(Protocol):
    async def upload(self, data: bytes, key: str, content_type: str) -> str: ...

    async def delete(self, key: str) -> None: ...


# --- SQLModel implementations ---


class SqlLocationDirectory:
    def __init__(self, session: Session):
        self._session = session

    def list_active_locations(self) -> List[AuthorizedLocation]:
        return list(
            self._session.exec(
                select(AuthorizedLocation)
                .where(AuthorizedLocation.is_active == True)  # noqa: E712
                .order_by(AuthorizedLocation.id)
            ).all()
        )


class SqlEventStore:
    def __init__(self, session: Session):
        self._session = session

    def list_recent_events(self, worker_id: str, limit: int) -> List[AttendanceEvent]:
        return list(
            self._session.exec(
                select(AttendanceEvent)
                .where(AttendanceEvent.worker_id == worker_id)
                .order_by(AttendanceEvent.recorded_at.desc())
                .limit(limit)
            ).all()
        )

    def insert_event(self, event: AttendanceEvent) -> int:
        # recorded_at is always the server's clock, never the client's
        event.recorded_at = datetime.now(timezone.utc)
        try:
            self._session.add(event)
            self._session.commit()
            self._session.refresh(event)
        except SQLAlchemyError as e:
            self._session.rollback()
            logger.error(f"[STORE] Failed to insert attendance event for {event.worker_id}: {e}")
            raise PersistError(f"Failed to record attendance: {e}")

        if event.id is None:
            raise PersistError("Failed to get attendance event ID after storage")
        return event.id

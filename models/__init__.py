from .attendance_event import AttendanceEvent, EventType
from .authorized_location import AuthorizedLocation
from .position import (
    GeofenceVerdict,
    PositionFix,
    PositionReport,
    ShiftSnapshot,
    ShiftState,
    TransitionGate,
    WorkerIdentity,
)

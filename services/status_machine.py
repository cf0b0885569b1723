from datetime import datetime
from typing import Iterable, List, Optional

from models.attendance_event import AttendanceEvent, EventType
from models.position import ShiftSnapshot, ShiftState, TransitionGate
from utils.timezone_helpers import ensure_timezone_aware, local_day_bounds

EVENT_TO_STATE = {
    EventType.CLOCK_IN: ShiftState.CLOCKED_IN,
    EventType.CLOCK_OUT: ShiftState.CLOCKED_OUT,
}


class AttendanceStatusMachine:
    """
    Derives a worker's shift state for the current local day from their events.

    Only events recorded between local midnight of `as_of` and the next local
    midnight count; the latest of those decides the state. History is only
    read, never altered.
    """

    def __init__(self, tz: str):
        self._tz = tz

    def events_for_day(self, events: Iterable[AttendanceEvent], as_of: datetime) -> List[AttendanceEvent]:
        start, end = local_day_bounds(ensure_timezone_aware(as_of), self._tz)
        return [
            e for e in events
            if start <= ensure_timezone_aware(e.recorded_at) < end
        ]

    def derive_state(self, events: Iterable[AttendanceEvent], as_of: datetime) -> ShiftState:
        today = self.events_for_day(events, as_of)
        if not today:
            return ShiftState.NOT_PRESENT

        latest = max(today, key=lambda e: ensure_timezone_aware(e.recorded_at))
        return EVENT_TO_STATE[EventType(latest.event_type)]

    def snapshot(self, events: Iterable[AttendanceEvent], as_of: datetime) -> ShiftSnapshot:
        today = self.events_for_day(events, as_of)
        return ShiftSnapshot(
            state=self.derive_state(today, as_of),
            last_clock_in=_latest_of_type(today, EventType.CLOCK_IN),
            last_clock_out=_latest_of_type(today, EventType.CLOCK_OUT),
        )

    @staticmethod
    def gate(state: ShiftState, within_range: Optional[bool]) -> TransitionGate:
        # Unknown (None) range is never admissible
        in_range = within_range is True
        return TransitionGate(
            can_clock_in=in_range and state != ShiftState.CLOCKED_IN,
            can_clock_out=in_range and state == ShiftState.CLOCKED_IN,
        )

    @classmethod
    def is_allowed(cls, event_type: EventType, state: ShiftState, within_range: Optional[bool]) -> bool:
        gate = cls.gate(state, within_range)
        if event_type == EventType.CLOCK_IN:
            return gate.can_clock_in
        return gate.can_clock_out


def _latest_of_type(events: List[AttendanceEvent], event_type: EventType) -> Optional[datetime]:
    times = [
        ensure_timezone_aware(e.recorded_at)
        for e in events
        if EventType(e.event_type) == event_type
    ]
    return max(times) if times else None

import asyncio
import logging
import math
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from core.errors import ErrorCode, PositionError
from models.position import PositionFix, PositionReport

logger = logging.getLogger(__name__)

SENSOR_ERROR_MESSAGES = {
    ErrorCode.PERMISSION_DENIED: "Location permission denied. Please enable location access in your browser settings.",
    ErrorCode.POSITION_UNAVAILABLE: "Location information is unavailable. Please check your GPS.",
    ErrorCode.TIMEOUT: "Location request timed out. Please try again.",
    ErrorCode.ACCURACY_TOO_LOW: "GPS accuracy is too low. Please move to an area with better signal.",
}


class PositionSensor(Protocol):
    """A device location sensor able to produce one reading on request."""

    async def read(self, *, high_accuracy: bool, maximum_age: float) -> PositionReport: ...


class ReportedPositionSensor:
    """
    Sensor backed by the reading the worker's device sent with the request.

    The device performs the actual high-accuracy, no-cache read; this adapter
    only hands that single reading to the provider.
    """

    def __init__(self, report: PositionReport):
        self._report = report

    async def read(self, *, high_accuracy: bool, maximum_age: float) -> PositionReport:
        return self._report


def sensor_error_code(raw: str) -> ErrorCode:
    # Anything unrecognised (including "UNSUPPORTED") is treated as unavailable
    try:
        code = ErrorCode(raw.strip().upper())
    except ValueError:
        return ErrorCode.POSITION_UNAVAILABLE
    if code in (ErrorCode.PERMISSION_DENIED, ErrorCode.POSITION_UNAVAILABLE, ErrorCode.TIMEOUT):
        return code
    return ErrorCode.POSITION_UNAVAILABLE


class PositionProvider:
    """
    Produces a validated PositionFix or raises PositionError.

    Each call issues exactly one high-accuracy sensor request with
    maximum_age=0, bounded by `timeout_seconds`. Nothing is retried and nothing
    is remembered between calls.
    """

    def __init__(
        self,
        sensor: PositionSensor,
        *,
        accuracy_ceiling_meters: float,
        timeout_seconds: float = 10.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if accuracy_ceiling_meters <= 0:
            raise ValueError("accuracy_ceiling_meters must be greater than 0")
        self._sensor = sensor
        self._ceiling = accuracy_ceiling_meters
        self._timeout = timeout_seconds
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def acquire(self) -> PositionFix:
        try:
            report = await asyncio.wait_for(
                self._sensor.read(high_accuracy=True, maximum_age=0),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            raise self._failure(ErrorCode.TIMEOUT)

        if report.sensor_error:
            raise self._failure(sensor_error_code(report.sensor_error))

        if report.latitude is None or report.longitude is None or report.accuracy is None:
            raise self._failure(ErrorCode.POSITION_UNAVAILABLE)

        if math.isnan(report.accuracy) or not (math.isfinite(report.latitude) and math.isfinite(report.longitude)):
            raise self._failure(ErrorCode.POSITION_UNAVAILABLE)

        # Anti-spoofing gate: coarse fixes are the easiest to forge
        if report.accuracy > self._ceiling:
            logger.warning(
                f"[POSITION] Rejected fix with accuracy {report.accuracy:.0f}m "
                f"(ceiling {self._ceiling:.0f}m)"
            )
            raise self._failure(ErrorCode.ACCURACY_TOO_LOW)

        try:
            return PositionFix(
                latitude=report.latitude,
                longitude=report.longitude,
                accuracy_meters=report.accuracy,
                captured_at=self._clock(),
            )
        except ValidationError:
            raise self._failure(ErrorCode.POSITION_UNAVAILABLE)

    def _failure(self, code: ErrorCode) -> PositionError:
        logger.info(f"[POSITION] Sensor failure: {code.value}")
        return PositionError(code, SENSOR_ERROR_MESSAGES[code])

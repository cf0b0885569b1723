from enum import Enum

from fastapi import HTTPException, status


class ErrorCode(str, Enum):
    # Sensor failures
    PERMISSION_DENIED = "PERMISSION_DENIED"
    POSITION_UNAVAILABLE = "POSITION_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    ACCURACY_TOO_LOW = "ACCURACY_TOO_LOW"
    # Geofence
    LOCATION_UNKNOWN = "LOCATION_UNKNOWN"
    # Submission
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    SUBMISSION_IN_PROGRESS = "SUBMISSION_IN_PROGRESS"
    # Evidence
    CAMERA_NOT_READY = "CAMERA_NOT_READY"
    EVIDENCE_ENCODING_FAILED = "EVIDENCE_ENCODING_FAILED"
    EVIDENCE_UPLOAD_FAILED = "EVIDENCE_UPLOAD_FAILED"
    # Storage
    PERSIST_FAILED = "PERSIST_FAILED"


class AttendanceError(Exception):
    """Base class for every failure the attendance engine reports."""

    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: ErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.value!r}, {self.message!r})"


class PositionError(AttendanceError):
    """The device could not produce an acceptable fix. Always retryable."""

    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class GeofenceUnknownError(AttendanceError):
    """No verdict could be reached because the fix is missing."""

    http_status = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Your location could not be verified. Please refresh and try again."):
        super().__init__(ErrorCode.LOCATION_UNKNOWN, message)


class TransitionError(AttendanceError):
    http_status = status.HTTP_409_CONFLICT

    def __init__(self, message: str):
        super().__init__(ErrorCode.ILLEGAL_TRANSITION, message)


class SubmissionInProgressError(AttendanceError):
    http_status = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "A clock request is already being processed."):
        super().__init__(ErrorCode.SUBMISSION_IN_PROGRESS, message)


class EvidenceCaptureError(AttendanceError):
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class EvidenceUploadError(AttendanceError):
    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str):
        super().__init__(ErrorCode.EVIDENCE_UPLOAD_FAILED, message)


class PersistError(AttendanceError):
    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str):
        super().__init__(ErrorCode.PERSIST_FAILED, message)


def to_http_exception(error: AttendanceError) -> HTTPException:
    """Convert a domain failure into the API's error payload."""
    return HTTPException(
        status_code=error.http_status,
        detail={"code": error.code.value, "message": error.message},
    )

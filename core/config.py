import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

from utils.timezone_helpers import get_default_timezone, validate_timezone

# Load environment variables from .env file, if it exists
load_dotenv()

logger = logging.getLogger(__name__)

# Accuracy ceilings (meters) for the named attendance profiles.
# "lenient" is meant for desktop-browser testing only.
PROFILE_ACCURACY_CEILINGS = {
    "lenient": 5000.0,
    "production": 1000.0,
}

TRUE_VALUES = ("true", "1", "t", "yes")


@dataclass(frozen=True)
class Settings:
    accuracy_ceiling_meters: float
    allow_unconfigured_geofence: bool
    position_timeout_seconds: float
    timezone: str
    evidence_quality: int
    evidence_width: int
    evidence_height: int
    verification_tag: str
    history_limit: int


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUE_VALUES


def _env_number(name: str, default, cast=float):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be a number, got {raw!r}")


def _resolve_accuracy_ceiling() -> float:
    """
    The anti-spoofing ceiling has no built-in default. It must come either from
    ATTENDANCE_ACCURACY_CEILING_METERS or from an explicitly chosen profile.
    """
    ceiling: Optional[float] = _env_number("ATTENDANCE_ACCURACY_CEILING_METERS", None)
    if ceiling is None:
        profile = os.getenv("ATTENDANCE_PROFILE", "").strip().lower()
        if not profile:
            raise ValueError(
                "Missing required environment variable: ATTENDANCE_ACCURACY_CEILING_METERS "
                "(or set ATTENDANCE_PROFILE to one of: "
                f"{', '.join(PROFILE_ACCURACY_CEILINGS)})"
            )
        if profile not in PROFILE_ACCURACY_CEILINGS:
            raise ValueError(f"Unknown ATTENDANCE_PROFILE: {profile!r}")
        ceiling = PROFILE_ACCURACY_CEILINGS[profile]

    if ceiling <= 0:
        raise ValueError("ATTENDANCE_ACCURACY_CEILING_METERS must be greater than 0")
    return ceiling


def load_settings() -> Settings:
    tz = os.getenv("ATTENDANCE_TIMEZONE", get_default_timezone())
    if not validate_timezone(tz):
        raise ValueError(f"ATTENDANCE_TIMEZONE is not a valid IANA timezone: {tz!r}")

    quality = _env_number("ATTENDANCE_EVIDENCE_QUALITY", 85, int)
    if not 1 <= quality <= 95:
        raise ValueError("ATTENDANCE_EVIDENCE_QUALITY must be between 1 and 95")

    return Settings(
        accuracy_ceiling_meters=_resolve_accuracy_ceiling(),
        allow_unconfigured_geofence=_env_bool("ATTENDANCE_ALLOW_UNCONFIGURED_GEOFENCE"),
        position_timeout_seconds=_env_number("ATTENDANCE_POSITION_TIMEOUT_SECONDS", 10.0),
        timezone=tz,
        evidence_quality=quality,
        evidence_width=_env_number("ATTENDANCE_EVIDENCE_WIDTH", 1280, int),
        evidence_height=_env_number("ATTENDANCE_EVIDENCE_HEIGHT", 720, int),
        verification_tag=os.getenv("ATTENDANCE_VERIFICATION_TAG", "GeoAttend Verified"),
        history_limit=_env_number("ATTENDANCE_HISTORY_LIMIT", 10, int),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = load_settings()
    logger.info(
        f"[CONFIG] Attendance settings: ceiling={settings.accuracy_ceiling_meters}m, "
        f"unconfigured_geofence={'ALLOWED' if settings.allow_unconfigured_geofence else 'denied'}, "
        f"tz={settings.timezone}"
    )
    return settings

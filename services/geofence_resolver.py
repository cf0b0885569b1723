import logging
from typing import Optional, Sequence

from models.authorized_location import AuthorizedLocation
from models.position import GeofenceVerdict, PositionFix
from utils.geofence import haversine_dist

logger = logging.getLogger(__name__)


class GeofenceResolver:
    """
    Matches a fix against the authorized locations.

    The nearest active location wins (first one on ties), and the fix is in
    range when its distance is within that location's radius.

    With no active locations configured the outcome depends on
    `allow_unconfigured`: when enabled every fix is admitted with no location
    (geofencing is effectively off), otherwise every fix is refused.
    """

    def __init__(self, *, allow_unconfigured: bool = False):
        self._allow_unconfigured = allow_unconfigured

    def resolve(
        self,
        fix: Optional[PositionFix],
        locations: Sequence[AuthorizedLocation],
    ) -> GeofenceVerdict:
        # Acquisition failed -> unknown, which is not the same as "outside"
        if fix is None:
            return self.unknown()

        active = [loc for loc in locations if loc.is_active]
        if not active:
            if self._allow_unconfigured:
                logger.warning("[GEOFENCE] No locations configured; admitting fix without a geofence")
            return GeofenceVerdict(
                nearest_location=None,
                distance_meters=0.0,
                within_range=self._allow_unconfigured,
            )

        nearest = None
        min_distance = float("inf")
        for loc in active:
            dist = haversine_dist(fix.latitude, fix.longitude, loc.latitude, loc.longitude)
            # strict < keeps the first location on ties
            if dist < min_distance:
                min_distance = dist
                nearest = loc

        within = min_distance <= nearest.radius_meters
        logger.debug(
            f"[GEOFENCE] Nearest {nearest.id} at {min_distance:.1f}m "
            f"(radius {nearest.radius_meters:.0f}m) -> {'IN' if within else 'OUT'}"
        )
        return GeofenceVerdict(
            nearest_location=nearest,
            distance_meters=min_distance,
            within_range=within,
        )

    @staticmethod
    def unknown() -> GeofenceVerdict:
        return GeofenceVerdict(nearest_location=None, distance_meters=0.0, within_range=None)

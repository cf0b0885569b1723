import pytest

from models.authorized_location import AuthorizedLocation
from models.position import PositionFix
from services.geofence_resolver import GeofenceResolver
from utils.geofence import haversine_dist


def _loc(loc_id, lat, lng, radius=100.0, active=True):
    return AuthorizedLocation(
        id=loc_id, name=loc_id.title(), latitude=lat, longitude=lng,
        radius_meters=radius, is_active=active,
    )


def _fix(lat, lng, accuracy=10.0):
    return PositionFix(latitude=lat, longitude=lng, accuracy_meters=accuracy)


POINTS = [
    (0.0, 0.0),
    (38.9931538759034, -76.9428334513501),
    (-33.8688, 151.2093),
    (51.5074, -0.1278),
    (89.9, 179.9),
    (-89.9, -179.9),
]


@pytest.mark.parametrize("a", POINTS)
@pytest.mark.parametrize("b", POINTS)
def test_distance_is_symmetric(a, b):
    assert haversine_dist(*a, *b) == haversine_dist(*b, *a)


@pytest.mark.parametrize("a", POINTS)
def test_distance_to_self_is_zero(a):
    assert haversine_dist(*a, *a) == 0


def test_antipodal_distance_is_half_circumference():
    assert haversine_dist(0, 0, 0, 180) == pytest.approx(20015086.8, rel=1e-6)


def test_radius_boundary_is_inclusive():
    d = haversine_dist(0, 0, 0, 0.001)
    resolver = GeofenceResolver()

    assert resolver.resolve(_fix(0, 0.001), [_loc("edge", 0, 0, d)]).within_range is True
    assert resolver.resolve(_fix(0, 0.001), [_loc("edge", 0, 0, d - 0.01)]).within_range is False


def test_fix_111m_east_of_100m_geofence_is_out_of_range():
    verdict = GeofenceResolver().resolve(_fix(0, 0.001), [_loc("origin", 0, 0, 100)])

    assert verdict.nearest_location.id == "origin"
    assert verdict.distance_meters == pytest.approx(111.19, abs=0.05)
    assert verdict.within_range is False


def test_fix_inside_radius_is_in_range():
    verdict = GeofenceResolver().resolve(_fix(0, 0.0005), [_loc("origin", 0, 0, 100)])

    assert verdict.within_range is True
    assert verdict.location_id == "origin"


def test_nearest_location_is_selected():
    locations = [
        _loc("far", 0, 0.01, radius=5000),
        _loc("near", 0, 0.002, radius=50),
        _loc("mid", 0, 0.005, radius=50),
    ]
    fix = _fix(0, 0.0021)

    verdict = GeofenceResolver().resolve(fix, locations)

    expected = min(haversine_dist(0, 0.0021, loc.latitude, loc.longitude) for loc in locations)
    assert verdict.nearest_location.id == "near"
    assert verdict.distance_meters == expected
    # In range is judged against the nearest location's own radius only
    assert verdict.within_range == (expected <= 50)


def test_nearest_location_out_of_radius_is_not_rescued_by_larger_farther_one():
    locations = [
        _loc("small", 0, 0.001, radius=10),
        _loc("big", 0, 0.003, radius=10000),
    ]

    verdict = GeofenceResolver().resolve(_fix(0, 0), locations)

    assert verdict.nearest_location.id == "small"
    assert verdict.within_range is False


def test_ties_keep_first_location():
    locations = [_loc("east", 0, 0.001), _loc("west", 0, -0.001)]

    verdict = GeofenceResolver().resolve(_fix(0, 0), locations)

    assert verdict.nearest_location.id == "east"


def test_inactive_locations_are_ignored():
    locations = [_loc("closed", 0, 0, active=False), _loc("open", 0, 0.01, radius=2000)]

    verdict = GeofenceResolver().resolve(_fix(0, 0), locations)

    assert verdict.nearest_location.id == "open"
    assert verdict.within_range is True


def test_empty_locations_admitted_when_unconfigured_geofence_allowed():
    verdict = GeofenceResolver(allow_unconfigured=True).resolve(_fix(12.3, 45.6), [])

    assert verdict.within_range is True
    assert verdict.distance_meters == 0
    assert verdict.nearest_location is None
    assert verdict.location_id is None


def test_empty_locations_refused_by_default():
    verdict = GeofenceResolver().resolve(_fix(12.3, 45.6), [])

    assert verdict.within_range is False
    assert verdict.distance_meters == 0
    assert verdict.nearest_location is None


def test_only_inactive_locations_counts_as_unconfigured():
    resolver = GeofenceResolver(allow_unconfigured=True)

    verdict = resolver.resolve(_fix(0, 0), [_loc("closed", 50, 50, active=False)])

    assert verdict.within_range is True
    assert verdict.nearest_location is None


def test_missing_fix_gives_unknown_verdict():
    verdict = GeofenceResolver(allow_unconfigured=True).resolve(None, [_loc("origin", 0, 0)])

    assert verdict.within_range is None
    assert verdict.within_range is not False
    assert verdict.distance_meters == 0
    assert verdict == GeofenceResolver.unknown()

import io
import struct
import zlib

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from api.attendance_routes import get_object_store
from core.config import Settings, get_settings
from core.deps import get_current_worker
from core.errors import EvidenceUploadError
from db.session import get_session
from main import app
from models.authorized_location import AuthorizedLocation
from models.position import WorkerIdentity
from services.event_history import history_cache

WORKER = WorkerIdentity(id="worker-1", display_name="Jamie Rivera", email="jamie@example.com")

SETTINGS = Settings(
    accuracy_ceiling_meters=1000.0,
    allow_unconfigured_geofence=False,
    position_timeout_seconds=1.0,
    timezone="America/New_York",
    evidence_quality=85,
    evidence_width=640,
    evidence_height=360,
    verification_tag="GeoAttend Verified",
    history_limit=10,
)

# ~11 m north of HQ, well inside its 100 m radius
ON_SITE = {"latitude": "0.0001", "longitude": "0.0", "accuracy": "12"}
# ~111 m north of HQ
OFF_SITE = {"latitude": "0.001", "longitude": "0.0", "accuracy": "12"}


class FakeObjectStore:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.objects = {}

    async def upload(self, data, key, content_type):
        if self.fail:
            raise EvidenceUploadError("bucket unavailable")
        self.objects[key] = data
        return f"gs://test-bucket/{key}"

    async def delete(self, key):
        self.objects.pop(key, None)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        session.add(AuthorizedLocation(id="HQ", name="Head Office", latitude=0.0, longitude=0.0, radius_meters=100.0))
        session.add(AuthorizedLocation(id="OLD", name="Closed Depot", latitude=0.0, longitude=0.0005, radius_meters=100.0, is_active=False))
        session.commit()
    return engine


@pytest.fixture
def object_store():
    return FakeObjectStore()


@pytest.fixture
def client(engine, object_store):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_current_worker] = lambda: WORKER
    app.dependency_overrides[get_settings] = lambda: SETTINGS
    app.dependency_overrides[get_object_store] = lambda: object_store
    history_cache.invalidate(WORKER.id)

    yield TestClient(app)

    app.dependency_overrides.clear()
    history_cache.invalidate(WORKER.id)


def _photo():
    buffer = io.BytesIO()
    Image.new("RGB", (320, 240), (90, 90, 90)).save(buffer, format="PNG")
    return {"photo": ("frame.png", buffer.getvalue(), "image/png")}


def test_status_starts_not_present(client):
    response = client.get("/attendance/status")

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["shift"]["state"] == "not_present"
    assert body["data"]["shift"]["last_clock_in"] is None
    assert body["data"]["worker_name"] == "Jamie Rivera"


def test_verify_location_on_site(client):
    response = client.post("/attendance/verify-location", json={"latitude": 0.0001, "longitude": 0.0, "accuracy": 12})

    assert response.status_code == 200
    body = response.json()
    assert body["within_range"] is True
    assert body["location_id"] == "HQ"
    assert body["location_name"] == "Head Office"
    assert body["distance_meters"] == pytest.approx(11.12, abs=0.05)
    assert body["can_clock_in"] is True
    assert body["can_clock_out"] is False
    assert body["error"] is None


def test_verify_location_off_site(client):
    response = client.post("/attendance/verify-location", json={"latitude": 0.001, "longitude": 0.0, "accuracy": 12})

    body = response.json()
    assert body["within_range"] is False
    assert body["distance_meters"] == pytest.approx(111.19, abs=0.05)
    assert body["can_clock_in"] is False


def test_verify_location_reports_sensor_failure(client):
    response = client.post("/attendance/verify-location", json={"sensor_error": "PERMISSION_DENIED"})

    assert response.status_code == 200
    body = response.json()
    assert body["fix"] is None
    assert body["within_range"] is None
    assert body["error"]["code"] == "PERMISSION_DENIED"
    assert body["can_clock_in"] is False
    assert body["can_clock_out"] is False


def test_verify_location_rejects_coarse_fix(client):
    response = client.post("/attendance/verify-location", json={"latitude": 0.0, "longitude": 0.0, "accuracy": 1500})

    body = response.json()
    assert body["error"]["code"] == "ACCURACY_TOO_LOW"
    assert body["within_range"] is None


def test_clock_in_then_out_with_evidence(client, object_store):
    response = client.post("/attendance/clock-in", data=ON_SITE, files=_photo())

    assert response.status_code == 200
    event = response.json()["data"]
    assert event["event_type"] == "clock_in"
    assert event["location_id"] == "HQ"
    assert event["recorded_at"].endswith("Z")
    assert event["evidence_uri"].startswith("gs://test-bucket/worker-1/")
    assert event["evidence_uri"].endswith("_clock_in.jpg")
    assert len(object_store.objects) == 1

    status = client.get("/attendance/status").json()["data"]["shift"]
    assert status["state"] == "clocked_in"
    assert status["last_clock_in"] is not None

    response = client.post("/attendance/clock-out", data=ON_SITE)
    assert response.status_code == 200
    assert response.json()["data"]["evidence_uri"] is None

    assert client.get("/attendance/status").json()["data"]["shift"]["state"] == "clocked_out"


def test_clock_in_twice_is_conflict(client):
    assert client.post("/attendance/clock-in", data=ON_SITE).status_code == 200

    response = client.post("/attendance/clock-in", data=ON_SITE)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "ILLEGAL_TRANSITION"
    assert len(client.get("/attendance/history").json()["data"]) == 1


def test_clock_out_before_clock_in_is_conflict(client):
    response = client.post("/attendance/clock-out", data=ON_SITE)

    assert response.status_code == 409
    assert response.json()["detail"]["message"] == "Cannot clock out before clocking in."


def test_clock_in_off_site_is_refused(client):
    response = client.post("/attendance/clock-in", data=OFF_SITE)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "ILLEGAL_TRANSITION"
    assert client.get("/attendance/history").json()["data"] == []


def test_clock_in_without_fix_is_refused(client):
    response = client.post("/attendance/clock-in", data={"sensor_error": "TIMEOUT"})

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "TIMEOUT"


def test_unreadable_photo_is_refused(client):
    files = {"photo": ("frame.png", b"not an image", "image/png")}

    response = client.post("/attendance/clock-in", data=ON_SITE, files=files)

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "CAMERA_NOT_READY"
    assert client.get("/attendance/history").json()["data"] == []


def test_upload_failure_records_event_with_warning(client, object_store):
    object_store.fail = True

    response = client.post("/attendance/clock-in", data=ON_SITE, files=_photo())

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["evidence_uri"] is None
    assert "photo could not be saved" in body["evidence_warning"]


def test_history_is_newest_first_and_limited(client):
    client.post("/attendance/clock-in", data=ON_SITE)
    client.post("/attendance/clock-out", data=ON_SITE)
    client.post("/attendance/clock-in", data=ON_SITE)

    events = client.get("/attendance/history").json()["data"]
    assert [e["event_type"] for e in events] == ["clock_in", "clock_out", "clock_in"]

    latest = client.get("/attendance/history", params={"limit": 1}).json()["data"]
    assert len(latest) == 1
    assert latest[0]["id"] == events[0]["id"]


def test_history_limit_is_validated(client):
    assert client.get("/attendance/history", params={"limit": 0}).status_code == 422


def test_locations_lists_only_active(client):
    response = client.get("/locations")

    assert response.status_code == 200
    assert [loc["location_id"] for loc in response.json()] == ["HQ"]


def test_location_geofence(client):
    body = client.get("/locations/HQ/geofence").json()
    assert body["radius_meters"] == 100.0

    assert client.get("/locations/OLD/geofence").status_code == 404
    assert client.get("/locations/NOPE/geofence").status_code == 404


def _png_chunk(kind: bytes, payload: bytes) -> bytes:
    return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", zlib.crc32(kind + payload))


def _huge_png(width=15000, height=15000) -> bytes:
    # Tiny on the wire, but the header claims a 1-bit image of width x height pixels
    header = struct.pack(">IIBBBBB", width, height, 1, 0, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(b"\x00" * 64))
        + _png_chunk(b"IEND", b"")
    )


@pytest.mark.filterwarnings("ignore::PIL.Image.DecompressionBombWarning")
def test_oversized_photo_is_refused_with_typed_error(client, object_store):
    files = {"photo": ("frame.png", _huge_png(), "image/png")}

    response = client.post("/attendance/clock-in", data=ON_SITE, files=files)

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "CAMERA_NOT_READY"
    assert object_store.objects == {}
    assert client.get("/attendance/history").json()["data"] == []


@pytest.mark.filterwarnings("ignore::PIL.Image.DecompressionBombWarning")
def test_photo_beyond_decoder_limit_is_refused_with_typed_error(client):
    files = {"photo": ("frame.png", _huge_png(30000, 30000), "image/png")}

    response = client.post("/attendance/clock-in", data=ON_SITE, files=files)

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "CAMERA_NOT_READY"

from __future__ import annotations

import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

_TMP = tempfile.mkdtemp(prefix="fleetwatch-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP}/test.db"
os.environ["REPORT_DIR"] = os.path.join(_TMP, "reports")
os.environ["TIMEZONE"] = "UTC"

from fastapi.testclient import TestClient  # noqa: E402

from fleetwatch.db import Base, engine  # noqa: E402
from fleetwatch.main import app  # noqa: E402
from fleetwatch.services.tracker import tracker  # noqa: E402
from fleetwatch.tracking.entities import LocationSample  # noqa: E402

T0 = datetime(2024, 5, 6, 9, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def sample(
    seconds: float,
    lat: float = 40.0,
    lon: float = -3.0,
    speed: float = 0.0,
    vehicle_id: str = "v1",
) -> LocationSample:
    return LocationSample(vehicle_id=vehicle_id, latitude=lat, longitude=lon, speed=speed, timestamp=at(seconds))


@pytest.fixture
def client():
    with TestClient(app) as c:
        Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)
        tracker.reset()
        yield c

import math

import pytest

from conftest import T0
from fleetwatch.tracking.entities import Geofence, LocationSample
from fleetwatch.tracking.errors import GeometryError, InvalidSampleError


def _make(**overrides):
    fields = {"vehicle_id": "v1", "latitude": 40.0, "longitude": -3.0, "speed": 10.0, "timestamp": T0}
    fields.update(overrides)
    return LocationSample(**fields)


@pytest.mark.parametrize(
    "overrides",
    [
        {"latitude": math.nan},
        {"longitude": math.inf},
        {"speed": -math.inf},
        {"heading": math.nan},
        {"accuracy": math.inf},
        {"latitude": 90.5},
        {"latitude": -91.0},
        {"longitude": 180.01},
        {"speed": -1.0},
        {"timestamp": T0.replace(tzinfo=None)},
    ],
)
def test_invalid_sample_raises(overrides):
    with pytest.raises(InvalidSampleError):
        _make(**overrides)


def test_invalid_sample_is_a_value_error():
    with pytest.raises(ValueError):
        _make(latitude=math.nan)


def test_boundary_coordinates_are_valid():
    s = _make(latitude=-90.0, longitude=180.0, speed=0.0)
    assert s.latitude == -90.0


def test_circle_without_center_cannot_test_containment():
    fence = Geofence(id="g", name="G", kind="circle", radius_m=10.0)
    with pytest.raises(GeometryError):
        fence.validate()
    with pytest.raises(GeometryError):
        fence.contains(40.0, -3.0)

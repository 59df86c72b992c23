import math

import pytest

from fleetwatch.tracking.geo import (
    EARTH_RADIUS_M,
    haversine_m,
    is_inside_circle,
    is_inside_polygon,
    point_in_ring,
    project_local,
)


def _north_of(lat: float, meters: float) -> float:
    return lat + math.degrees(meters / EARTH_RADIUS_M)


def test_haversine_one_degree_of_latitude():
    assert haversine_m(0.0, 0.0, 1.0, 0.0) == pytest.approx(111_195.0, rel=1e-4)


def test_haversine_is_symmetric_and_zero_on_same_point():
    assert haversine_m(51.5, -0.12, 48.85, 2.35) == pytest.approx(haversine_m(48.85, 2.35, 51.5, -0.12))
    assert haversine_m(10.0, 10.0, 10.0, 10.0) == 0.0


def test_circle_boundary_is_inclusive():
    center = (52.52, 13.405)
    assert is_inside_circle(_north_of(center[0], 999.0), center[1], *center, 1000.0)
    assert is_inside_circle(_north_of(center[0], 1000.0), center[1], *center, 1000.0)
    assert not is_inside_circle(_north_of(center[0], 1001.0), center[1], *center, 1000.0)


def test_point_in_ring_square():
    square = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)]
    assert point_in_ring(5.0, 5.0, square)
    assert not point_in_ring(15.0, 5.0, square)
    # on an edge and on a vertex
    assert point_in_ring(0.0, 5.0, square)
    assert point_in_ring(10.0, 10.0, square)


def test_point_in_ring_concave():
    # U shape opening upwards
    ring = [(0, 0), (30, 0), (30, 30), (20, 30), (20, 10), (10, 10), (10, 30), (0, 30)]
    assert point_in_ring(5.0, 20.0, ring)
    assert not point_in_ring(15.0, 20.0, ring)
    assert point_in_ring(15.0, 5.0, ring)


def test_point_in_ring_needs_three_vertices():
    assert not point_in_ring(0.0, 0.0, [(0.0, 0.0), (1.0, 1.0)])


def test_polygon_in_lat_lon():
    block = [(40.0, -3.0), (40.0, -2.99), (40.01, -2.99), (40.01, -3.0)]
    assert is_inside_polygon(40.005, -2.995, block)
    assert not is_inside_polygon(40.02, -2.995, block)
    assert is_inside_polygon(40.0, -2.995, block)


def test_project_local_wraps_antimeridian():
    x, _ = project_local(0.0, -179.999, 0.0, 179.999)
    assert x == pytest.approx(haversine_m(0.0, 179.999, 0.0, -179.999), rel=1e-6)

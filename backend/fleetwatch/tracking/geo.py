"""Geodesy helpers for containment tests and trip distances.

Circles are tested with the haversine great-circle distance. A flat-earth
distance is not acceptable there: its error grows past a few meters once
the radius exceeds a few hundred meters.

Polygons are tested on an equirectangular local tangent plane centered on
the vertex centroid. This is accurate at city scale; large fences or fences
near the poles accumulate error and should be split.
"""

from __future__ import annotations

import math
from typing import Sequence

EARTH_RADIUS_M = 6_371_000.0  # mean Earth radius

# Absorbs float round-off so points exactly on a boundary stay inside.
BOUNDARY_TOLERANCE_M = 1e-6


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two lat/lon points (degrees)."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def is_inside_circle(lat: float, lon: float, center_lat: float, center_lon: float, radius_m: float) -> bool:
    """Closed-disc test: a point on the circle counts as inside."""

    return haversine_m(lat, lon, center_lat, center_lon) <= radius_m + BOUNDARY_TOLERANCE_M


def project_local(lat: float, lon: float, origin_lat: float, origin_lon: float) -> tuple[float, float]:
    """Equirectangular projection to meters (x east, y north) around an origin."""

    d_lon = lon - origin_lon
    # keep the plane continuous across the antimeridian
    if d_lon > 180.0:
        d_lon -= 360.0
    elif d_lon < -180.0:
        d_lon += 360.0
    x = EARTH_RADIUS_M * math.radians(d_lon) * math.cos(math.radians(origin_lat))
    y = EARTH_RADIUS_M * math.radians(lat - origin_lat)
    return x, y


def _on_segment(px: float, py: float, ax: float, ay: float, bx: float, by: float, tol: float) -> bool:
    cross = (bx - ax) * (py - ay) - (by - ay) * (px - ax)
    seg_len = math.hypot(bx - ax, by - ay)
    if seg_len == 0.0:
        return math.hypot(px - ax, py - ay) <= tol
    if abs(cross) / seg_len > tol:
        return False
    return (
        min(ax, bx) - tol <= px <= max(ax, bx) + tol
        and min(ay, by) - tol <= py <= max(ay, by) + tol
    )


def point_in_ring(x: float, y: float, ring: Sequence[tuple[float, float]], tol: float = 1e-9) -> bool:
    """Even-odd ray casting on a planar ring. Points on an edge are inside."""

    n = len(ring)
    if n < 3:
        return False

    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = ring[i]
        xj, yj = ring[j]
        if _on_segment(x, y, xj, yj, xi, yi, tol):
            return True
        if (yi > y) != (yj > y):
            x_cross = xj + (y - yj) * (xi - xj) / (yi - yj)
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def is_inside_polygon(lat: float, lon: float, vertices: Sequence[tuple[float, float]]) -> bool:
    """Point-in-polygon for a (lat, lon) vertex ring, tested on the local plane."""

    if len(vertices) < 3:
        return False
    origin_lat = sum(v[0] for v in vertices) / len(vertices)
    origin_lon = sum(v[1] for v in vertices) / len(vertices)
    ring = [project_local(v_lat, v_lon, origin_lat, origin_lon) for v_lat, v_lon in vertices]
    x, y = project_local(lat, lon, origin_lat, origin_lon)
    return point_in_ring(x, y, ring, tol=BOUNDARY_TOLERANCE_M)

from __future__ import annotations


class TrackingError(Exception):
    """Base class for errors raised by the tracking core."""


class InvalidSampleError(TrackingError, ValueError):
    """A telemetry sample that cannot be evaluated (NaN or out-of-range values)."""


class GeometryError(TrackingError, ValueError):
    """A geofence whose shape is degenerate."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Any, Literal

from fleetwatch.tracking.errors import GeometryError, InvalidSampleError
from fleetwatch.tracking.geo import is_inside_circle, is_inside_polygon

GeofenceKind = Literal["circle", "polygon"]
RuleKind = Literal["entry", "exit", "dwell", "time_violation"]


@dataclass(frozen=True, slots=True)
class LocationSample:
    """One reported position.

    Attributes:
        vehicle_id: Vehicle identifier.
        latitude: Latitude in decimal degrees.
        longitude: Longitude in decimal degrees.
        speed: Speed in km/h.
        timestamp: Timezone-aware time the device took the fix.
        heading: Course over ground in degrees.
        accuracy: Horizontal accuracy in meters.
    """

    vehicle_id: str
    latitude: float
    longitude: float
    speed: float
    timestamp: datetime
    heading: float = 0.0
    accuracy: float = 0.0

    def __post_init__(self) -> None:
        for name in ("latitude", "longitude", "speed", "heading", "accuracy"):
            value = getattr(self, name)
            if not math.isfinite(value):
                raise InvalidSampleError(f"{name} must be a finite number, got {value!r}")
        if not -90.0 <= self.latitude <= 90.0:
            raise InvalidSampleError(f"latitude out of range [-90,90]: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise InvalidSampleError(f"longitude out of range [-180,180]: {self.longitude}")
        if self.speed < 0:
            raise InvalidSampleError(f"speed must be >= 0, got {self.speed}")
        if self.timestamp.tzinfo is None:
            raise InvalidSampleError("timestamp must be timezone-aware")


@dataclass(frozen=True, slots=True)
class GeofenceRule:
    kind: RuleKind
    enabled: bool = True
    dwell_seconds: float | None = None
    window_start: time | None = None
    window_end: time | None = None
    tolerance_seconds: float = 0.0

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> GeofenceRule:
        """Build a rule from its stored/wire form (``dwell_time_minutes``, "HH:MM[:SS]" times)."""

        dwell_minutes = raw.get("dwell_time_minutes")
        return cls(
            kind=raw["type"],
            enabled=bool(raw.get("enabled", True)),
            dwell_seconds=float(dwell_minutes) * 60.0 if dwell_minutes is not None else None,
            window_start=_parse_time(raw.get("start_time")),
            window_end=_parse_time(raw.get("end_time")),
            tolerance_seconds=float(raw.get("tolerance_seconds") or 0.0),
        )


def _parse_time(value: Any) -> time | None:
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value))


@dataclass(frozen=True, slots=True)
class Geofence:
    """A named circle or polygon with its alerting rules.

    ``vertices`` are (lat, lon) pairs forming a simple ring; the closing
    vertex is implicit. An empty ``vehicle_ids`` applies the fence to all
    vehicles.
    """

    id: str
    name: str
    kind: GeofenceKind
    center: tuple[float, float] | None = None
    radius_m: float | None = None
    vertices: tuple[tuple[float, float], ...] = ()
    rules: tuple[GeofenceRule, ...] = ()
    vehicle_ids: frozenset[str] = field(default_factory=frozenset)
    active: bool = True

    def validate(self) -> None:
        if self.kind == "circle":
            if self.center is None:
                raise GeometryError(f"circle geofence {self.name!r} has no center")
            if self.radius_m is None or not self.radius_m > 0:
                raise GeometryError(f"circle geofence {self.name!r} needs radius > 0, got {self.radius_m}")
        elif self.kind == "polygon":
            if len(self.vertices) < 3:
                raise GeometryError(f"polygon geofence {self.name!r} needs >= 3 vertices, got {len(self.vertices)}")
        else:
            raise GeometryError(f"unknown geofence kind {self.kind!r}")

    def applies_to(self, vehicle_id: str) -> bool:
        return not self.vehicle_ids or vehicle_id in self.vehicle_ids

    def rule(self, kind: RuleKind) -> GeofenceRule | None:
        for rule in self.rules:
            if rule.kind == kind and rule.enabled:
                return rule
        return None

    def contains(self, latitude: float, longitude: float) -> bool:
        if self.kind == "circle":
            if self.center is None or self.radius_m is None:
                raise GeometryError(f"circle geofence {self.name!r} has no center or radius")
            return is_inside_circle(latitude, longitude, self.center[0], self.center[1], self.radius_m)
        return is_inside_polygon(latitude, longitude, self.vertices)


@dataclass(frozen=True, slots=True)
class GeofenceMembershipState:
    """Containment memory for one (vehicle, geofence) pair."""

    inside: bool = False
    entered_at: datetime | None = None
    last_evaluated: datetime | None = None
    dwell_reported: bool = False
    window_violation: bool = False


@dataclass(frozen=True, slots=True)
class SpeedViolationState:
    """Open speeding episode for one vehicle, if any."""

    in_violation: bool = False
    started_at: datetime | None = None
    peak_speed: float = 0.0
    start_latitude: float = 0.0
    start_longitude: float = 0.0
    speed_limit: float = 0.0
    last_evaluated: datetime | None = None

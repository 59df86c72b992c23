"""Route events and geofence alerts.

One frozen dataclass per kind so each event carries only its own fields.
``kind`` is a class-level tag matching the wire/storage name.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime, time
from typing import Any, ClassVar

ROUTE_EVENT_KINDS = frozenset(
    {"departure", "arrival", "stop", "speed_violation", "geofence_entry", "geofence_exit"}
)


@dataclass(frozen=True, slots=True)
class TrackingEvent:
    kind: ClassVar[str] = "event"

    vehicle_id: str
    timestamp: datetime
    latitude: float
    longitude: float

    @property
    def is_route_event(self) -> bool:
        return self.kind in ROUTE_EVENT_KINDS

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["type"] = self.kind
        for key, value in payload.items():
            if isinstance(value, (datetime, time)):
                payload[key] = value.isoformat()
        return payload


@dataclass(frozen=True, slots=True)
class Departure(TrackingEvent):
    kind: ClassVar[str] = "departure"


@dataclass(frozen=True, slots=True)
class Arrival(TrackingEvent):
    kind: ClassVar[str] = "arrival"


@dataclass(frozen=True, slots=True)
class Stop(TrackingEvent):
    kind: ClassVar[str] = "stop"

    duration_s: float


@dataclass(frozen=True, slots=True)
class SpeedViolation(TrackingEvent):
    """A closed speeding episode, timestamped at its start."""

    kind: ClassVar[str] = "speed_violation"

    duration_s: float
    speed: float
    speed_limit: float
    excess_speed: float


@dataclass(frozen=True, slots=True)
class GeofenceEntry(TrackingEvent):
    kind: ClassVar[str] = "geofence_entry"

    geofence_id: str
    geofence_name: str


@dataclass(frozen=True, slots=True)
class GeofenceExit(TrackingEvent):
    kind: ClassVar[str] = "geofence_exit"

    geofence_id: str
    geofence_name: str
    dwell_s: float


@dataclass(frozen=True, slots=True)
class GeofenceDwell(TrackingEvent):
    kind: ClassVar[str] = "geofence_dwell"

    geofence_id: str
    geofence_name: str
    dwell_s: float
    threshold_s: float


@dataclass(frozen=True, slots=True)
class GeofenceTimeViolation(TrackingEvent):
    kind: ClassVar[str] = "geofence_time_violation"

    geofence_id: str
    geofence_name: str
    window_start: time
    window_end: time

"""Trip segmentation and aggregation over a per-vehicle sample stream."""

from __future__ import annotations

import bisect
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from fleetwatch.tracking.entities import LocationSample
from fleetwatch.tracking.events import Arrival, Departure, Stop, TrackingEvent
from fleetwatch.tracking.geo import haversine_m

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TripConfig:
    """Thresholds controlling trip segmentation.

    Attributes:
        motion_threshold_kmh: Speeds above this count as moving.
        min_stop_seconds: A stopped run at least this long is recorded as a stop.
        trip_end_seconds: A stopped run at least this long closes the trip.
    """

    motion_threshold_kmh: float = 1.0
    min_stop_seconds: float = 120.0
    trip_end_seconds: float = 300.0

    def __post_init__(self) -> None:
        if self.trip_end_seconds <= self.min_stop_seconds:
            raise ValueError("trip_end_seconds must be greater than min_stop_seconds")


@dataclass(slots=True)
class Trip:
    vehicle_id: str
    start_time: datetime
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    end_time: datetime | None = None
    points: list[LocationSample] = field(default_factory=list)
    events: list[TrackingEvent] = field(default_factory=list)
    total_distance_m: float = 0.0
    travel_time_s: float = 0.0
    stopped_time_s: float = 0.0
    average_speed_kmh: float = 0.0
    max_speed_kmh: float = 0.0
    stops_count: int = 0

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def covers(self, ts: datetime) -> bool:
        if ts < self.start_time:
            return False
        return self.end_time is None or ts <= self.end_time

    def add_event(self, event: TrackingEvent) -> None:
        # equal timestamps keep arrival order
        bisect.insort_right(self.events, event, key=lambda e: e.timestamp)

    def refresh_average(self) -> None:
        if self.travel_time_s > 0:
            self.average_speed_kmh = self.total_distance_m * 3.6 / self.travel_time_s
        else:
            self.average_speed_kmh = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "vehicle_id": self.vehicle_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "total_distance_m": round(self.total_distance_m, 3),
            "travel_time_s": round(self.travel_time_s, 3),
            "stopped_time_s": round(self.stopped_time_s, 3),
            "average_speed_kmh": round(self.average_speed_kmh, 3),
            "max_speed_kmh": self.max_speed_kmh,
            "stops_count": self.stops_count,
            "points": [
                {
                    "latitude": p.latitude,
                    "longitude": p.longitude,
                    "speed": p.speed,
                    "heading": p.heading,
                    "accuracy": p.accuracy,
                    "timestamp": p.timestamp.isoformat(),
                }
                for p in self.points
            ],
            "events": [ev.to_dict() for ev in self.events],
        }


@dataclass(slots=True)
class _VehicleTrack:
    trip: Trip | None = None
    last_timestamp: datetime | None = None
    stop_started: LocationSample | None = None


class TripSegmenter:
    """Partitions each vehicle's samples into trips.

    Samples must arrive in time order per vehicle; a sample not newer than
    the last accepted one for its vehicle is ignored, so the
    points of a trip are always strictly increasing in time.
    """

    def __init__(self, config: TripConfig | None = None) -> None:
        self.config = config or TripConfig()
        self._tracks: dict[str, _VehicleTrack] = {}

    def _is_moving(self, sample: LocationSample) -> bool:
        return sample.speed > self.config.motion_threshold_kmh

    def active_trip(self, vehicle_id: str) -> Trip | None:
        track = self._tracks.get(vehicle_id)
        return track.trip if track else None

    def append_sample(self, vehicle_id: str, sample: LocationSample) -> tuple[Trip | None, Trip | None]:
        """Feed one sample.

        Returns:
            (open trip after this sample or None, trip closed by this sample or None)
        """

        track = self._tracks.setdefault(vehicle_id, _VehicleTrack())
        if track.last_timestamp is not None and sample.timestamp <= track.last_timestamp:
            logger.debug(
                "Rejected stale sample for %s at %s (last %s)",
                vehicle_id,
                sample.timestamp.isoformat(),
                track.last_timestamp.isoformat(),
            )
            return track.trip, None
        track.last_timestamp = sample.timestamp

        trip = track.trip
        if trip is None:
            if not self._is_moving(sample):
                return None, None
            trip = Trip(vehicle_id=vehicle_id, start_time=sample.timestamp)
            trip.points.append(sample)
            trip.max_speed_kmh = sample.speed
            trip.add_event(
                Departure(
                    vehicle_id=vehicle_id,
                    timestamp=sample.timestamp,
                    latitude=sample.latitude,
                    longitude=sample.longitude,
                )
            )
            track.trip = trip
            track.stop_started = None
            return trip, None

        prev = trip.points[-1]
        dt = (sample.timestamp - prev.timestamp).total_seconds()
        trip.total_distance_m += haversine_m(prev.latitude, prev.longitude, sample.latitude, sample.longitude)
        if self._is_moving(prev):
            trip.travel_time_s += dt
        else:
            trip.stopped_time_s += dt
        trip.points.append(sample)
        trip.max_speed_kmh = max(trip.max_speed_kmh, sample.speed)
        trip.refresh_average()

        if self._is_moving(sample):
            if track.stop_started is not None:
                self._record_stop(trip, track.stop_started, sample.timestamp)
                track.stop_started = None
            return trip, None

        if track.stop_started is None:
            track.stop_started = sample
            return trip, None

        stopped_for = (sample.timestamp - track.stop_started.timestamp).total_seconds()
        if stopped_for >= self.config.trip_end_seconds:
            return None, self._close(track, trip)
        return trip, None

    def mark_offline(self, vehicle_id: str) -> Trip | None:
        """Close the vehicle's open trip, if any, at its last point."""

        track = self._tracks.get(vehicle_id)
        if track is None or track.trip is None:
            return None
        return self._close(track, track.trip)

    def discard(self, vehicle_id: str) -> None:
        """Forget a vehicle, dropping its open trip without closing it."""

        self._tracks.pop(vehicle_id, None)

    def merge_event(self, vehicle_id: str, event: TrackingEvent, trip: Trip | None = None) -> bool:
        """Attach a route event to ``trip`` (the open trip by default) if it spans the event time."""

        trip = trip or self.active_trip(vehicle_id)
        if trip is None or not event.is_route_event or not trip.covers(event.timestamp):
            return False
        trip.add_event(event)
        return True

    def _record_stop(self, trip: Trip, started: LocationSample, until: datetime) -> None:
        duration = (until - started.timestamp).total_seconds()
        if duration < self.config.min_stop_seconds:
            return
        trip.add_event(
            Stop(
                vehicle_id=trip.vehicle_id,
                timestamp=started.timestamp,
                latitude=started.latitude,
                longitude=started.longitude,
                duration_s=duration,
            )
        )
        trip.stops_count += 1

    def _close(self, track: _VehicleTrack, trip: Trip) -> Trip:
        last = trip.points[-1]
        if track.stop_started is not None:
            self._record_stop(trip, track.stop_started, last.timestamp)
        trip.end_time = last.timestamp
        trip.refresh_average()
        trip.add_event(
            Arrival(
                vehicle_id=trip.vehicle_id,
                timestamp=last.timestamp,
                latitude=last.latitude,
                longitude=last.longitude,
            )
        )
        track.trip = None
        track.stop_started = None
        logger.debug("Closed trip %s for %s with %d points", trip.id, trip.vehicle_id, len(trip.points))
        return trip

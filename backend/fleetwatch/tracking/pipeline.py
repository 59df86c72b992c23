"""Per-vehicle evaluation pipeline.

Each vehicle owns a context (geofence membership states, speed episode
state) and a lock; samples of one vehicle are processed sequentially while
different vehicles never contend.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from typing import Iterable

from fleetwatch.tracking import geofence as geofence_engine
from fleetwatch.tracking import speed as speed_detector
from fleetwatch.tracking.entities import Geofence, GeofenceMembershipState, LocationSample, SpeedViolationState
from fleetwatch.tracking.events import TrackingEvent
from fleetwatch.tracking.trips import Trip, TripConfig, TripSegmenter

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class VehicleContext:
    vehicle_id: str
    memberships: dict[str, GeofenceMembershipState] = field(default_factory=dict)
    speed: SpeedViolationState = field(default_factory=SpeedViolationState)
    last_timestamp: datetime | None = None
    lock: threading.Lock = field(default_factory=threading.Lock)


@dataclass(slots=True)
class SampleOutcome:
    """What one sample produced.

    ``events`` holds every speed and geofence event in chronological order,
    including those that are alerts only (dwell, time window).
    ``trip_events`` holds the route events created for trips by this sample
    (departure, stop, arrival).
    """

    accepted: bool
    trip: Trip | None = None
    closed_trip: Trip | None = None
    events: list[TrackingEvent] = field(default_factory=list)
    trip_events: list[TrackingEvent] = field(default_factory=list)


class FleetTracker:
    def __init__(self, config: TripConfig | None = None, tz: tzinfo = timezone.utc) -> None:
        self.tz = tz
        self.segmenter = TripSegmenter(config)
        self._contexts: dict[str, VehicleContext] = {}
        self._registry_lock = threading.Lock()

    def context(self, vehicle_id: str) -> VehicleContext:
        with self._registry_lock:
            ctx = self._contexts.get(vehicle_id)
            if ctx is None:
                ctx = VehicleContext(vehicle_id=vehicle_id)
                self._contexts[vehicle_id] = ctx
            return ctx

    def process(
        self,
        sample: LocationSample,
        geofences: Iterable[Geofence] = (),
        speed_limit: float | None = None,
    ) -> SampleOutcome:
        vehicle_id = sample.vehicle_id
        ctx = self.context(vehicle_id)
        with ctx.lock:
            if ctx.last_timestamp is not None and sample.timestamp <= ctx.last_timestamp:
                logger.debug("Ignoring stale or duplicate sample for %s at %s", vehicle_id, sample.timestamp)
                return SampleOutcome(accepted=False, trip=self.segmenter.active_trip(vehicle_id))
            ctx.last_timestamp = sample.timestamp

            events: list[TrackingEvent] = []
            ctx.speed, violation = speed_detector.evaluate(vehicle_id, sample, speed_limit, ctx.speed)
            if violation is not None:
                events.append(violation)
            ctx.memberships, fence_events = geofence_engine.evaluate_all(
                vehicle_id, geofences, sample, ctx.memberships, tz=self.tz
            )
            events.extend(fence_events)
            events.sort(key=lambda e: e.timestamp)

            before = self.segmenter.active_trip(vehicle_id)
            known = {id(e) for e in before.events} if before else set()
            trip, closed = self.segmenter.append_sample(vehicle_id, sample)

            target = closed or trip
            trip_events: list[TrackingEvent] = []
            if target is not None:
                trip_events = [e for e in target.events if id(e) not in known]
                for event in events:
                    self.segmenter.merge_event(vehicle_id, event, target)

            return SampleOutcome(
                accepted=True,
                trip=trip,
                closed_trip=closed,
                events=events,
                trip_events=trip_events,
            )

    def mark_offline(self, vehicle_id: str) -> Trip | None:
        ctx = self.context(vehicle_id)
        with ctx.lock:
            # an episode cut short by going offline is never reported
            ctx.speed = SpeedViolationState()
            return self.segmenter.mark_offline(vehicle_id)

    def forget(self, vehicle_id: str) -> None:
        """Drop all state for a vehicle that no longer exists."""

        with self._registry_lock:
            self._contexts.pop(vehicle_id, None)
            self.segmenter.discard(vehicle_id)

    def active_trip(self, vehicle_id: str) -> Trip | None:
        return self.segmenter.active_trip(vehicle_id)

    def reset(self) -> None:
        with self._registry_lock:
            self._contexts.clear()
            self.segmenter = TripSegmenter(self.segmenter.config)

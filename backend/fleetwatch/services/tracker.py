from __future__ import annotations

from zoneinfo import ZoneInfo

from fleetwatch.core.config import settings
from fleetwatch.tracking.pipeline import FleetTracker
from fleetwatch.tracking.trips import TripConfig


def build_tracker() -> FleetTracker:
    config = TripConfig(
        motion_threshold_kmh=settings.motion_threshold_kmh,
        min_stop_seconds=settings.min_stop_seconds,
        trip_end_seconds=settings.trip_end_seconds,
    )
    return FleetTracker(config, tz=ZoneInfo(settings.timezone))


tracker = build_tracker()

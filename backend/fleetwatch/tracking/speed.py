"""Speed violation episodes.

A violation is reported once per continuous over-limit episode, when the
episode ends, not once per sample. An episode that never sees an
at-or-below-limit sample (vehicle went offline) is never reported.
"""

from __future__ import annotations

from dataclasses import replace

from fleetwatch.tracking.entities import LocationSample, SpeedViolationState
from fleetwatch.tracking.events import SpeedViolation


def evaluate(
    vehicle_id: str,
    sample: LocationSample,
    speed_limit: float | None,
    state: SpeedViolationState | None,
) -> tuple[SpeedViolationState, SpeedViolation | None]:
    prev = state or SpeedViolationState()
    if prev.last_evaluated is not None and sample.timestamp <= prev.last_evaluated:
        return prev, None
    if speed_limit is None:
        return replace(prev, last_evaluated=sample.timestamp), None

    now = sample.timestamp
    if sample.speed > speed_limit:
        if prev.in_violation:
            return replace(prev, peak_speed=max(prev.peak_speed, sample.speed), last_evaluated=now), None
        return (
            SpeedViolationState(
                in_violation=True,
                started_at=now,
                peak_speed=sample.speed,
                start_latitude=sample.latitude,
                start_longitude=sample.longitude,
                speed_limit=speed_limit,
                last_evaluated=now,
            ),
            None,
        )

    if not prev.in_violation or prev.started_at is None:
        return replace(prev, last_evaluated=now), None

    # reported against the limit in force when the episode started
    event = SpeedViolation(
        vehicle_id=vehicle_id,
        timestamp=prev.started_at,
        latitude=prev.start_latitude,
        longitude=prev.start_longitude,
        duration_s=(now - prev.started_at).total_seconds(),
        speed=prev.peak_speed,
        speed_limit=prev.speed_limit,
        excess_speed=prev.peak_speed - prev.speed_limit,
    )
    return SpeedViolationState(last_evaluated=now), event

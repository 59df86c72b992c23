"""Geofence containment and enter/exit/dwell/time-window transitions."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import time, timezone, tzinfo
from typing import Iterable, Mapping

from fleetwatch.tracking.entities import Geofence, GeofenceMembershipState, LocationSample
from fleetwatch.tracking.errors import GeometryError
from fleetwatch.tracking.events import (
    GeofenceDwell,
    GeofenceEntry,
    GeofenceExit,
    GeofenceTimeViolation,
    TrackingEvent,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400


def _seconds_of_day(value: time) -> float:
    return value.hour * 3600 + value.minute * 60 + value.second + value.microsecond / 1e6


def in_time_window(now: time, start: time, end: time, tolerance_s: float = 0.0) -> bool:
    """Whether a wall-clock time falls in [start - tol, end + tol].

    Windows with start > end wrap past midnight.
    """

    start_s = _seconds_of_day(start)
    span = (_seconds_of_day(end) - start_s) % SECONDS_PER_DAY + 2 * tolerance_s
    if span >= SECONDS_PER_DAY:
        return True
    offset = (_seconds_of_day(now) - (start_s - tolerance_s)) % SECONDS_PER_DAY
    return offset <= span


def _outside_window(start: time, end: time, tolerance_s: float, sample: LocationSample, tz: tzinfo) -> bool:
    local_now = sample.timestamp.astimezone(tz).time()
    return not in_time_window(local_now, start, end, tolerance_s)


def evaluate(
    vehicle_id: str,
    geofence: Geofence,
    sample: LocationSample,
    state: GeofenceMembershipState | None,
    *,
    tz: tzinfo = timezone.utc,
) -> tuple[GeofenceMembershipState, list[TrackingEvent]]:
    """Evaluate one sample against one geofence.

    Args:
        vehicle_id: Vehicle the sample belongs to.
        geofence: Fence to test.
        sample: New position.
        state: Previous membership state for this pair, or None on first sight.
        tz: Timezone the time-window rules are written in.

    Returns:
        The new membership state and the events this sample triggered.
        Stale samples (not newer than the last evaluation), inactive or
        non-applicable fences, and fences with degenerate geometry return
        the previous state unchanged and no events.
    """

    prev = state or GeofenceMembershipState()
    if not geofence.active or not geofence.applies_to(vehicle_id):
        return prev, []
    if prev.last_evaluated is not None and sample.timestamp <= prev.last_evaluated:
        return prev, []

    try:
        geofence.validate()
    except GeometryError as exc:
        logger.warning("Skipping geofence %s: %s", geofence.id, exc)
        return prev, []

    now = sample.timestamp
    inside = geofence.contains(sample.latitude, sample.longitude)
    events: list[TrackingEvent] = []
    where = {
        "vehicle_id": vehicle_id,
        "timestamp": now,
        "latitude": sample.latitude,
        "longitude": sample.longitude,
        "geofence_id": geofence.id,
        "geofence_name": geofence.name,
    }

    dwell_rule = geofence.rule("dwell")
    dwell_threshold = dwell_rule.dwell_seconds if dwell_rule and dwell_rule.dwell_seconds is not None else None

    if inside and not prev.inside:
        new_state = GeofenceMembershipState(inside=True, entered_at=now, last_evaluated=now)
        if geofence.rule("entry"):
            events.append(GeofenceEntry(**where))
    elif not inside and prev.inside:
        dwell_s = (now - prev.entered_at).total_seconds() if prev.entered_at else 0.0
        if geofence.rule("exit"):
            events.append(GeofenceExit(**where, dwell_s=dwell_s))
        # the threshold may have been crossed between the last inside sample and this one
        if dwell_threshold is not None and not prev.dwell_reported and dwell_s >= dwell_threshold:
            events.append(GeofenceDwell(**where, dwell_s=dwell_s, threshold_s=dwell_threshold))
        new_state = GeofenceMembershipState(inside=False, last_evaluated=now)
    elif inside:
        new_state = replace(prev, last_evaluated=now)
        dwell_s = (now - prev.entered_at).total_seconds() if prev.entered_at else 0.0
        if dwell_threshold is not None and not prev.dwell_reported and dwell_s >= dwell_threshold:
            events.append(GeofenceDwell(**where, dwell_s=dwell_s, threshold_s=dwell_threshold))
            new_state = replace(new_state, dwell_reported=True)
    else:
        new_state = replace(prev, last_evaluated=now)

    window_rule = geofence.rule("time_violation")
    start = window_rule.window_start if window_rule else None
    end = window_rule.window_end if window_rule else None
    if window_rule is not None and start is not None and end is not None:
        if inside and _outside_window(start, end, window_rule.tolerance_seconds, sample, tz):
            if not new_state.window_violation:
                events.append(GeofenceTimeViolation(**where, window_start=start, window_end=end))
                new_state = replace(new_state, window_violation=True)
        elif new_state.window_violation:
            new_state = replace(new_state, window_violation=False)

    return new_state, events


def evaluate_all(
    vehicle_id: str,
    geofences: Iterable[Geofence],
    sample: LocationSample,
    states: Mapping[str, GeofenceMembershipState],
    *,
    tz: tzinfo = timezone.utc,
) -> tuple[dict[str, GeofenceMembershipState], list[TrackingEvent]]:
    """Run every geofence for one sample; returns updated states keyed by geofence id."""

    new_states = dict(states)
    events: list[TrackingEvent] = []
    for fence in geofences:
        new_state, fence_events = evaluate(vehicle_id, fence, sample, states.get(fence.id), tz=tz)
        new_states[fence.id] = new_state
        events.extend(fence_events)
    return new_states, events

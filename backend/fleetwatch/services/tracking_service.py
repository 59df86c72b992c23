from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from fleetwatch.core.config import settings
from fleetwatch.models import Alert, Geofence, LocationPoint, SpeedViolation, Trip, TripEvent, Vehicle
from fleetwatch.schemas.telemetry import OfflineOut, TelemetryIn, TelemetryOut
from fleetwatch.services.tracker import tracker
from fleetwatch.tracking import entities, events
from fleetwatch.tracking.pipeline import FleetTracker
from fleetwatch.tracking.trips import Trip as TripRecord

logger = logging.getLogger(__name__)

CRITICAL_EXCESS_KMH = 20.0

ALERT_TYPES: dict[str, str] = {
    "speed_violation": "speed",
    "geofence_entry": "geofence_entry",
    "geofence_exit": "geofence_exit",
    "geofence_dwell": "geofence_dwell",
    "geofence_time_violation": "geofence_time_violation",
}


def normalize_plate(plate: str) -> str:
    return re.sub(r"[-\s]", "", plate).upper()


def vehicle_status(speed: float) -> str:
    if speed > 1:
        return "moving"
    if speed > 0:
        return "idle"
    return "stopped"


def to_db_time(dt: datetime) -> datetime:
    """Aware datetimes are stored as naive UTC."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def find_vehicle(db: Session, payload: TelemetryIn) -> Vehicle | None:
    if payload.vehicle_id:
        return db.get(Vehicle, payload.vehicle_id)
    if not payload.license_plate:
        return None
    wanted = normalize_plate(payload.license_plate)
    for vehicle in db.execute(select(Vehicle)).scalars():
        if normalize_plate(vehicle.license_plate) == wanted:
            return vehicle
    return None


def geofence_from_row(row: Geofence) -> entities.Geofence:
    points = json.loads(row.points_json or "[]")
    center = (row.center_lat, row.center_lon) if row.center_lat is not None and row.center_lon is not None else None
    return entities.Geofence(
        id=row.id,
        name=row.name,
        kind=row.kind,  # type: ignore[arg-type]
        center=center,
        radius_m=row.radius_m,
        vertices=tuple((float(p["latitude"]), float(p["longitude"])) for p in points),
        rules=tuple(entities.GeofenceRule.from_dict(r) for r in json.loads(row.rules_json or "[]")),
        vehicle_ids=frozenset(json.loads(row.vehicle_ids_json or "[]")),
        active=row.active,
    )


def load_geofences(db: Session) -> list[entities.Geofence]:
    rows = db.execute(select(Geofence).where(Geofence.active.is_(True))).scalars().all()
    return [geofence_from_row(r) for r in rows]


def _alert_message(vehicle: Vehicle, ev: events.TrackingEvent) -> tuple[str, str]:
    if isinstance(ev, events.SpeedViolation):
        priority = "critical" if ev.excess_speed >= CRITICAL_EXCESS_KMH else "warning"
        return priority, (
            f"{vehicle.name} exceeded the {ev.speed_limit:.0f} km/h limit by {ev.excess_speed:.1f} km/h "
            f"for {ev.duration_s:.0f}s"
        )
    if isinstance(ev, events.GeofenceEntry):
        return "info", f"{vehicle.name} entered {ev.geofence_name}"
    if isinstance(ev, events.GeofenceExit):
        return "info", f"{vehicle.name} left {ev.geofence_name} after {ev.dwell_s / 60:.0f} min"
    if isinstance(ev, events.GeofenceDwell):
        return "warning", (
            f"{vehicle.name} has stayed in {ev.geofence_name} for {ev.dwell_s / 60:.0f} min "
            f"(limit {ev.threshold_s / 60:.0f} min)"
        )
    if isinstance(ev, events.GeofenceTimeViolation):
        return "warning", (
            f"{vehicle.name} is in {ev.geofence_name} outside allowed hours "
            f"{ev.window_start.strftime('%H:%M')}-{ev.window_end.strftime('%H:%M')}"
        )
    return "info", f"{vehicle.name}: {ev.kind}"


def _record_event(db: Session, vehicle: Vehicle, ev: events.TrackingEvent) -> None:
    alert_type = ALERT_TYPES.get(ev.kind)
    if alert_type is None:
        return
    priority, message = _alert_message(vehicle, ev)
    db.add(
        Alert(
            type=alert_type,
            priority=priority,
            vehicle_id=vehicle.id,
            vehicle_name=vehicle.name,
            message=message,
            latitude=ev.latitude,
            longitude=ev.longitude,
            speed=getattr(ev, "speed", None),
            speed_limit=getattr(ev, "speed_limit", None),
            geofence_name=getattr(ev, "geofence_name", None),
            timestamp=to_db_time(ev.timestamp),
        )
    )

    if isinstance(ev, events.SpeedViolation):
        db.add(
            SpeedViolation(
                vehicle_id=vehicle.id,
                vehicle_name=vehicle.name,
                speed=ev.speed,
                speed_limit=ev.speed_limit,
                excess_speed=ev.excess_speed,
                latitude=ev.latitude,
                longitude=ev.longitude,
                duration_s=ev.duration_s,
                timestamp=to_db_time(ev.timestamp),
            )
        )

    geofence_id = getattr(ev, "geofence_id", None)
    if geofence_id:
        fence = db.get(Geofence, geofence_id)
        if fence:
            fence.last_triggered = to_db_time(ev.timestamp)

    logger.info("Alert %s for vehicle %s: %s", alert_type, vehicle.id, message)


def persist_trip(db: Session, trip: TripRecord) -> Trip:
    row = Trip(
        id=trip.id,
        vehicle_id=trip.vehicle_id,
        start_time=to_db_time(trip.start_time),
        end_time=to_db_time(trip.end_time or trip.points[-1].timestamp),
        total_distance_m=trip.total_distance_m,
        travel_time_s=trip.travel_time_s,
        stopped_time_s=trip.stopped_time_s,
        average_speed_kmh=trip.average_speed_kmh,
        max_speed_kmh=trip.max_speed_kmh,
        stops_count=trip.stops_count,
    )
    row.points = [
        LocationPoint(
            latitude=p.latitude,
            longitude=p.longitude,
            speed=p.speed,
            heading=p.heading,
            accuracy=p.accuracy,
            timestamp=to_db_time(p.timestamp),
        )
        for p in trip.points
    ]
    row.events = [
        TripEvent(
            type=ev.kind,
            latitude=ev.latitude,
            longitude=ev.longitude,
            timestamp=to_db_time(ev.timestamp),
            duration_s=getattr(ev, "duration_s", None),
            speed=getattr(ev, "speed", None),
            speed_limit=getattr(ev, "speed_limit", None),
            geofence_name=getattr(ev, "geofence_name", None),
        )
        for ev in trip.events
    ]
    db.add(row)
    logger.info(
        "Stored trip %s for vehicle %s: %.0f m, %d points, %d stops",
        trip.id,
        trip.vehicle_id,
        trip.total_distance_m,
        len(trip.points),
        trip.stops_count,
    )
    return row


def _update_live_state(db: Session, vehicle: Vehicle, sample: entities.LocationSample, status: str) -> None:
    # only a sample newer than the stored one moves the live position
    sampled_at = to_db_time(sample.timestamp)
    db.execute(
        update(Vehicle)
        .where(Vehicle.id == vehicle.id, or_(Vehicle.last_update.is_(None), Vehicle.last_update < sampled_at))
        .values(
            latitude=sample.latitude,
            longitude=sample.longitude,
            current_speed=sample.speed,
            heading=sample.heading,
            accuracy=sample.accuracy,
            status=status,
            last_update=sampled_at,
        )
        .execution_options(synchronize_session=False)
    )


def ingest_sample(
    db: Session,
    vehicle: Vehicle,
    payload: TelemetryIn,
    fleet: FleetTracker = tracker,
) -> TelemetryOut:
    """Evaluate one telemetry sample and persist its consequences.

    Raises:
        InvalidSampleError: If the sample carries non-finite values.
    """

    received_at = datetime.now(timezone.utc)
    sample = entities.LocationSample(
        vehicle_id=vehicle.id,
        latitude=payload.latitude,
        longitude=payload.longitude,
        speed=payload.speed,
        heading=payload.heading,
        accuracy=payload.accuracy,
        timestamp=payload.timestamp or received_at,
    )
    speed_limit = vehicle.speed_limit if vehicle.speed_limit is not None else settings.default_speed_limit_kmh
    outcome = fleet.process(sample, load_geofences(db), speed_limit)

    if outcome.accepted:
        _update_live_state(db, vehicle, sample, vehicle_status(sample.speed))

        for ev in outcome.events:
            _record_event(db, vehicle, ev)
        if outcome.closed_trip is not None:
            persist_trip(db, outcome.closed_trip)
        db.commit()
        db.refresh(vehicle)

    emitted = sorted([*outcome.trip_events, *outcome.events], key=lambda e: e.timestamp)
    return TelemetryOut(
        accepted=outcome.accepted,
        vehicle_id=vehicle.id,
        status=vehicle.status,
        received_at=received_at,
        trip_id=outcome.trip.id if outcome.trip else None,
        closed_trip_id=outcome.closed_trip.id if outcome.closed_trip else None,
        events=[ev.kind for ev in emitted],
    )


def mark_vehicle_offline(db: Session, vehicle: Vehicle, fleet: FleetTracker = tracker) -> OfflineOut:
    closed = fleet.mark_offline(vehicle.id)
    vehicle.status = "offline"
    vehicle.current_speed = 0.0
    if closed is not None:
        persist_trip(db, closed)
    db.commit()
    return OfflineOut(vehicle_id=vehicle.id, status=vehicle.status, closed_trip_id=closed.id if closed else None)

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import FileResponse
from sqlalchemy import desc, select, update
from sqlalchemy.orm import Session

from fleetwatch.core.config import settings
from fleetwatch.db import get_db
from fleetwatch.models import Alert, Geofence, Trip, Vehicle
from fleetwatch.schemas.geofence import GeofenceIn, GeofenceOut, GeofenceUpdate, GeoPoint, check_geometry
from fleetwatch.schemas.report import AlertIn, AlertOut, DashboardStats, SpeedStats, SpeedViolationOut
from fleetwatch.schemas.telemetry import OfflineOut, TelemetryIn, TelemetryOut
from fleetwatch.schemas.trip import LocationPointOut, RouteEventOut, TripDetailOut, TripOut
from fleetwatch.schemas.vehicle import VehicleCreate, VehicleOut, VehicleUpdate
from fleetwatch.services import report_service, tracking_service
from fleetwatch.services.tracker import tracker
from fleetwatch.tracking.errors import InvalidSampleError
from fleetwatch.tracking.trips import Trip as TripRecord

router = APIRouter()


def _vehicle_to_out(vehicle: Vehicle) -> VehicleOut:
    return VehicleOut(
        id=vehicle.id,
        name=vehicle.name,
        license_plate=vehicle.license_plate,
        model=vehicle.model,
        status=vehicle.status,
        speed_limit=vehicle.speed_limit,
        current_speed=vehicle.current_speed,
        heading=vehicle.heading,
        latitude=vehicle.latitude,
        longitude=vehicle.longitude,
        accuracy=vehicle.accuracy,
        last_update=vehicle.last_update,
    )


def _geofence_to_out(row: Geofence) -> GeofenceOut:
    points = json.loads(row.points_json or "[]")
    return GeofenceOut(
        id=row.id,
        name=row.name,
        description=row.description,
        type=row.kind,
        active=row.active,
        center=(
            GeoPoint(latitude=row.center_lat, longitude=row.center_lon)
            if row.center_lat is not None and row.center_lon is not None
            else None
        ),
        radius=row.radius_m,
        points=[GeoPoint(**p) for p in points] or None,
        rules=json.loads(row.rules_json or "[]"),
        vehicle_ids=json.loads(row.vehicle_ids_json or "[]"),
        color=row.color,
        last_triggered=row.last_triggered,
    )


def _trip_to_out(trip: Trip) -> TripOut:
    return TripOut(
        id=trip.id,
        vehicle_id=trip.vehicle_id,
        start_time=trip.start_time,
        end_time=trip.end_time,
        total_distance_m=trip.total_distance_m,
        travel_time_s=trip.travel_time_s,
        stopped_time_s=trip.stopped_time_s,
        average_speed_kmh=trip.average_speed_kmh,
        max_speed_kmh=trip.max_speed_kmh,
        stops_count=trip.stops_count,
    )


def _trip_to_detail(trip: Trip) -> TripDetailOut:
    return TripDetailOut(
        **_trip_to_out(trip).model_dump(),
        points=[
            LocationPointOut(
                latitude=p.latitude,
                longitude=p.longitude,
                speed=p.speed,
                heading=p.heading,
                accuracy=p.accuracy,
                timestamp=p.timestamp,
            )
            for p in trip.points
        ],
        events=[
            RouteEventOut(
                type=ev.type,
                latitude=ev.latitude,
                longitude=ev.longitude,
                timestamp=ev.timestamp,
                duration_s=ev.duration_s,
                speed=ev.speed,
                speed_limit=ev.speed_limit,
                geofence_name=ev.geofence_name,
            )
            for ev in trip.events
        ],
    )


def _open_trip_to_detail(trip: TripRecord) -> TripDetailOut:
    payload = trip.to_dict()
    events = [
        RouteEventOut(
            type=ev.kind,
            latitude=ev.latitude,
            longitude=ev.longitude,
            timestamp=ev.timestamp,
            duration_s=getattr(ev, "duration_s", None),
            speed=getattr(ev, "speed", None),
            speed_limit=getattr(ev, "speed_limit", None),
            geofence_name=getattr(ev, "geofence_name", None),
        )
        for ev in trip.events
    ]
    payload.pop("events")
    return TripDetailOut(**payload, events=events)


def _alert_to_out(alert: Alert) -> AlertOut:
    return AlertOut(
        id=alert.id,
        type=alert.type,
        priority=alert.priority,
        vehicle_id=alert.vehicle_id,
        vehicle_name=alert.vehicle_name,
        message=alert.message,
        read=alert.read,
        timestamp=alert.timestamp,
        latitude=alert.latitude,
        longitude=alert.longitude,
        speed=alert.speed,
        speed_limit=alert.speed_limit,
        geofence_name=alert.geofence_name,
    )


def _get_vehicle(db: Session, vehicle_id: str) -> Vehicle:
    vehicle = db.get(Vehicle, vehicle_id)
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    return vehicle


def _get_geofence(db: Session, geofence_id: str) -> Geofence:
    row = db.get(Geofence, geofence_id)
    if not row:
        raise HTTPException(status_code=404, detail="Geofence not found")
    return row


# telemetry


@router.post("/telemetry", response_model=TelemetryOut)
def post_telemetry(payload: TelemetryIn, db: Session = Depends(get_db)) -> TelemetryOut:
    vehicle = tracking_service.find_vehicle(db, payload)
    if not vehicle:
        raise HTTPException(status_code=404, detail="Vehicle not found")
    try:
        return tracking_service.ingest_sample(db, vehicle, payload)
    except InvalidSampleError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


@router.post("/vehicles/{vehicle_id}/offline", response_model=OfflineOut)
def vehicle_offline(vehicle_id: str, db: Session = Depends(get_db)) -> OfflineOut:
    vehicle = _get_vehicle(db, vehicle_id)
    return tracking_service.mark_vehicle_offline(db, vehicle)


# vehicles


@router.get("/vehicles", response_model=list[VehicleOut])
def list_vehicles(db: Session = Depends(get_db)) -> list[VehicleOut]:
    rows = db.execute(select(Vehicle).order_by(Vehicle.name)).scalars().all()
    return [_vehicle_to_out(v) for v in rows]


@router.post("/vehicles", response_model=VehicleOut, status_code=201)
def create_vehicle(body: VehicleCreate, db: Session = Depends(get_db)) -> VehicleOut:
    plate = tracking_service.normalize_plate(body.license_plate)
    for existing in db.execute(select(Vehicle.license_plate)).scalars():
        if tracking_service.normalize_plate(existing) == plate:
            raise HTTPException(status_code=409, detail="License plate already registered")

    vehicle = Vehicle(
        id=str(uuid.uuid4()),
        name=body.name,
        license_plate=body.license_plate,
        model=body.model,
        speed_limit=body.speed_limit,
        latitude=body.latitude,
        longitude=body.longitude,
        status="offline",
    )
    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)
    return _vehicle_to_out(vehicle)


@router.get("/vehicles/{vehicle_id}", response_model=VehicleOut)
def get_vehicle(vehicle_id: str, db: Session = Depends(get_db)) -> VehicleOut:
    return _vehicle_to_out(_get_vehicle(db, vehicle_id))


@router.patch("/vehicles/{vehicle_id}", response_model=VehicleOut)
def update_vehicle(vehicle_id: str, body: VehicleUpdate, db: Session = Depends(get_db)) -> VehicleOut:
    vehicle = _get_vehicle(db, vehicle_id)
    for key, value in body.model_dump(exclude_unset=True).items():
        setattr(vehicle, key, value)
    db.commit()
    return _vehicle_to_out(vehicle)


@router.delete("/vehicles/{vehicle_id}", status_code=204)
def delete_vehicle(vehicle_id: str, db: Session = Depends(get_db)) -> Response:
    vehicle = _get_vehicle(db, vehicle_id)
    db.delete(vehicle)
    db.commit()
    tracker.forget(vehicle_id)
    return Response(status_code=204)


@router.get("/vehicles/{vehicle_id}/trips", response_model=list[TripDetailOut])
def list_vehicle_trips(
    vehicle_id: str,
    date_from: datetime | None = Query(default=None, alias="from"),
    date_to: datetime | None = Query(default=None, alias="to"),
    db: Session = Depends(get_db),
) -> list[TripDetailOut]:
    _get_vehicle(db, vehicle_id)
    query = select(Trip).where(Trip.vehicle_id == vehicle_id)
    if date_from is not None:
        query = query.where(Trip.start_time >= tracking_service.to_db_time(date_from))
    if date_to is not None:
        query = query.where(Trip.end_time <= tracking_service.to_db_time(date_to))
    rows = db.execute(query.order_by(desc(Trip.start_time))).scalars().all()
    return [_trip_to_detail(t) for t in rows]


@router.get("/vehicles/{vehicle_id}/active-trip", response_model=TripDetailOut)
def get_active_trip(vehicle_id: str, db: Session = Depends(get_db)) -> TripDetailOut:
    _get_vehicle(db, vehicle_id)
    trip = tracker.active_trip(vehicle_id)
    if trip is None:
        raise HTTPException(status_code=404, detail="No active trip")
    return _open_trip_to_detail(trip)


# geofences


@router.get("/geofences", response_model=list[GeofenceOut])
def list_geofences(db: Session = Depends(get_db)) -> list[GeofenceOut]:
    rows = db.execute(select(Geofence).order_by(Geofence.name)).scalars().all()
    return [_geofence_to_out(r) for r in rows]


@router.post("/geofences", response_model=GeofenceOut, status_code=201)
def create_geofence(body: GeofenceIn, db: Session = Depends(get_db)) -> GeofenceOut:
    row = Geofence(
        id=str(uuid.uuid4()),
        name=body.name,
        description=body.description,
        kind=body.type,
        active=body.active,
        center_lat=body.center.latitude if body.center else None,
        center_lon=body.center.longitude if body.center else None,
        radius_m=body.radius,
        points_json=json.dumps([p.model_dump() for p in body.points or []]),
        rules_json=json.dumps([r.model_dump(mode="json") for r in body.rules]),
        vehicle_ids_json=json.dumps(body.vehicle_ids),
        color=body.color,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return _geofence_to_out(row)


@router.get("/geofences/{geofence_id}", response_model=GeofenceOut)
def get_geofence(geofence_id: str, db: Session = Depends(get_db)) -> GeofenceOut:
    return _geofence_to_out(_get_geofence(db, geofence_id))


def _apply_geometry(row: Geofence, body: GeofenceUpdate) -> None:
    current = _geofence_to_out(row)
    fields = body.model_fields_set
    kind = body.type if "type" in fields and body.type else row.kind
    center = body.center if "center" in fields else current.center
    radius = body.radius if "radius" in fields else current.radius
    points = body.points if "points" in fields else current.points
    try:
        check_geometry(kind, center, radius, points)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    row.kind = kind
    row.center_lat = center.latitude if center else None
    row.center_lon = center.longitude if center else None
    row.radius_m = radius
    row.points_json = json.dumps([p.model_dump() for p in points or []])


@router.patch("/geofences/{geofence_id}", response_model=GeofenceOut)
def update_geofence(geofence_id: str, body: GeofenceUpdate, db: Session = Depends(get_db)) -> GeofenceOut:
    row = _get_geofence(db, geofence_id)
    geometry_fields = {"type", "center", "radius", "points"}
    if geometry_fields & body.model_fields_set:
        _apply_geometry(row, body)
    changes = body.model_dump(exclude_unset=True, exclude=geometry_fields, mode="json")
    if "rules" in changes:
        row.rules_json = json.dumps(changes.pop("rules") or [])
    if "vehicle_ids" in changes:
        row.vehicle_ids_json = json.dumps(changes.pop("vehicle_ids") or [])
    for key, value in changes.items():
        setattr(row, key, value)
    db.commit()
    return _geofence_to_out(row)


@router.delete("/geofences/{geofence_id}")
def delete_geofence(geofence_id: str, db: Session = Depends(get_db)) -> dict:
    row = _get_geofence(db, geofence_id)
    db.delete(row)
    db.commit()
    return {"deleted": geofence_id}


# trips


@router.get("/trips", response_model=list[TripOut])
def list_trips(vehicle_id: str | None = None, limit: int = 50, db: Session = Depends(get_db)) -> list[TripOut]:
    query = select(Trip)
    if vehicle_id:
        query = query.where(Trip.vehicle_id == vehicle_id)
    rows = db.execute(query.order_by(desc(Trip.start_time)).limit(max(1, min(limit, 500)))).scalars().all()
    return [_trip_to_out(t) for t in rows]


@router.get("/trips/{trip_id}", response_model=TripDetailOut)
def get_trip(trip_id: str, db: Session = Depends(get_db)) -> TripDetailOut:
    trip = db.get(Trip, trip_id)
    if not trip:
        raise HTTPException(status_code=404, detail="Trip not found")
    return _trip_to_detail(trip)


@router.get("/trips/{trip_id}/report.pdf")
def get_trip_report(trip_id: str, db: Session = Depends(get_db)) -> FileResponse:
    trip = db.get(Trip, trip_id)
    if not trip:
        raise HTTPException(status_code=404, detail="Trip not found")
    out_pdf = Path(settings.report_dir) / "trips" / trip_id / "report.pdf"
    if not out_pdf.exists():
        report_service.write_trip_pdf(trip, trip.vehicle.name, out_pdf)
    return FileResponse(out_pdf, media_type="application/pdf", filename=f"trip_{trip_id}.pdf")


# alerts


@router.get("/alerts", response_model=list[AlertOut])
def list_alerts(unread: bool = False, limit: int = 100, db: Session = Depends(get_db)) -> list[AlertOut]:
    query = select(Alert)
    if unread:
        query = query.where(Alert.read.is_(False))
    rows = db.execute(query.order_by(desc(Alert.timestamp), desc(Alert.id)).limit(max(1, min(limit, 1000)))).scalars().all()
    return [_alert_to_out(a) for a in rows]


@router.post("/alerts", response_model=AlertOut, status_code=201)
def create_alert(body: AlertIn, db: Session = Depends(get_db)) -> AlertOut:
    vehicle = _get_vehicle(db, body.vehicle_id)
    alert = Alert(
        type=body.type,
        priority=body.priority,
        vehicle_id=vehicle.id,
        vehicle_name=vehicle.name,
        message=body.message,
        latitude=body.latitude,
        longitude=body.longitude,
        speed=body.speed,
        speed_limit=body.speed_limit,
        geofence_name=body.geofence_name,
        timestamp=tracking_service.to_db_time(body.timestamp or datetime.now(timezone.utc)),
    )
    db.add(alert)
    db.commit()
    db.refresh(alert)
    return _alert_to_out(alert)


@router.patch("/alerts/read-all")
def mark_all_alerts_read(db: Session = Depends(get_db)) -> dict:
    result = db.execute(update(Alert).where(Alert.read.is_(False)).values(read=True))
    db.commit()
    return {"updated": result.rowcount}


@router.patch("/alerts/{alert_id}/read", response_model=AlertOut)
def mark_alert_read(alert_id: int, db: Session = Depends(get_db)) -> AlertOut:
    alert = db.get(Alert, alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    alert.read = True
    db.commit()
    return _alert_to_out(alert)


@router.delete("/alerts/{alert_id}")
def delete_alert(alert_id: int, db: Session = Depends(get_db)) -> dict:
    alert = db.get(Alert, alert_id)
    if not alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    db.delete(alert)
    db.commit()
    return {"deleted": alert_id}


# reports


@router.get("/reports/speed-stats", response_model=SpeedStats)
def get_speed_stats(
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    db: Session = Depends(get_db),
) -> SpeedStats:
    return report_service.speed_stats(
        db,
        tracking_service.to_db_time(date_from) if date_from else None,
        tracking_service.to_db_time(date_to) if date_to else None,
    )


@router.get("/reports/violations", response_model=list[SpeedViolationOut])
def get_violations(
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    db: Session = Depends(get_db),
) -> list[SpeedViolationOut]:
    rows = report_service.list_violations(
        db,
        tracking_service.to_db_time(date_from) if date_from else None,
        tracking_service.to_db_time(date_to) if date_to else None,
    )
    return [
        SpeedViolationOut(
            id=r.id,
            vehicle_id=r.vehicle_id,
            vehicle_name=r.vehicle_name,
            speed=r.speed,
            speed_limit=r.speed_limit,
            excess_speed=r.excess_speed,
            latitude=r.latitude,
            longitude=r.longitude,
            duration_s=r.duration_s,
            timestamp=r.timestamp,
        )
        for r in rows
    ]


@router.get("/stats", response_model=DashboardStats)
def get_dashboard_stats(db: Session = Depends(get_db)) -> DashboardStats:
    return report_service.dashboard_stats(db)

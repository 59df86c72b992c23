from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from pathlib import Path

import numpy as np
from fpdf import FPDF
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from fleetwatch.models import Alert, Geofence, SpeedViolation, Trip, Vehicle
from fleetwatch.schemas.report import DailyCount, DashboardStats, SpeedStats, TopViolator

TOP_VIOLATORS = 10


def list_violations(db: Session, date_from: datetime | None = None, date_to: datetime | None = None) -> list[SpeedViolation]:
    query = select(SpeedViolation)
    if date_from is not None:
        query = query.where(SpeedViolation.timestamp >= date_from)
    if date_to is not None:
        query = query.where(SpeedViolation.timestamp <= date_to)
    return list(db.execute(query.order_by(SpeedViolation.timestamp.desc())).scalars().all())


def speed_stats(db: Session, date_from: datetime | None = None, date_to: datetime | None = None) -> SpeedStats:
    rows = list_violations(db, date_from, date_to)
    if not rows:
        return SpeedStats()

    excess = np.array([r.excess_speed for r in rows], dtype=np.float64)

    by_day: dict[str, int] = defaultdict(int)
    for r in rows:
        by_day[r.timestamp.date().isoformat()] += 1

    per_vehicle: dict[str, list[SpeedViolation]] = defaultdict(list)
    for r in rows:
        per_vehicle[r.vehicle_id].append(r)

    top = [
        TopViolator(
            vehicle_id=vehicle_id,
            vehicle_name=items[0].vehicle_name,
            total_violations=len(items),
            average_excess_speed=round(float(np.mean([i.excess_speed for i in items])), 2),
            last_violation=max(i.timestamp for i in items),
        )
        for vehicle_id, items in per_vehicle.items()
    ]
    top.sort(key=lambda t: (-t.total_violations, t.vehicle_id))

    return SpeedStats(
        total_violations=len(rows),
        vehicles_with_violations=len(per_vehicle),
        average_excess_speed=round(float(np.mean(excess)), 2),
        p95_excess_speed=round(float(np.percentile(excess, 95)), 2),
        violations_by_day=[DailyCount(date=d, count=c) for d, c in sorted(by_day.items())],
        top_violators=top[:TOP_VIOLATORS],
    )


def dashboard_stats(db: Session) -> DashboardStats:
    def count(query) -> int:
        return int(db.execute(query).scalar_one())

    return DashboardStats(
        total_vehicles=count(select(func.count()).select_from(Vehicle)),
        active_vehicles=count(select(func.count()).select_from(Vehicle).where(Vehicle.status != "offline")),
        moving_vehicles=count(select(func.count()).select_from(Vehicle).where(Vehicle.status == "moving")),
        total_alerts=count(select(func.count()).select_from(Alert)),
        unread_alerts=count(select(func.count()).select_from(Alert).where(Alert.read.is_(False))),
        total_geofences=count(select(func.count()).select_from(Geofence)),
        active_geofences=count(select(func.count()).select_from(Geofence).where(Geofence.active.is_(True))),
    )


def _hhmmss(seconds: float) -> str:
    s = int(round(seconds))
    return f"{s // 3600:02d}:{(s % 3600) // 60:02d}:{s % 60:02d}"


def write_trip_pdf(trip: Trip, vehicle_name: str, out_pdf: Path) -> None:
    pdf = FPDF()
    pdf.add_page()
    pdf.set_font("Helvetica", "B", 16)
    pdf.cell(0, 10, "Trip Report", ln=1)

    pdf.set_font("Helvetica", size=11)
    pdf.cell(0, 8, f"Trip ID: {trip.id}", ln=1)
    pdf.cell(0, 8, f"Vehicle: {vehicle_name}", ln=1)
    pdf.cell(0, 8, f"Start: {trip.start_time.isoformat(sep=' ')} UTC", ln=1)
    pdf.cell(0, 8, f"End: {trip.end_time.isoformat(sep=' ')} UTC", ln=1)

    pdf.ln(4)
    pdf.set_font("Helvetica", "B", 13)
    pdf.cell(0, 8, "Summary", ln=1)
    pdf.set_font("Helvetica", size=11)
    pdf.cell(0, 7, f"Distance: {trip.total_distance_m / 1000.0:.2f} km", ln=1)
    pdf.cell(0, 7, f"Travel time: {_hhmmss(trip.travel_time_s)}", ln=1)
    pdf.cell(0, 7, f"Stopped time: {_hhmmss(trip.stopped_time_s)}", ln=1)
    pdf.cell(0, 7, f"Average speed: {trip.average_speed_kmh:.1f} km/h", ln=1)
    pdf.cell(0, 7, f"Max speed: {trip.max_speed_kmh:.1f} km/h", ln=1)
    pdf.cell(0, 7, f"Stops: {trip.stops_count}", ln=1)

    pdf.ln(4)
    pdf.set_font("Helvetica", "B", 13)
    pdf.cell(0, 8, "Events", ln=1)
    pdf.set_font("Helvetica", size=10)

    for ev in trip.events[:40]:
        line = f"{ev.timestamp.strftime('%H:%M:%S')} | {ev.type}"
        if ev.geofence_name:
            line += f" | {ev.geofence_name}"
        if ev.duration_s is not None:
            line += f" | {_hhmmss(ev.duration_s)}"
        if ev.speed is not None and ev.speed_limit is not None:
            line += f" | {ev.speed:.0f}/{ev.speed_limit:.0f} km/h"
        pdf.cell(0, 6, line[:110], ln=1)

    out_pdf.parent.mkdir(parents=True, exist_ok=True)
    pdf.output(str(out_pdf))

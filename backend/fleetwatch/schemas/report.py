from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class AlertIn(BaseModel):
    type: Literal["speed", "geofence_entry", "geofence_exit", "geofence_dwell", "geofence_time_violation"]
    priority: Literal["critical", "warning", "info"] = "info"
    vehicle_id: str
    message: str = Field(min_length=1)
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    speed: float | None = Field(default=None, ge=0.0)
    speed_limit: float | None = Field(default=None, gt=0.0)
    geofence_name: str | None = None
    timestamp: datetime | None = None


class AlertOut(BaseModel):
    id: int
    type: str
    priority: str
    vehicle_id: str
    vehicle_name: str
    message: str
    read: bool
    timestamp: datetime
    latitude: float | None = None
    longitude: float | None = None
    speed: float | None = None
    speed_limit: float | None = None
    geofence_name: str | None = None


class SpeedViolationOut(BaseModel):
    id: int
    vehicle_id: str
    vehicle_name: str
    speed: float
    speed_limit: float
    excess_speed: float
    latitude: float
    longitude: float
    duration_s: float
    timestamp: datetime


class DailyCount(BaseModel):
    date: str
    count: int


class TopViolator(BaseModel):
    vehicle_id: str
    vehicle_name: str
    total_violations: int
    average_excess_speed: float
    last_violation: datetime


class SpeedStats(BaseModel):
    total_violations: int = 0
    vehicles_with_violations: int = 0
    average_excess_speed: float = 0.0
    p95_excess_speed: float = 0.0
    violations_by_day: list[DailyCount] = Field(default_factory=list)
    top_violators: list[TopViolator] = Field(default_factory=list)


class DashboardStats(BaseModel):
    total_vehicles: int
    active_vehicles: int
    moving_vehicles: int
    total_alerts: int
    unread_alerts: int
    total_geofences: int
    active_geofences: int

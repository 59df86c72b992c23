from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class LocationPointOut(BaseModel):
    latitude: float
    longitude: float
    speed: float
    heading: float = 0.0
    accuracy: float | None = None
    timestamp: datetime


class RouteEventOut(BaseModel):
    type: str
    latitude: float
    longitude: float
    timestamp: datetime
    duration_s: float | None = None
    speed: float | None = None
    speed_limit: float | None = None
    geofence_name: str | None = None


class TripOut(BaseModel):
    id: str
    vehicle_id: str
    start_time: datetime
    end_time: datetime | None = None
    total_distance_m: float = 0.0
    travel_time_s: float = 0.0
    stopped_time_s: float = 0.0
    average_speed_kmh: float = 0.0
    max_speed_kmh: float = 0.0
    stops_count: int = 0


class TripDetailOut(TripOut):
    points: list[LocationPointOut] = Field(default_factory=list)
    events: list[RouteEventOut] = Field(default_factory=list)

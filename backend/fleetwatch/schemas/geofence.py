from __future__ import annotations

from datetime import datetime, time
from typing import Literal

from pydantic import BaseModel, Field, model_validator


class GeoPoint(BaseModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class GeofenceRuleIn(BaseModel):
    type: Literal["entry", "exit", "dwell", "time_violation"]
    enabled: bool = True
    dwell_time_minutes: float | None = Field(default=None, gt=0.0)
    start_time: time | None = None
    end_time: time | None = None
    tolerance_seconds: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def check_rule_fields(self):
        if self.type == "dwell" and self.dwell_time_minutes is None:
            raise ValueError("dwell rule requires dwell_time_minutes")
        if self.type == "time_violation" and (self.start_time is None or self.end_time is None):
            raise ValueError("time_violation rule requires start_time and end_time")
        return self


def check_geometry(kind: str, center: GeoPoint | None, radius: float | None, points: list[GeoPoint] | None) -> None:
    if kind == "circle":
        if center is None:
            raise ValueError("circle geofence requires center")
        if radius is None or radius <= 0:
            raise ValueError("circle geofence requires radius > 0")
    elif not points or len(points) < 3:
        raise ValueError("polygon geofence requires at least 3 points")


class GeofenceIn(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    description: str | None = None
    type: Literal["circle", "polygon"]
    active: bool = True
    center: GeoPoint | None = None
    radius: float | None = None
    points: list[GeoPoint] | None = None
    rules: list[GeofenceRuleIn] = Field(default_factory=list)
    vehicle_ids: list[str] = Field(default_factory=list)
    color: str | None = None

    @model_validator(mode="after")
    def validate_geometry(self):
        check_geometry(self.type, self.center, self.radius, self.points)
        return self


class GeofenceUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    description: str | None = None
    type: Literal["circle", "polygon"] | None = None
    center: GeoPoint | None = None
    radius: float | None = None
    points: list[GeoPoint] | None = None
    active: bool | None = None
    rules: list[GeofenceRuleIn] | None = None
    vehicle_ids: list[str] | None = None
    color: str | None = None


class GeofenceOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    type: str
    active: bool
    center: GeoPoint | None = None
    radius: float | None = None
    points: list[GeoPoint] | None = None
    rules: list[GeofenceRuleIn] = Field(default_factory=list)
    vehicle_ids: list[str] = Field(default_factory=list)
    color: str | None = None
    last_triggered: datetime | None = None

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class VehicleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=128)
    license_plate: str = Field(min_length=1, max_length=32)
    model: str | None = None
    speed_limit: float | None = Field(default=None, gt=0.0)
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)


class VehicleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=128)
    model: str | None = None
    speed_limit: float | None = Field(default=None, gt=0.0)


class VehicleOut(BaseModel):
    id: str
    name: str
    license_plate: str
    model: str | None = None
    status: str
    speed_limit: float | None = None
    current_speed: float = 0.0
    heading: float = 0.0
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    last_update: datetime | None = None

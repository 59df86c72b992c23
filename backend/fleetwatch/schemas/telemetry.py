from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator, model_validator


class TelemetryIn(BaseModel):
    vehicle_id: str | None = None
    license_plate: str | None = None
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)
    speed: float = Field(default=0.0, ge=0.0)
    heading: float = 0.0
    accuracy: float = Field(default=10.0, ge=0.0)
    timestamp: datetime | None = None

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def require_vehicle_ref(self):
        if not self.vehicle_id and not self.license_plate:
            raise ValueError("vehicle_id or license_plate is required")
        return self


class TelemetryOut(BaseModel):
    accepted: bool
    vehicle_id: str
    status: str
    received_at: datetime
    trip_id: str | None = None
    closed_trip_id: str | None = None
    events: list[str] = Field(default_factory=list)


class OfflineOut(BaseModel):
    vehicle_id: str
    status: str
    closed_trip_id: str | None = None

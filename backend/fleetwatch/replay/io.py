from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from fleetwatch.tracking.entities import Geofence, GeofenceRule, LocationSample


@dataclass(slots=True)
class ReplayConfig:
    geofences: list[Geofence] = field(default_factory=list)
    speed_limits: dict[str, float] = field(default_factory=dict)
    default_speed_limit: float | None = None
    trip: dict[str, float] = field(default_factory=dict)
    timezone: str = "UTC"

    def speed_limit_for(self, vehicle_id: str) -> float | None:
        return self.speed_limits.get(vehicle_id, self.default_speed_limit)


def _parse_ts(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        # epoch milliseconds
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    dt = value if isinstance(value, datetime) else datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _to_sample(record: dict[str, Any]) -> LocationSample:
    return LocationSample(
        vehicle_id=str(record.get("vehicle_id", record.get("vehicleId", "unknown"))),
        latitude=float(record["latitude"]),
        longitude=float(record["longitude"]),
        speed=float(record.get("speed", 0.0)),
        heading=float(record.get("heading", 0.0)),
        accuracy=float(record.get("accuracy", 0.0)),
        timestamp=_parse_ts(record["timestamp"]),
    )


def load_samples(path: Path) -> list[LocationSample]:
    """Read samples from a JSON array or a JSON Lines file, in file order."""

    text = path.read_text(encoding="utf-8")
    if text.lstrip().startswith("["):
        return [_to_sample(r) for r in json.loads(text)]

    samples: list[LocationSample] = []
    for line in text.splitlines():
        line = line.strip()
        if not line:
            continue
        samples.append(_to_sample(json.loads(line)))
    return samples


def _geofence_from_dict(raw: dict[str, Any]) -> Geofence:
    center = raw.get("center")
    return Geofence(
        id=str(raw.get("id") or raw["name"]),
        name=str(raw["name"]),
        kind=raw["type"],
        center=(float(center["latitude"]), float(center["longitude"])) if center else None,
        radius_m=float(raw["radius"]) if raw.get("radius") is not None else None,
        vertices=tuple((float(p["latitude"]), float(p["longitude"])) for p in raw.get("points") or []),
        rules=tuple(GeofenceRule.from_dict(r) for r in raw.get("rules") or []),
        vehicle_ids=frozenset(str(v) for v in raw.get("vehicle_ids") or []),
        active=bool(raw.get("active", True)),
    )


def load_config(path: Path | None) -> ReplayConfig:
    if path is None:
        return ReplayConfig()
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}

    limits = dict(data.get("speed_limits") or {})
    default_limit = limits.pop("default", None)
    return ReplayConfig(
        geofences=[_geofence_from_dict(g) for g in data.get("geofences") or []],
        speed_limits={str(k): float(v) for k, v in limits.items()},
        default_speed_limit=float(default_limit) if default_limit is not None else None,
        trip={k: float(v) for k, v in (data.get("trip") or {}).items()},
        timezone=str(data.get("timezone", "UTC")),
    )


def write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from zoneinfo import ZoneInfo

from fleetwatch.core.config import settings
from fleetwatch.replay.io import ReplayConfig, load_config, load_samples, write_json
from fleetwatch.tracking.entities import LocationSample
from fleetwatch.tracking.pipeline import FleetTracker
from fleetwatch.tracking.trips import Trip, TripConfig

logger = logging.getLogger(__name__)


def replay(samples: list[LocationSample], config: ReplayConfig, close_open: bool = False) -> dict:
    trip_config = TripConfig(
        motion_threshold_kmh=config.trip.get("motion_threshold_kmh", settings.motion_threshold_kmh),
        min_stop_seconds=config.trip.get("min_stop_seconds", settings.min_stop_seconds),
        trip_end_seconds=config.trip.get("trip_end_seconds", settings.trip_end_seconds),
    )
    fleet = FleetTracker(trip_config, tz=ZoneInfo(config.timezone))

    trips: list[Trip] = []
    events: list[dict] = []
    rejected = 0

    for sample in samples:
        outcome = fleet.process(sample, config.geofences, config.speed_limit_for(sample.vehicle_id))
        if not outcome.accepted:
            rejected += 1
            continue
        events.extend(ev.to_dict() for ev in outcome.events)
        if outcome.closed_trip is not None:
            trips.append(outcome.closed_trip)

    open_trips: list[Trip] = []
    for vehicle_id in sorted({s.vehicle_id for s in samples}):
        if close_open:
            closed = fleet.mark_offline(vehicle_id)
            if closed is not None:
                trips.append(closed)
        else:
            active = fleet.active_trip(vehicle_id)
            if active is not None:
                open_trips.append(active)

    trips.sort(key=lambda t: (t.vehicle_id, t.start_time))
    return {
        "trips": [t.to_dict() for t in trips],
        "open_trips": [t.to_dict() for t in open_trips],
        "events": events,
        "summary": {
            "samples": len(samples),
            "rejected_samples": rejected,
            "vehicles": len({s.vehicle_id for s in samples}),
            "closed_trips": len(trips),
            "open_trips": len(open_trips),
            "events": len(events),
            "total_distance_m": round(sum(t.total_distance_m for t in trips), 2),
        },
    }


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay recorded telemetry through trip/geofence/speed evaluation")
    parser.add_argument("--samples", required=True, help="JSON array or JSON Lines file of location samples")
    parser.add_argument("--config", default=None, help="YAML file with geofences, speed limits and trip thresholds")
    parser.add_argument("--outdir", default="replay_out", help="Directory where outputs are written")
    parser.add_argument("--close-open", action="store_true", help="Close trips still open at the end of the input")
    parser.add_argument(
        "--keep-order",
        action="store_true",
        help="Feed samples in file order instead of sorting by timestamp",
    )
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    logging.basicConfig(level=settings.log_level.upper(), format="%(levelname)s %(name)s: %(message)s")

    samples = load_samples(Path(args.samples))
    if not args.keep_order:
        samples.sort(key=lambda s: s.timestamp)
    config = load_config(Path(args.config) if args.config else None)
    logger.info("Replaying %d samples against %d geofences", len(samples), len(config.geofences))

    result = replay(samples, config, close_open=args.close_open)

    out_dir = Path(args.outdir)
    write_json(out_dir / "trips.json", result["trips"] + result["open_trips"])
    write_json(out_dir / "events.json", result["events"])
    write_json(out_dir / "summary.json", result["summary"])

    print(json.dumps(result["summary"], indent=2))


if __name__ == "__main__":
    main()

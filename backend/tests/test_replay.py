import json
import sys

from fleetwatch.replay import run
from fleetwatch.replay.io import load_config, load_samples

CONFIG_YAML = """
timezone: UTC
speed_limits:
  default: 50
  truck-2: 80
trip:
  min_stop_seconds: 120
  trip_end_seconds: 300
geofences:
  - id: depot
    name: Depot
    type: circle
    center: {latitude: 40.0, longitude: -3.0}
    radius: 300
    rules:
      - {type: entry}
      - {type: exit}
      - {type: time_violation, start_time: "06:00", end_time: "20:00"}
"""


TRACK = [(-3.0, 30), (-3.01, 70), (-3.02, 40), (-3.03, 0), (-3.03, 0), (-3.03, 0), (-3.03, 0)]


def _records():
    rows = []
    # one fix every two minutes
    for i, (lon, kmh) in enumerate(TRACK):
        rows.append(
            {
                "vehicle_id": "truck-1",
                "latitude": 40.0,
                "longitude": lon,
                "speed": kmh,
                "timestamp": f"2024-05-06T09:{i * 2:02d}:00Z",
            }
        )
    return rows


def test_load_samples_json_lines_and_array(tmp_path):
    rows = _records()
    jsonl = tmp_path / "samples.jsonl"
    jsonl.write_text("\n".join(json.dumps(r) for r in rows) + "\n\n")
    array = tmp_path / "samples.json"
    array.write_text(json.dumps(rows))

    from_lines = load_samples(jsonl)
    from_array = load_samples(array)
    assert len(from_lines) == 7
    assert [s.timestamp for s in from_lines] == [s.timestamp for s in from_array]
    assert from_lines[0].timestamp.tzinfo is not None


def test_load_config(tmp_path):
    path = tmp_path / "fleet.yaml"
    path.write_text(CONFIG_YAML)
    config = load_config(path)

    assert config.speed_limit_for("truck-1") == 50.0
    assert config.speed_limit_for("truck-2") == 80.0
    assert config.trip == {"min_stop_seconds": 120.0, "trip_end_seconds": 300.0}
    fence = config.geofences[0]
    assert fence.kind == "circle"
    assert fence.radius_m == 300.0
    assert [r.kind for r in fence.rules] == ["entry", "exit", "time_violation"]


def test_replay_closes_trip_and_collects_events(tmp_path):
    path = tmp_path / "fleet.yaml"
    path.write_text(CONFIG_YAML)
    array = tmp_path / "samples.json"
    array.write_text(json.dumps(_records()))
    samples = load_samples(array)

    result = run.replay(samples, load_config(path))

    assert result["summary"]["closed_trips"] == 1
    assert result["summary"]["open_trips"] == 0
    kinds = [e["type"] for e in result["events"]]
    assert kinds == ["geofence_entry", "geofence_exit", "speed_violation"]
    trip_kinds = [e["type"] for e in result["trips"][0]["events"]]
    assert trip_kinds == ["departure", "geofence_entry", "geofence_exit", "speed_violation", "stop", "arrival"]


def test_cli_writes_outputs(tmp_path, monkeypatch, capsys):
    cfg = tmp_path / "fleet.yaml"
    cfg.write_text(CONFIG_YAML)
    samples = tmp_path / "samples.jsonl"
    rows = _records()[:3]
    samples.write_text("\n".join(json.dumps(r) for r in reversed(rows)))
    out_dir = tmp_path / "out"

    argv = ["run", "--samples", str(samples), "--config", str(cfg), "--outdir", str(out_dir), "--close-open"]
    monkeypatch.setattr(sys, "argv", argv)
    run.main()

    summary = json.loads((out_dir / "summary.json").read_text())
    assert summary["samples"] == 3
    assert summary["rejected_samples"] == 0
    assert summary["closed_trips"] == 1
    trips = json.loads((out_dir / "trips.json").read_text())
    assert trips[0]["events"][-1]["type"] == "arrival"
    assert json.loads((out_dir / "events.json").read_text())
    assert json.loads(capsys.readouterr().out)["closed_trips"] == 1


def test_cli_keep_order_rejects_out_of_order(tmp_path, monkeypatch):
    samples = tmp_path / "samples.json"
    rows = _records()[:3]
    samples.write_text(json.dumps([rows[1], rows[0], rows[2]]))
    out_dir = tmp_path / "out"

    monkeypatch.setattr(sys, "argv", ["run", "--samples", str(samples), "--outdir", str(out_dir), "--keep-order"])
    run.main()

    summary = json.loads((out_dir / "summary.json").read_text())
    assert summary["rejected_samples"] == 1
    assert summary["open_trips"] == 1


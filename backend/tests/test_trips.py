import pytest

from conftest import at, sample
from fleetwatch.tracking.geo import haversine_m
from fleetwatch.tracking.trips import TripConfig, TripSegmenter

CONFIG = TripConfig(motion_threshold_kmh=1.0, min_stop_seconds=120.0, trip_end_seconds=300.0)


def _feed(segmenter, samples):
    closed = []
    for s in samples:
        _, done = segmenter.append_sample(s.vehicle_id, s)
        if done is not None:
            closed.append(done)
    return closed


def test_trip_closes_after_long_stop():
    segmenter = TripSegmenter(CONFIG)
    samples = [
        sample(0, lon=-3.000, speed=10),
        sample(150, lon=-3.005, speed=20),
        sample(300, lon=-3.010, speed=0),
        sample(450, lon=-3.010, speed=0),
        sample(600, lon=-3.010, speed=0),
    ]
    closed = _feed(segmenter, samples)

    assert len(closed) == 1
    trip = closed[0]
    assert trip.start_time == at(0)
    assert trip.end_time == at(600)
    assert trip.travel_time_s == 300.0
    assert trip.stopped_time_s == 300.0
    assert trip.stops_count == 1
    assert trip.max_speed_kmh == 20.0

    expected_m = haversine_m(40.0, -3.0, 40.0, -3.005) + haversine_m(40.0, -3.005, 40.0, -3.010)
    assert trip.total_distance_m == pytest.approx(expected_m)
    assert trip.average_speed_kmh == pytest.approx(expected_m * 3.6 / 300.0)

    kinds = [e.kind for e in trip.events]
    assert kinds == ["departure", "stop", "arrival"]
    assert trip.events[1].timestamp == at(300)
    assert trip.events[1].duration_s == 300.0
    assert segmenter.active_trip("v1") is None


def test_short_stop_does_not_count():
    segmenter = TripSegmenter(CONFIG)
    _feed(segmenter, [sample(0, speed=30), sample(60, speed=0), sample(100, speed=0), sample(150, speed=25)])
    trip = segmenter.active_trip("v1")
    assert trip is not None
    assert trip.stops_count == 0
    assert [e.kind for e in trip.events] == ["departure"]


def test_stop_recorded_when_motion_resumes():
    segmenter = TripSegmenter(CONFIG)
    _feed(segmenter, [sample(0, speed=30), sample(60, speed=0), sample(200, speed=0), sample(240, speed=30)])
    trip = segmenter.active_trip("v1")
    assert trip.stops_count == 1
    stop = trip.events[-1]
    assert stop.kind == "stop"
    assert stop.timestamp == at(60)
    assert stop.duration_s == 180.0


def test_stationary_vehicle_opens_no_trip():
    segmenter = TripSegmenter(CONFIG)
    assert _feed(segmenter, [sample(t, speed=0.5) for t in range(0, 600, 60)]) == []
    assert segmenter.active_trip("v1") is None


def test_points_are_strictly_increasing_and_distance_matches():
    segmenter = TripSegmenter(CONFIG)
    samples = [sample(i * 30, lat=40.0 + i * 0.001, speed=40) for i in range(10)]
    _feed(segmenter, samples)
    trip = segmenter.active_trip("v1")

    stamps = [p.timestamp for p in trip.points]
    assert stamps == sorted(stamps)
    assert len(set(stamps)) == len(stamps)
    pairs = zip(trip.points, trip.points[1:])
    assert trip.total_distance_m == pytest.approx(
        sum(haversine_m(a.latitude, a.longitude, b.latitude, b.longitude) for a, b in pairs)
    )


def test_out_of_order_sample_is_rejected():
    segmenter = TripSegmenter(CONFIG)
    _feed(segmenter, [sample(0, speed=30), sample(60, speed=30)])
    trip = segmenter.active_trip("v1")

    for stale in (sample(30, lon=-3.5, speed=30), sample(60, lon=-3.5, speed=30)):
        assert segmenter.append_sample("v1", stale) == (trip, None)
    assert [p.timestamp for p in trip.points] == [at(0), at(60)]
    assert trip.total_distance_m == 0.0


def test_single_sample_then_offline():
    segmenter = TripSegmenter(CONFIG)
    _feed(segmenter, [sample(0, speed=30)])
    trip = segmenter.mark_offline("v1")

    assert trip is not None
    assert trip.end_time == at(0)
    assert trip.total_distance_m == 0.0
    assert trip.average_speed_kmh == 0.0
    assert [e.kind for e in trip.events] == ["departure", "arrival"]
    assert segmenter.mark_offline("v1") is None


def test_offline_records_pending_stop():
    segmenter = TripSegmenter(CONFIG)
    _feed(segmenter, [sample(0, speed=30), sample(60, speed=0), sample(240, speed=0)])
    trip = segmenter.mark_offline("v1")
    assert trip.stops_count == 1
    assert trip.end_time == at(240)


def test_vehicles_are_independent():
    segmenter = TripSegmenter(CONFIG)
    _feed(segmenter, [sample(0, speed=30, vehicle_id="a"), sample(0, speed=30, vehicle_id="b")])
    assert segmenter.active_trip("a") is not segmenter.active_trip("b")
    assert len(segmenter.active_trip("b").points) == 1


def test_merge_event_only_into_covering_trip():
    from fleetwatch.tracking.events import GeofenceEntry

    segmenter = TripSegmenter(CONFIG)
    _feed(segmenter, [sample(100, speed=30)])
    early = GeofenceEntry("v1", at(50), 40.0, -3.0, geofence_id="g", geofence_name="G")
    later = GeofenceEntry("v1", at(120), 40.0, -3.0, geofence_id="g", geofence_name="G")
    assert not segmenter.merge_event("v1", early)
    assert segmenter.merge_event("v1", later)
    assert [e.kind for e in segmenter.active_trip("v1").events] == ["departure", "geofence_entry"]


def test_config_requires_end_longer_than_stop():
    with pytest.raises(ValueError):
        TripConfig(min_stop_seconds=300.0, trip_end_seconds=300.0)


def test_merge_event_into_closed_trip_and_skip_alert_kinds():
    from fleetwatch.tracking.events import GeofenceDwell, Stop

    segmenter = TripSegmenter(CONFIG)
    _feed(segmenter, [sample(0, speed=30), sample(60, speed=30)])
    closed = segmenter.mark_offline("v1")

    stop = Stop("v1", at(30), 40.0, -3.0, duration_s=10.0)
    dwell = GeofenceDwell("v1", at(30), 40.0, -3.0, geofence_id="g", geofence_name="G", dwell_s=30.0, threshold_s=10.0)
    assert not segmenter.merge_event("v1", stop)
    assert segmenter.merge_event("v1", stop, closed)
    assert not segmenter.merge_event("v1", dwell, closed)
    assert [e.kind for e in closed.events] == ["departure", "stop", "arrival"]


def test_discard_drops_open_trip():
    segmenter = TripSegmenter(CONFIG)
    _feed(segmenter, [sample(0, speed=30)])
    segmenter.discard("v1")
    assert segmenter.active_trip("v1") is None
    assert segmenter.mark_offline("v1") is None

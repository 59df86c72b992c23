import threading

from conftest import at, sample
from fleetwatch.tracking.entities import Geofence, GeofenceRule
from fleetwatch.tracking.pipeline import FleetTracker
from fleetwatch.tracking.trips import TripConfig

DEPOT = Geofence(
    id="depot",
    name="Depot",
    kind="circle",
    center=(40.0, -3.0),
    radius_m=300.0,
    rules=(GeofenceRule("entry"), GeofenceRule("exit"), GeofenceRule("dwell", dwell_seconds=60.0)),
)


def _tracker():
    return FleetTracker(TripConfig(min_stop_seconds=120.0, trip_end_seconds=300.0))


def test_route_events_are_merged_into_trip():
    fleet = _tracker()
    fleet.process(sample(0, lon=-3.0, speed=30), [DEPOT], 50.0)
    fleet.process(sample(30, lon=-3.01, speed=70), [DEPOT], 50.0)
    outcome = fleet.process(sample(60, lon=-3.02, speed=40), [DEPOT], 50.0)

    assert outcome.accepted
    assert [e.kind for e in outcome.events] == ["speed_violation"]
    trip = fleet.active_trip("v1")
    kinds = [e.kind for e in trip.events]
    assert kinds == ["departure", "geofence_entry", "geofence_exit", "speed_violation"]
    stamps = [e.timestamp for e in trip.events]
    assert stamps == sorted(stamps)


def test_alert_only_events_stay_out_of_trip():
    fleet = _tracker()
    fleet.process(sample(0, speed=0), [DEPOT])
    outcome = fleet.process(sample(90, speed=5), [DEPOT])

    assert [e.kind for e in outcome.events] == ["geofence_dwell"]
    assert [e.kind for e in outcome.trip.events] == ["departure"]
    assert [e.kind for e in outcome.trip_events] == ["departure"]


def test_duplicate_sample_is_not_accepted():
    fleet = _tracker()
    first = fleet.process(sample(0, speed=30), [DEPOT])
    again = fleet.process(sample(0, speed=30), [DEPOT])

    assert first.accepted
    assert not again.accepted
    assert again.events == []
    assert len(fleet.active_trip("v1").points) == 1


def test_closing_sample_reports_closed_trip():
    fleet = _tracker()
    for t, kmh in [(0, 20), (150, 20), (300, 0), (450, 0)]:
        fleet.process(sample(t, lon=-3.0 - t * 1e-5, speed=kmh))
    outcome = fleet.process(sample(600, lon=-3.006, speed=0))

    assert outcome.trip is None
    assert outcome.closed_trip is not None
    assert [e.kind for e in outcome.trip_events] == ["stop", "arrival"]
    assert outcome.closed_trip.end_time == at(600)


def test_mark_offline_and_reset():
    fleet = _tracker()
    fleet.process(sample(0, speed=30))
    closed = fleet.mark_offline("v1")
    assert closed is not None
    assert fleet.active_trip("v1") is None

    fleet.process(sample(10, speed=30))
    fleet.reset()
    assert fleet.active_trip("v1") is None
    # state is forgotten so an older timestamp is accepted again
    assert fleet.process(sample(0, speed=30)).accepted


def test_concurrent_vehicles():
    fleet = _tracker()

    def drive(vehicle_id):
        for i in range(50):
            fleet.process(sample(i * 10, lat=40.0 + i * 1e-4, speed=40, vehicle_id=vehicle_id), [DEPOT], 60.0)

    threads = [threading.Thread(target=drive, args=(f"v{n}",)) for n in range(8)]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    for n in range(8):
        trip = fleet.active_trip(f"v{n}")
        assert len(trip.points) == 50
        assert trip.events[0].kind == "departure"


def test_offline_discards_open_speed_episode():
    fleet = _tracker()
    fleet.process(sample(0, speed=70), speed_limit=60.0)
    closed = fleet.mark_offline("v1")
    outcome = fleet.process(sample(100, speed=30), speed_limit=60.0)

    assert outcome.events == []
    assert [e.kind for e in closed.events] == ["departure", "arrival"]
    assert [e.kind for e in outcome.trip.events] == ["departure"]


def test_forget_drops_vehicle_state():
    fleet = _tracker()
    fleet.process(sample(50, speed=30))
    fleet.forget("v1")
    assert fleet.active_trip("v1") is None
    assert fleet.process(sample(10, speed=30)).accepted

import pytest

from conftest import at, sample
from fleetwatch.tracking import speed


def _run(speeds, limit, step=10.0):
    state = None
    events = []
    for i, kmh in enumerate(speeds):
        state, event = speed.evaluate("v1", sample(i * step, lon=-3.0 + i * 0.001, speed=kmh), limit, state)
        if event is not None:
            events.append(event)
    return state, events


def test_one_event_per_episode():
    state, events = _run([70, 80, 75, 50], 60.0)

    assert len(events) == 1
    event = events[0]
    assert event.timestamp == at(0)
    assert event.longitude == pytest.approx(-3.0)
    assert event.duration_s == 30.0
    assert event.speed == 80.0
    assert event.excess_speed == 20.0
    assert event.speed_limit == 60.0
    assert not state.in_violation


def test_speed_at_limit_is_not_a_violation():
    state, events = _run([60, 60, 60], 60.0)
    assert events == []
    assert not state.in_violation


def test_open_episode_is_not_reported():
    state, events = _run([50, 90, 95], 60.0)
    assert events == []
    assert state.in_violation
    assert state.started_at == at(10)
    assert state.peak_speed == 95.0


def test_two_separate_episodes():
    _, events = _run([70, 50, 90, 40], 60.0)
    assert [e.excess_speed for e in events] == [10.0, 30.0]
    assert [e.timestamp for e in events] == [at(0), at(20)]


def test_no_limit_never_violates():
    state, events = _run([200, 250, 0], None)
    assert events == []
    assert state.last_evaluated == at(20)


def test_stale_sample_is_ignored():
    state, _ = speed.evaluate("v1", sample(10, speed=90), 60.0, None)
    same, event = speed.evaluate("v1", sample(5, speed=10), 60.0, state)
    assert event is None
    assert same is state


def test_excess_uses_limit_in_force_when_episode_started():
    state, _ = speed.evaluate("v1", sample(0, speed=70), 60.0, None)
    state, event = speed.evaluate("v1", sample(10, speed=80), 100.0, state)

    assert event is not None
    assert event.speed == 70.0
    assert event.speed_limit == 60.0
    assert event.excess_speed == 10.0

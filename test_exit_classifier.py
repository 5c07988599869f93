#!/usr/bin/env python3
"""
Exit classification for single location samples: preconditions, audit
trail, the last-hour window gate and the exit decision.
"""

from datetime import timedelta

import pytest
from sqlmodel import select

from conftest import local_time, point_north
from models.geofence_event import GeofenceEvent, GeofenceEventType
from services.exit_classifier import ExitClassifier, LocationSample, TrackStatus


def sample(entry, at, distance, accuracy=10.0):
    lat, lng = point_north(distance)
    return LocationSample(
        worker_id=entry.worker_id,
        clock_entry_id=entry.id,
        latitude=lat,
        longitude=lng,
        accuracy=accuracy,
        timestamp=at,
    )


def events(session, event_type=None):
    query = select(GeofenceEvent).order_by(GeofenceEvent.id)
    if event_type is not None:
        query = query.where(GeofenceEvent.event_type == event_type)
    return session.exec(query).all()


@pytest.fixture
def shift(factory):
    job = factory.job(radius=100)
    worker = factory.worker(shift_end="17:00")
    entry = factory.entry(worker, job, clock_in=local_time(8))
    return job, worker, entry


def test_not_clocked_in_when_entry_closed(session, factory, shift):
    job, worker, _ = shift
    closed = factory.entry(worker, job, clock_in=local_time(7), clock_out=local_time(7, 30))

    result = ExitClassifier(session).classify(sample(closed, local_time(16, 30), 300))

    assert result.status == TrackStatus.NOT_CLOCKED_IN
    assert events(session) == []


def test_not_clocked_in_for_another_workers_entry(session, factory, shift):
    _, _, entry = shift
    other = factory.worker()
    s = sample(entry, local_time(16, 30), 300)
    s.worker_id = other.id

    assert ExitClassifier(session).classify(s).status == TrackStatus.NOT_CLOCKED_IN


def test_invalid_job_data(session, factory):
    job = factory.job(radius=None)
    worker = factory.worker()
    entry = factory.entry(worker, job, clock_in=local_time(8))

    result = ExitClassifier(session).classify(sample(entry, local_time(16, 30), 300))

    assert result.status == TrackStatus.INVALID_JOB_DATA
    assert result.is_error
    assert events(session) == []


def test_geofence_disabled_logs_fix_only(session, factory):
    job = factory.job(radius=100, enabled=False)
    worker = factory.worker()
    entry = factory.entry(worker, job, clock_in=local_time(8))

    result = ExitClassifier(session).classify(sample(entry, local_time(16, 30), 5000))

    assert result.status == TrackStatus.GEOFENCE_DISABLED
    logged = events(session)
    assert [e.event_type for e in logged] == [GeofenceEventType.LOCATION_FIX]
    assert logged[0].distance_from_center == 0
    assert logged[0].safe_out_threshold == 0
    assert logged[0].job_radius == 100


def test_outside_window_still_records_fix(session, shift):
    _, _, entry = shift

    result = ExitClassifier(session).classify(sample(entry, local_time(15, 30), 500))

    assert result.status == TrackStatus.OUTSIDE_WINDOW
    assert result.distance == pytest.approx(500, abs=1e-6)
    assert result.threshold == 150
    logged = events(session)
    assert [e.event_type for e in logged] == [GeofenceEventType.LOCATION_FIX]
    assert logged[0].distance_from_center == pytest.approx(500, abs=1e-6)


def test_inside_fence_within_window(session, shift):
    _, _, entry = shift

    result = ExitClassifier(session).classify(sample(entry, local_time(16, 30), 40))

    assert result.status == TrackStatus.INSIDE_FENCE
    assert events(session, GeofenceEventType.EXIT_DETECTED) == []


def test_noisy_fix_just_outside_is_not_an_exit(session, shift):
    _, _, entry = shift

    result = ExitClassifier(session).classify(sample(entry, local_time(16, 30), 120, accuracy=80))

    assert result.status == TrackStatus.INSIDE_FENCE


def test_exit_detected_within_window(session, shift):
    _, _, entry = shift
    at = local_time(16, 30)

    result = ExitClassifier(session).classify(sample(entry, at, 300))

    assert result.status == TrackStatus.EXIT_DETECTED
    exits = events(session, GeofenceEventType.EXIT_DETECTED)
    assert len(exits) == 1
    assert exits[0].resolved_at is None
    assert exits[0].clock_entry_id == entry.id
    assert exits[0].safe_out_threshold == 150
    # Both the fix and the exit carry the sample's own timestamp
    assert all(e.timestamp.replace(tzinfo=None) == at.replace(tzinfo=None) for e in events(session))
    # Ingestion never clocks out by itself
    session.refresh(entry)
    assert entry.clock_out is None


def test_precise_fix_past_boundary_is_an_exit(session, shift):
    _, _, entry = shift

    result = ExitClassifier(session).classify(sample(entry, local_time(16, 30), 130, accuracy=10))

    assert result.status == TrackStatus.EXIT_DETECTED


def test_overtime_ignores_window(session, factory):
    job = factory.job(radius=100)
    worker = factory.worker(shift_end="17:00")
    entry = factory.entry(worker, job, clock_in=local_time(9), is_overtime=True)

    result = ExitClassifier(session).classify(sample(entry, local_time(10), 300))

    assert result.status == TrackStatus.EXIT_DETECTED


def test_overtime_ignores_missing_shift_end(session, factory):
    job = factory.job(radius=100)
    worker = factory.worker(shift_end=None)
    entry = factory.entry(worker, job, clock_in=local_time(18), is_overtime=True)

    result = ExitClassifier(session).classify(sample(entry, local_time(19), 20))

    assert result.status == TrackStatus.INSIDE_FENCE


@pytest.mark.parametrize("shift_end", [None, "", "   "])
def test_no_shift_end(session, factory, shift_end):
    job = factory.job(radius=100)
    worker = factory.worker(shift_end=shift_end)
    entry = factory.entry(worker, job, clock_in=local_time(8))

    result = ExitClassifier(session).classify(sample(entry, local_time(16, 30), 300))

    assert result.status == TrackStatus.NO_SHIFT_END
    assert not result.is_error


def test_invalid_shift_end(session, factory):
    job = factory.job(radius=100)
    worker = factory.worker(shift_end="five-ish")
    entry = factory.entry(worker, job, clock_in=local_time(8))

    result = ExitClassifier(session).classify(sample(entry, local_time(16, 30), 300))

    assert result.status == TrackStatus.INVALID_SHIFT_END
    assert result.is_error
    assert "HH:MM" in result.error


def test_twelve_hour_shift_end(session, factory):
    job = factory.job(radius=100)
    worker = factory.worker(shift_end="5:00 PM")
    entry = factory.entry(worker, job, clock_in=local_time(8))

    assert ExitClassifier(session).classify(sample(entry, local_time(16, 45), 300)).status == TrackStatus.EXIT_DETECTED
    assert ExitClassifier(session).classify(sample(entry, local_time(15, 45), 300)).status == TrackStatus.OUTSIDE_WINDOW


def test_sample_with_offset_timestamp_is_stored_in_utc(session, shift):
    from datetime import timezone

    _, _, entry = shift
    at = local_time(16, 30).astimezone(timezone(timedelta(hours=-5)))

    ExitClassifier(session).classify(sample(entry, at, 300))

    stored = events(session, GeofenceEventType.EXIT_DETECTED)[0].timestamp
    assert stored.replace(tzinfo=None) == local_time(16, 30).replace(tzinfo=None)

"""
Shared fixtures: an in-memory sqlite database per test and small factories
for sites, workers, clock entries and geofence events.
"""

import os

# Must be set before db.session is imported anywhere
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PUSH_ENABLED"] = "false"

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401
from models.clock_entry import ClockEntry
from models.geofence_event import GeofenceEvent, GeofenceEventType
from models.job import Job
from models.worker import Worker

# 1 degree of latitude along a meridian on the 6,371 km sphere
METERS_PER_DEGREE_LAT = 6371000 * 3.141592653589793 / 180

SITE_LAT = 51.5074
SITE_LNG = -0.1278

# Wednesday; Europe/London is on BST (UTC+1)
DAY = datetime(2025, 6, 11, tzinfo=timezone.utc)


def local_time(hour: int, minute: int = 0) -> datetime:
    """UTC instant for a London wall-clock time on DAY."""
    return DAY + timedelta(hours=hour - 1, minutes=minute)


def point_north(meters: float):
    return SITE_LAT + meters / METERS_PER_DEGREE_LAT, SITE_LNG


class Factory:
    def __init__(self, session: Session):
        self.session = session
        self._ids = 0

    def job(self, radius=100.0, enabled=True, **kw) -> Job:
        self._ids += 1
        job = Job(
            id=kw.pop("id", f"job-{self._ids}"),
            name="Site",
            latitude=kw.pop("latitude", SITE_LAT),
            longitude=kw.pop("longitude", SITE_LNG),
            geofence_radius=radius,
            geofence_enabled=enabled,
            **kw,
        )
        self.session.add(job)
        self.session.commit()
        return job

    def worker(self, shift_end="17:00", shift_start="08:00", **kw) -> Worker:
        self._ids += 1
        worker = Worker(
            id=kw.pop("id", f"worker-{self._ids}"),
            name=kw.pop("name", "Test Worker"),
            shift_start=shift_start,
            shift_end=shift_end,
            **kw,
        )
        self.session.add(worker)
        self.session.commit()
        return worker

    def entry(self, worker: Worker, job: Job, clock_in: datetime, **kw) -> ClockEntry:
        entry = ClockEntry(worker_id=worker.id, job_id=job.id, clock_in=clock_in, **kw)
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        return entry

    def event(
        self,
        entry: ClockEntry,
        event_type: GeofenceEventType,
        timestamp: datetime,
        distance: float,
        accuracy: float = 10.0,
        radius: float = 100.0,
        threshold: float = 150.0,
    ) -> GeofenceEvent:
        lat, lng = point_north(distance)
        event = GeofenceEvent(
            worker_id=entry.worker_id,
            clock_entry_id=entry.id,
            shift_date=timestamp.date(),
            event_type=event_type,
            latitude=lat,
            longitude=lng,
            accuracy=accuracy,
            distance_from_center=distance,
            job_radius=radius,
            safe_out_threshold=threshold,
            timestamp=timestamp,
        )
        self.session.add(event)
        self.session.commit()
        self.session.refresh(event)
        return event

    def exit(self, entry: ClockEntry, timestamp: datetime, distance: float = 200.0, **kw) -> GeofenceEvent:
        return self.event(entry, GeofenceEventType.EXIT_DETECTED, timestamp, distance, **kw)

    def fix(self, entry: ClockEntry, timestamp: datetime, distance: float, **kw) -> GeofenceEvent:
        return self.event(entry, GeofenceEventType.LOCATION_FIX, timestamp, distance, **kw)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def factory(session):
    return Factory(session)


@pytest.fixture
def client(engine):
    from fastapi.testclient import TestClient

    from db.session import get_session
    from main import app

    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

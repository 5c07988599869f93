"""
Data access for sessions (clock entries) and geofence events.

Every write that finalizes state is a conditional update keyed on the
pre-state the caller expects (``clock_out IS NULL`` / ``resolved_at IS NULL``).
A ``False``/``0`` return means another pass got there first; callers treat
that as a no-op. Nothing here commits; the services own the unit of work.
"""

from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import delete, update
from sqlmodel import Session, select

from models.clock_entry import ClockEntry
from models.geofence_event import GeofenceEvent, GeofenceEventType
from models.job import Job
from models.worker import Worker
from utils.datetime_helpers import ensure_utc


class SessionStore:
    def __init__(self, session: Session):
        self.session = session

    # --- Unit of work ---

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    # --- Lookups ---

    def get_entry(self, entry_id: int) -> Optional[ClockEntry]:
        return self.session.get(ClockEntry, entry_id)

    def get_open_entry(self, entry_id: int, worker_id: str) -> Optional[ClockEntry]:
        return self.session.exec(
            select(ClockEntry)
            .where(ClockEntry.id == entry_id)
            .where(ClockEntry.worker_id == worker_id)
            .where(ClockEntry.clock_out.is_(None))
        ).first()

    def get_job(self, job_id: str) -> Optional[Job]:
        return self.session.get(Job, job_id)

    def get_worker(self, worker_id: str) -> Optional[Worker]:
        return self.session.get(Worker, worker_id)

    def list_active_workers(self) -> List[Worker]:
        return list(self.session.exec(select(Worker).where(Worker.is_active == True)).all())  # noqa: E712

    def list_open_overtime_entries(self) -> List[ClockEntry]:
        return list(
            self.session.exec(
                select(ClockEntry)
                .where(ClockEntry.is_overtime == True)  # noqa: E712
                .where(ClockEntry.clock_out.is_(None))
                .order_by(ClockEntry.clock_in)
            ).all()
        )

    def latest_entry_between(
        self, worker_id: str, start: datetime, end: datetime
    ) -> Optional[ClockEntry]:
        return self.session.exec(
            select(ClockEntry)
            .where(ClockEntry.worker_id == worker_id)
            .where(ClockEntry.clock_in >= ensure_utc(start))
            .where(ClockEntry.clock_in < ensure_utc(end))
            .order_by(ClockEntry.clock_in.desc())
            .limit(1)
        ).first()

    def has_open_overtime(self, worker_id: str) -> bool:
        return (
            self.session.exec(
                select(ClockEntry.id)
                .where(ClockEntry.worker_id == worker_id)
                .where(ClockEntry.is_overtime == True)  # noqa: E712
                .where(ClockEntry.clock_out.is_(None))
                .limit(1)
            ).first()
            is not None
        )

    # --- Geofence events ---

    def add_event(self, event: GeofenceEvent) -> GeofenceEvent:
        event.timestamp = ensure_utc(event.timestamp)
        self.session.add(event)
        self.session.flush()
        return event

    def list_events(self, entry_id: int) -> List[GeofenceEvent]:
        return list(
            self.session.exec(
                select(GeofenceEvent)
                .where(GeofenceEvent.clock_entry_id == entry_id)
                .order_by(GeofenceEvent.timestamp, GeofenceEvent.id)
            ).all()
        )

    def pending_exits(self, older_than: datetime, newer_than: datetime) -> List[GeofenceEvent]:
        """Unresolved exit_detected rows with newer_than < timestamp < older_than."""
        return list(
            self.session.exec(
                select(GeofenceEvent)
                .where(GeofenceEvent.event_type == GeofenceEventType.EXIT_DETECTED)
                .where(GeofenceEvent.resolved_at.is_(None))
                .where(GeofenceEvent.timestamp < ensure_utc(older_than))
                .where(GeofenceEvent.timestamp > ensure_utc(newer_than))
                .order_by(GeofenceEvent.timestamp, GeofenceEvent.id)
            ).all()
        )

    def unresolved_exits_for_entry(self, entry_id: int) -> List[GeofenceEvent]:
        """Earliest first."""
        return list(
            self.session.exec(
                select(GeofenceEvent)
                .where(GeofenceEvent.clock_entry_id == entry_id)
                .where(GeofenceEvent.event_type == GeofenceEventType.EXIT_DETECTED)
                .where(GeofenceEvent.resolved_at.is_(None))
                .order_by(GeofenceEvent.timestamp, GeofenceEvent.id)
            ).all()
        )

    def handled_since(self, entry_id: int, since: datetime) -> List[GeofenceEvent]:
        """
        Transitions that already settle an exit observed at ``since``: any
        exit_confirmed for the entry, or a re_entry recorded at/after it.
        """
        events = self.session.exec(
            select(GeofenceEvent)
            .where(GeofenceEvent.clock_entry_id == entry_id)
            .where(
                GeofenceEvent.event_type.in_(
                    [GeofenceEventType.RE_ENTRY, GeofenceEventType.EXIT_CONFIRMED]
                )
            )
        ).all()
        since = ensure_utc(since)
        return [
            e
            for e in events
            if e.event_type == GeofenceEventType.EXIT_CONFIRMED
            or ensure_utc(e.timestamp) >= since
        ]

    def location_fixes_after(self, entry_id: int, after: datetime) -> List[GeofenceEvent]:
        return list(
            self.session.exec(
                select(GeofenceEvent)
                .where(GeofenceEvent.clock_entry_id == entry_id)
                .where(GeofenceEvent.event_type == GeofenceEventType.LOCATION_FIX)
                .where(GeofenceEvent.timestamp > ensure_utc(after))
                .order_by(GeofenceEvent.timestamp, GeofenceEvent.id)
            ).all()
        )

    # --- Conditional writes ---

    def resolve_exit(self, event_id: int, resolved_at: datetime) -> bool:
        result = self.session.execute(
            update(GeofenceEvent)
            .where(GeofenceEvent.id == event_id)
            .where(GeofenceEvent.resolved_at.is_(None))
            .values(resolved_at=ensure_utc(resolved_at))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def resolve_all_exits(self, entry_id: int, resolved_at: datetime) -> int:
        result = self.session.execute(
            update(GeofenceEvent)
            .where(GeofenceEvent.clock_entry_id == entry_id)
            .where(GeofenceEvent.event_type == GeofenceEventType.EXIT_DETECTED)
            .where(GeofenceEvent.resolved_at.is_(None))
            .values(resolved_at=ensure_utc(resolved_at))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def close_entry_if_open(self, entry_id: int, clock_out: datetime, **values: Any) -> bool:
        """Set clock_out (plus ``values``) only while the entry is still open."""
        result = self.session.execute(
            update(ClockEntry)
            .where(ClockEntry.id == entry_id)
            .where(ClockEntry.clock_out.is_(None))
            .values(clock_out=ensure_utc(clock_out), **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # --- Housekeeping ---

    def purge_stale_exits(self, cutoff: datetime) -> int:
        result = self.session.execute(
            delete(GeofenceEvent)
            .where(GeofenceEvent.event_type == GeofenceEventType.EXIT_DETECTED)
            .where(GeofenceEvent.timestamp < ensure_utc(cutoff))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

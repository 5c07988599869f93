import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlmodel import Session

from core.config import Settings, settings
from models.clock_entry import AutoClockoutType
from models.geofence_event import GeofenceEvent, GeofenceEventType
from services.notification_service import NotificationDispatcher, build_dedupe_key
from services.session_state import SessionState, derive_state, require_transition
from services.session_store import SessionStore
from services.sweep_result import SweepResult
from utils.datetime_helpers import ensure_utc, hours_between, utc_now
from utils.timezone_helpers import from_utc_to_local

logger = logging.getLogger(__name__)

GEOFENCE_NOTIFICATION_TYPE = "auto_clockout_geofence"


class ExitOutcome(str, Enum):
    ALREADY_HANDLED = "already_handled"
    RE_ENTERED = "re_entered"
    SKIPPED_OVERTIME = "skipped_overtime"
    SKIPPED_MANUAL = "skipped_manual"
    ALREADY_CLOSED = "already_closed"
    MISSING_ENTRY = "missing_entry"
    CLOCKED_OUT = "clocked_out"
    LOST_RACE = "lost_race"


ACTION_OUTCOMES = {ExitOutcome.RE_ENTERED, ExitOutcome.CLOCKED_OUT}


def find_reentry_fix(
    store: SessionStore, exit_event: GeofenceEvent, accuracy_pass_m: float
) -> Optional[GeofenceEvent]:
    """Latest accurate location_fix after the exit that puts the worker back inside."""
    back_inside = [
        fix
        for fix in store.location_fixes_after(exit_event.clock_entry_id, exit_event.timestamp)
        if fix.job_radius is not None
        and fix.accuracy is not None
        and fix.distance_from_center <= fix.job_radius
        and fix.accuracy <= accuracy_pass_m
    ]
    return back_inside[-1] if back_inside else None


def record_reentry(store: SessionStore, exit_event: GeofenceEvent, fix: GeofenceEvent) -> GeofenceEvent:
    return store.add_event(
        GeofenceEvent(
            worker_id=exit_event.worker_id,
            clock_entry_id=exit_event.clock_entry_id,
            shift_date=exit_event.shift_date,
            event_type=GeofenceEventType.RE_ENTRY,
            latitude=fix.latitude,
            longitude=fix.longitude,
            accuracy=fix.accuracy,
            distance_from_center=fix.distance_from_center,
            job_radius=exit_event.job_radius,
            safe_out_threshold=exit_event.safe_out_threshold,
            timestamp=fix.timestamp,
        )
    )


def exit_evidence(exit_event: GeofenceEvent) -> dict:
    return {
        "distance": exit_event.distance_from_center,
        "accuracy": exit_event.accuracy,
        "threshold": exit_event.safe_out_threshold,
        "radius": exit_event.job_radius,
    }


class GraceResolver:
    """
    Sweeps pending exit_detected rows once the grace period (plus race
    buffer) has passed, and either cancels them (re-entry, already handled,
    manual clock-out) or turns them into a geofence auto clock-out.
    Overtime sessions are left to the overtime monitor.
    """

    def __init__(
        self,
        session: Session,
        dispatcher: Optional[NotificationDispatcher] = None,
        config: Settings = settings,
    ):
        self.store = SessionStore(session)
        self.dispatcher = dispatcher or NotificationDispatcher(session)
        self.config = config

    def run(self, now: Optional[datetime] = None) -> SweepResult:
        now = ensure_utc(now or utc_now())
        cutoff = now - timedelta(seconds=self.config.grace_delay_seconds)
        stale_cutoff = now - timedelta(hours=self.config.STALE_EXIT_HOURS)
        result = SweepResult()

        logger.info(f"[GRACE] Sweep at {now.isoformat()}, cutoff {cutoff.isoformat()}")

        try:
            result.purged = self.store.purge_stale_exits(stale_cutoff)
            self.store.commit()
        except Exception:
            self.store.rollback()
            logger.warning("[GRACE] Failed to clean up stale exit events", exc_info=True)

        exits = self.store.pending_exits(older_than=cutoff, newer_than=stale_cutoff)
        result.candidates = len(exits)
        if not exits:
            logger.info("[GRACE] No expired exit_detected events to process.")
            return result

        for exit_event in exits:
            exit_id = exit_event.id
            try:
                outcome = self.process_exit(exit_event, now)
                result.tally(outcome.value, action=outcome in ACTION_OUTCOMES)
            except Exception:
                self.store.rollback()
                result.errors += 1
                logger.error(f"[GRACE] Failed to process exit event {exit_id}", exc_info=True)

        logger.info(
            f"[GRACE] Done: {result.candidates} candidates, {result.actions} actions, {result.errors} errors"
        )
        return result

    def process_exit(self, exit_event: GeofenceEvent, now: datetime) -> ExitOutcome:
        entry_id = exit_event.clock_entry_id
        exit_time = ensure_utc(exit_event.timestamp)

        # 1) Another pass (or a recovery) already settled this exit
        handled = self.store.handled_since(entry_id, exit_time)
        if handled:
            logger.info(
                f"[GRACE] Entry {entry_id} already handled "
                f"({', '.join(e.event_type.value for e in handled)})"
            )
            self.store.resolve_exit(exit_event.id, now)
            self.store.commit()
            return ExitOutcome.ALREADY_HANDLED

        # 2) Worker came back inside within the grace period
        fix = find_reentry_fix(self.store, exit_event, self.config.ACCURACY_PASS_METERS)
        if fix is not None:
            logger.info(f"[GRACE] Worker re-entered geofence for entry {entry_id}")
            record_reentry(self.store, exit_event, fix)
            self.store.resolve_exit(exit_event.id, now)
            self.store.commit()
            return ExitOutcome.RE_ENTERED

        entry = self.store.get_entry(entry_id)
        if entry is None:
            logger.warning(f"[GRACE] Clock entry {entry_id} not found")
            return ExitOutcome.MISSING_ENTRY

        # 3) Overtime sessions belong to the overtime monitor
        if entry.is_overtime:
            logger.info(f"[GRACE] Skipping entry {entry_id} (overtime)")
            return ExitOutcome.SKIPPED_OVERTIME

        # 4) A manual clock-out wins over a stale pending exit
        state = derive_state(entry, [exit_event])
        if state == SessionState.CLOSED_MANUAL:
            logger.info(f"[GRACE] Skipping entry {entry_id} (manual clockout detected)")
            self.store.resolve_exit(exit_event.id, now)
            self.store.commit()
            return ExitOutcome.SKIPPED_MANUAL
        if state == SessionState.CLOSED_AUTO:
            self.store.resolve_exit(exit_event.id, now)
            self.store.commit()
            return ExitOutcome.ALREADY_CLOSED

        # 5) Finalize at the moment of departure
        require_transition(state, SessionState.CLOSED_AUTO)
        return self._clock_out(entry, exit_event, exit_time, now)

    def _clock_out(self, entry, exit_event: GeofenceEvent, exit_time: datetime, now: datetime) -> ExitOutcome:
        total_hours = max(0.0, hours_between(entry.clock_in, exit_time))
        local_exit = from_utc_to_local(exit_time, self.config.SITE_TIMEZONE)
        reason = f"Auto clocked-out by geofence exit at {local_exit.strftime('%H:%M')} (left job site)"

        won = self.store.close_entry_if_open(
            entry.id,
            exit_time,
            clock_out_lat=exit_event.latitude,
            clock_out_lng=exit_event.longitude,
            auto_clocked_out=True,
            auto_clockout_type=AutoClockoutType.GEOFENCE_BASED,
            auto_clockout_reason=reason,
            total_hours=total_hours,
            geofence_exit_data=exit_evidence(exit_event),
            notes=reason,
        )
        if not won:
            self.store.rollback()
            logger.info(f"[GRACE] Entry {entry.id} was closed by a concurrent pass; nothing to do")
            return ExitOutcome.LOST_RACE

        self.store.add_event(
            GeofenceEvent(
                worker_id=exit_event.worker_id,
                clock_entry_id=entry.id,
                shift_date=exit_event.shift_date,
                event_type=GeofenceEventType.EXIT_CONFIRMED,
                latitude=exit_event.latitude,
                longitude=exit_event.longitude,
                accuracy=exit_event.accuracy,
                distance_from_center=exit_event.distance_from_center,
                job_radius=exit_event.job_radius,
                safe_out_threshold=exit_event.safe_out_threshold,
                timestamp=exit_time,
            )
        )
        self.store.resolve_exit(exit_event.id, now)
        self.store.commit()

        logger.warning(
            f"[GRACE] Auto-clockout completed for worker {exit_event.worker_id} (entry {entry.id}), "
            f"{total_hours:.2f}h"
        )

        self.dispatcher.send(
            worker_id=exit_event.worker_id,
            title="Auto Clocked-Out - Left Job Site",
            body=(
                f"You were automatically clocked out at {local_exit.strftime('%H:%M')} on "
                f"{local_exit.strftime('%d/%m/%Y')}.\n\n"
                f"Reason: You left the job site geofence area within 1 hour before your scheduled "
                f"shift end time. Your location was detected {exit_event.distance_from_center:.0f}m "
                f"from the site center (threshold: {exit_event.safe_out_threshold:.0f}m).\n\n"
                "If this timestamp is incorrect or you did not leave the site, please submit a "
                "Time Amendment request in the app."
            ),
            dedupe_key=build_dedupe_key(
                exit_event.worker_id, local_exit.date(), GEOFENCE_NOTIFICATION_TYPE
            ),
            notification_type=GEOFENCE_NOTIFICATION_TYPE,
        )
        return ExitOutcome.CLOCKED_OUT

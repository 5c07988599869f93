import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlmodel import Session

from core.config import Settings, settings
from models.clock_entry import AutoClockoutType, ClockEntry
from models.geofence_event import GeofenceEvent, GeofenceEventType
from services.grace_resolver import exit_evidence, find_reentry_fix, record_reentry
from services.notification_service import NotificationDispatcher, build_dedupe_key
from services.session_state import SessionState, derive_state, require_transition
from services.session_store import SessionStore
from services.sweep_result import SweepResult
from utils.datetime_helpers import ensure_utc, hours_between, utc_now
from utils.timezone_helpers import from_utc_to_local

logger = logging.getLogger(__name__)

OT_NOTIFICATION_TYPE = "ot_auto_clockout"


class OvertimeOutcome(str, Enum):
    WITHIN_LIMITS = "within_limits"
    WAITING_GRACE = "waiting_grace"
    RE_ENTERED = "re_entered"
    LEFT_SITE = "left_site"
    LIMIT_REACHED = "limit_reached"
    LOST_RACE = "lost_race"


ACTION_OUTCOMES = {OvertimeOutcome.LEFT_SITE, OvertimeOutcome.LIMIT_REACHED}


class OvertimeMonitor:
    """
    Sole authority over open overtime sessions: closes them when the worker
    left the site and the grace period ran out, or when the overtime cap is
    reached. Recorded hours never exceed the cap.
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
        result = SweepResult()

        entries = self.store.list_open_overtime_entries()
        result.candidates = len(entries)
        logger.info(f"[OT] Sweep at {now.isoformat()}: {len(entries)} active overtime entries")

        for entry in entries:
            entry_id = entry.id
            try:
                outcome = self.process_entry(entry, now)
                result.tally(outcome.value, action=outcome in ACTION_OUTCOMES)
            except Exception:
                self.store.rollback()
                result.errors += 1
                logger.error(f"[OT] Failed to process overtime entry {entry_id}", exc_info=True)

        logger.info(f"[OT] Complete. Auto-clocked out {result.actions} entries")
        return result

    def process_entry(self, entry: ClockEntry, now: datetime) -> OvertimeOutcome:
        max_hours = self.config.MAX_OT_HOURS
        clock_in = ensure_utc(entry.clock_in)
        hours_worked = hours_between(clock_in, now)
        cap_time = clock_in + timedelta(hours=max_hours)
        outcome = OvertimeOutcome.WITHIN_LIMITS

        logger.info(f"[OT] Entry {entry.id}: {hours_worked:.2f} hours worked")

        # 1) Geofence exit with grace period
        exits = self.store.unresolved_exits_for_entry(entry.id)
        if exits:
            first_exit = exits[0]
            exit_time = ensure_utc(first_exit.timestamp)
            if now - exit_time < timedelta(minutes=self.config.OT_GRACE_MINUTES):
                outcome = OvertimeOutcome.WAITING_GRACE
            else:
                fix = find_reentry_fix(self.store, first_exit, self.config.ACCURACY_PASS_METERS)
                if fix is not None:
                    self._cancel_exits(first_exit, fix, exits, now)
                    outcome = OvertimeOutcome.RE_ENTERED
                else:
                    clock_out = min(exit_time, cap_time)
                    local_exit = from_utc_to_local(exit_time, self.config.SITE_TIMEZONE)
                    return self._clock_out(
                        entry,
                        clock_out=clock_out,
                        total_hours=min(max_hours, max(0.0, hours_between(clock_in, clock_out))),
                        clockout_type=AutoClockoutType.GEOFENCE_BASED,
                        reason=f"Left job site at {local_exit.strftime('%H:%M')} during overtime",
                        title="Auto Clocked-Out - Left Site During OT",
                        exit_event=first_exit,
                        now=now,
                    )

        # 2) Overtime cap; time past the cap needs a manual amendment
        if hours_worked >= max_hours:
            return self._clock_out(
                entry,
                clock_out=cap_time,
                total_hours=max_hours,
                clockout_type=AutoClockoutType.OT_TIME_BASED,
                reason=(
                    f"Maximum {max_hours:g}-hour overtime limit reached. "
                    "If you worked longer, please request a time amendment."
                ),
                title=f"Auto Clocked-Out - {max_hours:g} Hour OT Limit Reached",
                exit_event=None,
                now=now,
            )

        return outcome

    def _cancel_exits(self, first_exit: GeofenceEvent, fix: GeofenceEvent, exits, now: datetime) -> None:
        logger.info(f"[OT] Worker re-entered geofence for entry {first_exit.clock_entry_id}")
        record_reentry(self.store, first_exit, fix)
        fix_time = ensure_utc(fix.timestamp)
        for exit_event in exits:
            if ensure_utc(exit_event.timestamp) < fix_time:
                self.store.resolve_exit(exit_event.id, now)
        self.store.commit()

    def _clock_out(
        self,
        entry: ClockEntry,
        clock_out: datetime,
        total_hours: float,
        clockout_type: AutoClockoutType,
        reason: str,
        title: str,
        exit_event: Optional[GeofenceEvent],
        now: datetime,
    ) -> OvertimeOutcome:
        state = derive_state(entry, [exit_event] if exit_event is not None else [])
        require_transition(state, SessionState.CLOSED_AUTO)

        entry_id = entry.id
        worker_id = entry.worker_id
        values = dict(
            auto_clocked_out=True,
            auto_clockout_type=clockout_type,
            auto_clockout_reason=reason,
            total_hours=total_hours,
            notes=f"Auto clocked-out OT ({reason})",
            status="pending",
        )
        if exit_event is not None:
            values.update(
                clock_out_lat=exit_event.latitude,
                clock_out_lng=exit_event.longitude,
                geofence_exit_data=exit_evidence(exit_event),
            )

        if not self.store.close_entry_if_open(entry_id, clock_out, **values):
            self.store.rollback()
            logger.info(f"[OT] Entry {entry_id} was closed by a concurrent pass; nothing to do")
            return OvertimeOutcome.LOST_RACE

        self.store.resolve_all_exits(entry_id, now)
        if exit_event is not None:
            self.store.add_event(
                GeofenceEvent(
                    worker_id=worker_id,
                    clock_entry_id=entry_id,
                    shift_date=exit_event.shift_date,
                    event_type=GeofenceEventType.EXIT_CONFIRMED,
                    latitude=exit_event.latitude,
                    longitude=exit_event.longitude,
                    accuracy=exit_event.accuracy,
                    distance_from_center=exit_event.distance_from_center,
                    job_radius=exit_event.job_radius,
                    safe_out_threshold=exit_event.safe_out_threshold,
                    timestamp=clock_out,
                )
            )
        self.store.commit()

        logger.warning(f"[OT] Entry {entry_id}: auto clocked out at {clock_out.isoformat()}, {total_hours:.2f}h ({reason})")

        local_clock_out = from_utc_to_local(clock_out, self.config.SITE_TIMEZONE)
        self.dispatcher.send(
            worker_id=worker_id,
            title=title,
            body=f"You were automatically clocked out from your overtime. Reason: {reason}",
            dedupe_key=build_dedupe_key(worker_id, local_clock_out.date(), OT_NOTIFICATION_TYPE),
            notification_type=OT_NOTIFICATION_TYPE,
        )
        return (
            OvertimeOutcome.LEFT_SITE
            if clockout_type == AutoClockoutType.GEOFENCE_BASED
            else OvertimeOutcome.LIMIT_REACHED
        )


def merge_overtime_hours(session: Session, ot_entry_id: int) -> bool:
    """
    Fold an approved, closed overtime entry's hours into its linked main shift.
    Returns False (and changes nothing) when the entry is not ready to merge.
    """
    store = SessionStore(session)
    ot_entry = store.get_entry(ot_entry_id)
    if ot_entry is None:
        logger.error(f"[OT] Overtime entry {ot_entry_id} not found")
        return False

    if (
        ot_entry.status != "approved"
        or ot_entry.clock_out is None
        or ot_entry.linked_shift_id is None
        or not ot_entry.total_hours
    ):
        logger.info(
            f"[OT] Entry {ot_entry_id} not ready for merge: status={ot_entry.status} "
            f"closed={ot_entry.clock_out is not None} linked={ot_entry.linked_shift_id}"
        )
        return False

    main_shift = store.get_entry(ot_entry.linked_shift_id)
    if main_shift is None:
        logger.error(f"[OT] Main shift {ot_entry.linked_shift_id} not found")
        return False

    new_total = (main_shift.total_hours or 0.0) + ot_entry.total_hours
    main_shift.total_hours = new_total
    session.add(main_shift)
    session.commit()

    logger.info(
        f"[OT] Merged {ot_entry.total_hours}h into shift {ot_entry.linked_shift_id}. New total: {new_total}"
    )
    return True

import logging
from datetime import datetime, timedelta
from datetime import time as datetime_time
from typing import Optional

from sqlmodel import Session

from core.config import Settings, settings
from models.clock_entry import AutoClockoutType
from models.worker import Worker
from services.notification_service import NotificationDispatcher, build_dedupe_key
from services.session_state import SessionState, derive_state, require_transition
from services.session_store import SessionStore
from services.sweep_result import SweepResult
from utils.datetime_helpers import ensure_utc, hours_between, utc_now
from utils.shift_time import ShiftTimeError, parse_optional_shift_time
from utils.timezone_helpers import from_utc_to_local, local_start_of_day, local_time_to_utc, local_weekday

logger = logging.getLogger(__name__)

TIME_NOTIFICATION_TYPE = "auto_clockout_time"
WEEKEND = (0, 6)


def _hhmm(t: datetime_time) -> str:
    return t.strftime("%H%M")


class ShiftStatusChecker:
    """
    Minute-by-minute pass over scheduled workers on the site's wall clock:
    clock-in and clock-out reminders, and a time-based auto clock-out for
    regular sessions still open well after shift end.
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
        local_now = from_utc_to_local(now, self.config.SITE_TIMEZONE).replace(second=0, microsecond=0)
        weekday = local_weekday(local_now)
        result = SweepResult()

        if weekday in WEEKEND:
            logger.info("[SHIFT] Weekend - skipped")
            result.tally("weekend")
            return result

        workers = [w for w in self.store.list_active_workers() if weekday in w.shift_day_numbers()]
        result.candidates = len(workers)

        for worker in workers:
            worker_id = worker.id
            try:
                self._check_worker(worker, now, local_now, result)
            except Exception:
                self.store.rollback()
                result.errors += 1
                logger.error(f"[SHIFT] Failed to check worker {worker_id}", exc_info=True)

        logger.info(f"[SHIFT] Check completed, {result.actions} actions performed")
        return result

    def _check_worker(self, worker: Worker, now: datetime, local_now: datetime, result: SweepResult) -> None:
        try:
            shift_start = parse_optional_shift_time(worker.shift_start)
            shift_end = parse_optional_shift_time(worker.shift_end)
        except ShiftTimeError as e:
            logger.error(f"[SHIFT] Worker {worker.id}: {e}")
            result.tally("invalid_shift_time")
            return

        today = local_now.date()
        day_start = local_start_of_day(today, self.config.SITE_TIMEZONE)
        day_end = local_start_of_day(today + timedelta(days=1), self.config.SITE_TIMEZONE)
        latest = self.store.latest_entry_between(worker.id, day_start, day_end)

        if shift_start is not None:
            offset = self._minutes_since(local_now, shift_start)
            if offset in self.config.CLOCK_IN_REMINDER_OFFSETS and latest is None:
                notif = f"clock_in_{local_now.strftime('%H%M')}_shift{_hhmm(shift_start)}"
                if self._remind(
                    worker.id,
                    notif,
                    today,
                    title=self._clock_in_title(offset),
                    body=f"Shift starts at {shift_start.strftime('%H:%M')}. Please clock in.",
                ):
                    result.tally("clock_in_reminder", action=True)

        if shift_end is None:
            return

        offset = self._minutes_since(local_now, shift_end)
        still_open = latest is not None and latest.clock_out is None

        if offset in self.config.CLOCK_OUT_REMINDER_OFFSETS and still_open:
            if not self.store.has_open_overtime(worker.id):
                notif = f"clock_out_{local_now.strftime('%H%M')}_shift{_hhmm(shift_end)}"
                if self._remind(
                    worker.id,
                    notif,
                    today,
                    title="Time to clock out" if offset == 0 else "Reminder: you are still clocked in",
                    body=f"Shift ended at {shift_end.strftime('%H:%M')}. Please clock out.",
                ):
                    result.tally("clock_out_reminder", action=True)

        delay = self.config.AUTO_CLOCKOUT_DELAY_MINUTES
        window = self.config.AUTO_CLOCKOUT_WINDOW_MINUTES
        if still_open and not latest.is_overtime and delay <= offset <= delay + window:
            if self.store.has_open_overtime(worker.id):
                return
            self._auto_clock_out(worker.id, latest, today, shift_end, result)

    def _auto_clock_out(self, worker_id: str, entry, today, shift_end: datetime_time, result: SweepResult) -> None:
        require_transition(derive_state(entry), SessionState.CLOSED_AUTO)

        delay = self.config.AUTO_CLOCKOUT_DELAY_MINUTES
        clock_out = local_time_to_utc(today, shift_end, self.config.SITE_TIMEZONE) + timedelta(minutes=delay)
        total_hours = max(0.0, hours_between(entry.clock_in, clock_out))
        notes = f"Auto clocked-out {delay}min after shift end {shift_end.strftime('%H:%M')}"

        entry_id = entry.id
        if not self.store.close_entry_if_open(
            entry_id,
            clock_out,
            auto_clocked_out=True,
            auto_clockout_type=AutoClockoutType.TIME_BASED,
            auto_clockout_reason=notes,
            total_hours=total_hours,
            notes=notes,
        ):
            self.store.rollback()
            result.tally("lost_race")
            return
        self.store.resolve_all_exits(entry_id, clock_out)
        self.store.commit()
        result.tally("auto_clockout", action=True)
        logger.warning(f"[SHIFT] Entry {entry_id}: time-based auto clock-out at {clock_out.isoformat()}")

        title = "Auto Clocked-Out - No Clock-Out Detected"
        body = (
            f"You were automatically clocked out at {shift_end.strftime('%H:%M')} +{delay}min.\n"
            "If incorrect, please submit a Time Amendment request."
        )
        self.dispatcher.send(
            worker_id=worker_id,
            title=title,
            body=body,
            dedupe_key=build_dedupe_key(worker_id, today, TIME_NOTIFICATION_TYPE),
            notification_type=TIME_NOTIFICATION_TYPE,
        )
        self.dispatcher.log_sent(worker_id, TIME_NOTIFICATION_TYPE, today)

    def _remind(self, worker_id: str, notif: str, today, title: str, body: str) -> bool:
        if self.dispatcher.already_logged(worker_id, notif, today):
            return False
        sent = self.dispatcher.send(
            worker_id=worker_id,
            title=title,
            body=body,
            dedupe_key=build_dedupe_key(worker_id, today, notif),
            notification_type=notif,
        )
        self.dispatcher.log_sent(worker_id, notif, today)
        return sent

    @staticmethod
    def _minutes_since(local_now: datetime, shift_time: datetime_time) -> int:
        anchor = datetime.combine(local_now.date(), shift_time, tzinfo=local_now.tzinfo)
        return int((local_now - anchor).total_seconds() // 60)

    @staticmethod
    def _clock_in_title(offset: int) -> str:
        if offset < 0:
            return "Your shift starts soon"
        if offset == 0:
            return "Time to clock in"
        return "You haven't clocked in yet"

import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from core.config import settings
from models.notification import Notification, NotificationLog, NotificationPreference

logger = logging.getLogger(__name__)

PushSender = Callable[[str, str, str], object]


def build_dedupe_key(worker_id: str, day: date, notification_type: str) -> str:
    return f"{worker_id}:{day.isoformat()}:{notification_type}"


def _default_push_sender() -> Optional[PushSender]:
    if not settings.PUSH_ENABLED:
        return None
    from core.firebase import send_push_notification

    return send_push_notification


class NotificationDispatcher:
    """
    In-app notification store with at-most-once delivery per dedupe key,
    plus best-effort push. ``send`` never raises; failures are logged.
    """

    def __init__(self, session: Session, push_sender: Optional[PushSender] = None):
        self.session = session
        self.push_sender = push_sender if push_sender is not None else _default_push_sender()

    def send(
        self,
        worker_id: str,
        title: str,
        body: str,
        dedupe_key: str,
        notification_type: Optional[str] = None,
    ) -> bool:
        """Returns True only when this call created the notification."""
        try:
            existing = self.session.exec(
                select(Notification.id).where(Notification.dedupe_key == dedupe_key)
            ).first()
            if existing is not None:
                logger.info(f"[NOTIFY] Duplicate suppressed for key {dedupe_key}")
                return False

            self.session.add(
                Notification(
                    worker_id=worker_id,
                    title=title,
                    body=body,
                    type=notification_type,
                    dedupe_key=dedupe_key,
                )
            )
            self.session.commit()
        except IntegrityError:
            # A concurrent sweep inserted the same key between our check and insert
            self.session.rollback()
            logger.info(f"[NOTIFY] Duplicate suppressed for key {dedupe_key} (lost insert race)")
            return False
        except Exception:
            self.session.rollback()
            logger.exception(f"[NOTIFY] Failed to store notification {dedupe_key} for worker {worker_id}")
            return False

        self._push(worker_id, title, body)
        return True

    def _push(self, worker_id: str, title: str, body: str) -> None:
        if self.push_sender is None:
            return
        try:
            prefs = self.session.get(NotificationPreference, worker_id)
            if prefs is None or not prefs.push_token:
                logger.info(f"[NOTIFY] No push token found for worker {worker_id}")
                return
            self.push_sender(prefs.push_token, title, body)
        except Exception:
            logger.exception(f"[NOTIFY] Push delivery failed for worker {worker_id}")

    # --- Reminder ledger ---

    def already_logged(self, worker_id: str, notification_type: str, shift_date: date) -> bool:
        return (
            self.session.exec(
                select(NotificationLog.id)
                .where(NotificationLog.worker_id == worker_id)
                .where(NotificationLog.notification_type == notification_type)
                .where(NotificationLog.shift_date == shift_date)
                .where(NotificationLog.canceled == False)  # noqa: E712
            ).first()
            is not None
        )

    def log_sent(self, worker_id: str, notification_type: str, shift_date: date) -> None:
        try:
            self.session.add(
                NotificationLog(
                    worker_id=worker_id,
                    notification_type=notification_type,
                    shift_date=shift_date,
                )
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.exception(f"[NOTIFY] Failed to log {notification_type} for worker {worker_id}")

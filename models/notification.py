from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime, timezone, date


# In-app notification; dedupe_key makes delivery at-most-once per key
class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    worker_id: str = Field(index=True)
    title: str
    body: str
    type: Optional[str] = Field(default=None)
    dedupe_key: str = Field(unique=True, index=True)
    read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# Per-day ledger of reminder types already sent to a worker
class NotificationLog(SQLModel, table=True):
    __tablename__ = "notification_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    worker_id: str = Field(index=True)
    notification_type: str
    shift_date: date = Field(index=True)
    canceled: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationPreference(SQLModel, table=True):
    __tablename__ = "notification_preferences"

    worker_id: str = Field(primary_key=True)
    push_token: Optional[str] = Field(default=None)

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import field_serializer
from sqlalchemy import Column, DateTime
from sqlmodel import Field, Index, SQLModel

from utils.datetime_helpers import format_utc_datetime


class GeofenceEventType(str, Enum):
    LOCATION_FIX = "location_fix"
    EXIT_DETECTED = "exit_detected"
    RE_ENTRY = "re_entry"
    EXIT_CONFIRMED = "exit_confirmed"


# Append-mostly log of location observations and geofence transitions
class GeofenceEvent(SQLModel, table=True):
    __tablename__ = "geofence_events"

    __table_args__ = (
        Index("ix_geofence_events_clock_entry_id", "clock_entry_id"),
        # Grace sweep: pending exits by age
        Index("ix_geofence_events_event_type_timestamp", "event_type", "timestamp"),
        Index(
            "ix_geofence_events_clock_entry_id_event_type",
            "clock_entry_id",
            "event_type",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    worker_id: str
    clock_entry_id: int = Field(foreign_key="clock_entries.id")
    shift_date: Optional[date] = Field(default=None)
    event_type: GeofenceEventType

    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    distance_from_center: float = 0.0
    job_radius: Optional[float] = None
    safe_out_threshold: float = 0.0

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    # NULL on an exit_detected row means it is still waiting for judgment
    resolved_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )

    @field_serializer("timestamp", "resolved_at")
    def serialize_timestamps(self, dt: Optional[datetime]) -> Optional[str]:
        return format_utc_datetime(dt)

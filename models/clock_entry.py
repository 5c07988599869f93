from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import field_serializer
from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, Index, SQLModel

from utils.datetime_helpers import format_utc_datetime


class AutoClockoutType(str, Enum):
    NONE = "none"
    GEOFENCE_BASED = "geofence_based"
    TIME_BASED = "time_based"
    OT_TIME_BASED = "ot_time_based"


# One row per clock-in; clock_out NULL means the session is still open
class ClockEntry(SQLModel, table=True):
    __tablename__ = "clock_entries"

    __table_args__ = (
        Index("ix_clock_entries_worker_id", "worker_id"),
        Index("ix_clock_entries_worker_id_clock_in", "worker_id", "clock_in"),
        # Overtime sweep scans open overtime sessions
        Index("ix_clock_entries_is_overtime_clock_out", "is_overtime", "clock_out"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    worker_id: str = Field(foreign_key="workers.id")
    job_id: str = Field(foreign_key="jobs.id")

    clock_in: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    clock_out: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    clock_out_lat: Optional[float] = Field(default=None)
    clock_out_lng: Optional[float] = Field(default=None)

    is_overtime: bool = Field(default=False)
    # Main shift this overtime entry extends
    linked_shift_id: Optional[int] = Field(default=None)

    auto_clocked_out: bool = Field(default=False)
    auto_clockout_type: AutoClockoutType = Field(default=AutoClockoutType.NONE)
    auto_clockout_reason: Optional[str] = Field(default=None)
    # distance / accuracy / threshold / radius of the exit that closed the session
    geofence_exit_data: Optional[Dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON, nullable=True)
    )

    total_hours: Optional[float] = Field(default=None)
    # Review state for finalized entries (pending / approved / rejected)
    status: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)

    @field_serializer("clock_in", "clock_out")
    def serialize_timestamps(self, dt: Optional[datetime]) -> Optional[str]:
        """Ensure timestamps are formatted as UTC with Z suffix"""
        return format_utc_datetime(dt)

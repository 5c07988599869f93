import logging
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel
from sqlmodel import Session

from core.config import Settings, settings
from models.geofence_event import GeofenceEvent, GeofenceEventType
from services.session_store import SessionStore
from utils.datetime_helpers import ensure_utc
from utils.geofence import haversine_dist, is_reliable_exit, safe_out_threshold
from utils.shift_time import ShiftTimeError, is_in_last_hour_window, parse_optional_shift_time

logger = logging.getLogger(__name__)


class TrackStatus(str, Enum):
    NOT_CLOCKED_IN = "not_clocked_in"
    INVALID_JOB_DATA = "invalid_job_data"
    GEOFENCE_DISABLED = "geofence_disabled"
    NO_SHIFT_END = "no_shift_end"
    INVALID_SHIFT_END = "invalid_shift_end"
    OUTSIDE_WINDOW = "outside_window"
    INSIDE_FENCE = "inside_fence"
    EXIT_DETECTED = "exit_detected"


# Outcomes that are configuration errors rather than "not applicable"
ERROR_STATUSES = {TrackStatus.INVALID_JOB_DATA, TrackStatus.INVALID_SHIFT_END}


class LocationSample(BaseModel):
    worker_id: str
    clock_entry_id: int
    latitude: float
    longitude: float
    accuracy: float
    timestamp: datetime


class TrackResult(BaseModel):
    status: TrackStatus
    distance: Optional[float] = None
    threshold: Optional[float] = None
    message: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.status in ERROR_STATUSES


class ExitClassifier:
    """
    Classifies one location sample against the worker's open session.

    Records a location_fix for every sample that reaches a valid site, and an
    unresolved exit_detected when the worker is reliably outside while exit
    detection applies. Clock-out itself is left to the sweeps.
    """

    def __init__(self, session: Session, config: Settings = settings):
        self.store = SessionStore(session)
        self.config = config

    def classify(self, sample: LocationSample) -> TrackResult:
        ts = ensure_utc(sample.timestamp)

        # 1) Session must be open for this worker
        entry = self.store.get_open_entry(sample.clock_entry_id, sample.worker_id)
        if entry is None:
            logger.info(
                f"[TRACK] Worker {sample.worker_id} not clocked in on entry {sample.clock_entry_id}"
            )
            return TrackResult(status=TrackStatus.NOT_CLOCKED_IN)

        # 2) Site must have a center and a positive radius
        job = self.store.get_job(entry.job_id)
        if (
            job is None
            or job.latitude is None
            or job.longitude is None
            or not job.geofence_radius
            or job.geofence_radius <= 0
        ):
            logger.error(f"[TRACK] Invalid job data for entry {entry.id} (job {entry.job_id})")
            return TrackResult(
                status=TrackStatus.INVALID_JOB_DATA,
                error="Job site is missing coordinates or a positive geofence radius",
            )

        shift_date = ensure_utc(entry.clock_in).date()

        # 3) Geofence disabled: keep the audit trail, skip exit logic
        if not job.geofence_enabled:
            self.store.add_event(
                GeofenceEvent(
                    worker_id=sample.worker_id,
                    clock_entry_id=entry.id,
                    shift_date=shift_date,
                    event_type=GeofenceEventType.LOCATION_FIX,
                    latitude=sample.latitude,
                    longitude=sample.longitude,
                    accuracy=sample.accuracy,
                    distance_from_center=0.0,
                    job_radius=job.geofence_radius,
                    safe_out_threshold=0.0,
                    timestamp=ts,
                )
            )
            self.store.commit()
            logger.info(f"[TRACK] Geofence disabled for job {job.id}; location logged only")
            return TrackResult(
                status=TrackStatus.GEOFENCE_DISABLED,
                message="Location logged, no exit detection",
            )

        # 4) Distance + threshold, always recorded
        distance = haversine_dist(sample.latitude, sample.longitude, job.latitude, job.longitude)
        threshold = safe_out_threshold(job.geofence_radius)

        self.store.add_event(
            GeofenceEvent(
                worker_id=sample.worker_id,
                clock_entry_id=entry.id,
                shift_date=shift_date,
                event_type=GeofenceEventType.LOCATION_FIX,
                latitude=sample.latitude,
                longitude=sample.longitude,
                accuracy=sample.accuracy,
                distance_from_center=distance,
                job_radius=job.geofence_radius,
                safe_out_threshold=threshold,
                timestamp=ts,
            )
        )
        self.store.commit()

        logger.info(
            f"[TRACK] Entry {entry.id}: distance={distance:.2f}m threshold={threshold}m "
            f"radius={job.geofence_radius}m accuracy={sample.accuracy}m overtime={entry.is_overtime}"
        )

        # 5) Applicability gate; overtime sessions are always checked
        if not entry.is_overtime:
            gate = self._regular_shift_gate(sample.worker_id, ts, distance, threshold)
            if gate is not None:
                return gate

        # 6) Exit test
        if not is_reliable_exit(
            distance,
            sample.accuracy,
            job.geofence_radius,
            threshold,
            accuracy_pass_m=self.config.ACCURACY_PASS_METERS,
        ):
            return TrackResult(status=TrackStatus.INSIDE_FENCE, distance=distance, threshold=threshold)

        # 7) Reliable exit; the grace sweep decides later
        self.store.add_event(
            GeofenceEvent(
                worker_id=sample.worker_id,
                clock_entry_id=entry.id,
                shift_date=shift_date,
                event_type=GeofenceEventType.EXIT_DETECTED,
                latitude=sample.latitude,
                longitude=sample.longitude,
                accuracy=sample.accuracy,
                distance_from_center=distance,
                job_radius=job.geofence_radius,
                safe_out_threshold=threshold,
                timestamp=ts,
            )
        )
        self.store.commit()
        logger.warning(f"[TRACK] EXIT DETECTED for worker {sample.worker_id} on entry {entry.id}")

        return TrackResult(
            status=TrackStatus.EXIT_DETECTED,
            distance=distance,
            threshold=threshold,
            message="Exit recorded. Auto-clockout will be processed after the grace period.",
        )

    def _regular_shift_gate(
        self, worker_id: str, ts: datetime, distance: float, threshold: float
    ) -> Optional[TrackResult]:
        """None when exit detection applies to this sample, else the short-circuit result."""
        worker = self.store.get_worker(worker_id)
        try:
            shift_end = parse_optional_shift_time(worker.shift_end if worker else None)
        except ShiftTimeError as e:
            logger.error(f"[TRACK] Worker {worker_id}: {e}")
            return TrackResult(
                status=TrackStatus.INVALID_SHIFT_END,
                error="shift_end must be in HH:MM, HH:MM:SS, or h:mm AM/PM format",
            )

        if shift_end is None:
            logger.info(f"[TRACK] Worker {worker_id} has no shift_end")
            return TrackResult(status=TrackStatus.NO_SHIFT_END)

        if not is_in_last_hour_window(
            ts, shift_end, self.config.SITE_TIMEZONE, self.config.AUTO_WINDOW_MINUTES
        ):
            return TrackResult(status=TrackStatus.OUTSIDE_WINDOW, distance=distance, threshold=threshold)

        return None

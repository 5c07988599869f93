import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, Field
from sqlmodel import Session

from db.session import get_session
from models.geofence_event import GeofenceEvent
from services.exit_classifier import ExitClassifier, LocationSample, TrackResult
from services.session_state import SessionState, derive_state
from services.session_store import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Pydantic Models for Request / Response Payloads ---


class TrackLocationRequest(LocationSample):
    # Older clients send the clock entry id as "session_id"
    clock_entry_id: int = Field(validation_alias=AliasChoices("clock_entry_id", "session_id"))


class SessionStateResponse(BaseModel):
    clock_entry_id: int
    state: SessionState


def _validate_sample(data: TrackLocationRequest) -> None:
    if not -90 <= data.latitude <= 90:
        raise HTTPException(status_code=400, detail="Latitude must be between -90 and 90")
    if not -180 <= data.longitude <= 180:
        raise HTTPException(status_code=400, detail="Longitude must be between -180 and 180")
    if data.accuracy < 0:
        raise HTTPException(status_code=400, detail="Accuracy must be a non-negative number of meters")


# Location Sample Ingestion Endpoint
@router.post("/track-location", response_model=TrackResult, response_model_exclude_none=True)
def track_location(
    data: TrackLocationRequest,
    session: Session = Depends(get_session),
):
    """
    Classify one location sample for a clocked-in worker.

    Expected outcomes (not clocked in, outside window, inside fence, exit
    detected, ...) come back as 200 with a status code; bad site or shift
    configuration comes back as 400 with the status and an error message.
    """
    _validate_sample(data)

    try:
        result = ExitClassifier(session).classify(LocationSample(**data.model_dump()))
    except Exception as e:
        session.rollback()
        logger.error(f"[TRACK] Error in track-location for worker {data.worker_id}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e) or "Unknown error",
        )

    if result.is_error:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=result.model_dump(mode="json", exclude_none=True),
        )
    return result


# Geofence audit trail for one clock entry
@router.get("/entries/{entry_id}/events", response_model=List[GeofenceEvent])
def get_entry_events(entry_id: int, session: Session = Depends(get_session)):
    store = SessionStore(session)
    if store.get_entry(entry_id) is None:
        raise HTTPException(status_code=404, detail=f"Clock entry {entry_id} not found.")
    return store.list_events(entry_id)


# Derived session state (open / exit pending / closed)
@router.get("/entries/{entry_id}/state", response_model=SessionStateResponse)
def get_entry_state(entry_id: int, session: Session = Depends(get_session)):
    store = SessionStore(session)
    entry = store.get_entry(entry_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"Clock entry {entry_id} not found.")
    return SessionStateResponse(
        clock_entry_id=entry_id,
        state=derive_state(entry, store.unresolved_exits_for_entry(entry_id)),
    )

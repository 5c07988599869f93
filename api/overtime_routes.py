from fastapi import APIRouter, Depends
from sqlmodel import Session

from db.session import get_session
from services.overtime_monitor import merge_overtime_hours

router = APIRouter()


@router.post("/{entry_id}/merge")
def merge_overtime(entry_id: int, session: Session = Depends(get_session)):
    """
    Add an approved overtime entry's hours to its linked main shift.
    """
    merged = merge_overtime_hours(session, entry_id)
    return {"status": "merged" if merged else "not_merged", "clock_entry_id": entry_id}

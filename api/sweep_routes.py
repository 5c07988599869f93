import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from core.deps import require_cron_secret
from db.session import get_session
from services.grace_resolver import GraceResolver
from services.overtime_monitor import OvertimeMonitor
from services.shift_status_service import ShiftStatusChecker
from services.sweep_result import SweepResult

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_cron_secret)])


def _run_sweep(name: str, sweep) -> SweepResult:
    try:
        return sweep.run()
    except Exception as e:
        sweep.store.rollback()
        logger.error(f"[{name}] Sweep failed", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(e) or "Unknown error",
        )


@router.post("/check-grace-expiry", response_model=SweepResult)
def check_grace_expiry(session: Session = Depends(get_session)):
    """Finalize or cancel geofence exits whose grace period has run out."""
    return _run_sweep("GRACE", GraceResolver(session))


@router.post("/check-ot-autoclockout", response_model=SweepResult)
def check_ot_autoclockout(session: Session = Depends(get_session)):
    """Close overtime sessions that left site or hit the overtime cap."""
    return _run_sweep("OT", OvertimeMonitor(session))


@router.post("/check-clock-status", response_model=SweepResult)
def check_clock_status(session: Session = Depends(get_session)):
    """Shift reminders and the time-based auto clock-out."""
    return _run_sweep("SHIFT", ShiftStatusChecker(session))

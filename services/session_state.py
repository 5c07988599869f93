"""Per-session state machine derived from the persisted entry and its events."""

from enum import Enum
from typing import Iterable

from models.clock_entry import ClockEntry
from models.geofence_event import GeofenceEvent, GeofenceEventType


class SessionState(str, Enum):
    OPEN = "open"
    EXIT_PENDING = "exit_pending"
    CLOSED_AUTO = "closed_auto"
    CLOSED_MANUAL = "closed_manual"


TERMINAL_STATES = {SessionState.CLOSED_AUTO, SessionState.CLOSED_MANUAL}

_TRANSITIONS = {
    SessionState.OPEN: {
        SessionState.EXIT_PENDING,
        SessionState.CLOSED_AUTO,
        SessionState.CLOSED_MANUAL,
    },
    SessionState.EXIT_PENDING: {
        SessionState.OPEN,
        SessionState.CLOSED_AUTO,
        SessionState.CLOSED_MANUAL,
    },
    SessionState.CLOSED_AUTO: set(),
    SessionState.CLOSED_MANUAL: set(),
}


class InvalidTransition(Exception):
    def __init__(self, src: SessionState, dst: SessionState):
        super().__init__(f"Cannot move session from {src.value} to {dst.value}")
        self.src = src
        self.dst = dst


def derive_state(entry: ClockEntry, events: Iterable[GeofenceEvent] = ()) -> SessionState:
    if entry.clock_out is not None:
        return SessionState.CLOSED_AUTO if entry.auto_clocked_out else SessionState.CLOSED_MANUAL

    for event in events:
        if event.event_type == GeofenceEventType.EXIT_DETECTED and event.resolved_at is None:
            return SessionState.EXIT_PENDING
    return SessionState.OPEN


def can_transition(src: SessionState, dst: SessionState) -> bool:
    return dst in _TRANSITIONS[src]


def require_transition(src: SessionState, dst: SessionState) -> None:
    if not can_transition(src, dst):
        raise InvalidTransition(src, dst)

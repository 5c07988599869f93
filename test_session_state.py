#!/usr/bin/env python3

import pytest

from conftest import local_time
from models.geofence_event import GeofenceEventType
from services.session_state import (
    InvalidTransition,
    SessionState,
    can_transition,
    derive_state,
    require_transition,
)
from services.session_store import SessionStore


@pytest.fixture
def entry(factory):
    job = factory.job()
    worker = factory.worker()
    return factory.entry(worker, job, clock_in=local_time(8))


def test_open_without_events(entry):
    assert derive_state(entry) == SessionState.OPEN


def test_unresolved_exit_means_pending(factory, entry):
    exit_event = factory.exit(entry, local_time(16, 30))
    fix = factory.fix(entry, local_time(16, 31), distance=20)

    assert derive_state(entry, [fix, exit_event]) == SessionState.EXIT_PENDING

    exit_event.resolved_at = local_time(16, 40)
    assert derive_state(entry, [fix, exit_event]) == SessionState.OPEN


def test_closed_states(entry):
    entry.clock_out = local_time(17)
    assert derive_state(entry) == SessionState.CLOSED_MANUAL

    entry.auto_clocked_out = True
    assert derive_state(entry) == SessionState.CLOSED_AUTO


@pytest.mark.parametrize("terminal", [SessionState.CLOSED_AUTO, SessionState.CLOSED_MANUAL])
def test_terminal_states_have_no_exits(terminal):
    for target in SessionState:
        assert not can_transition(terminal, target)
    with pytest.raises(InvalidTransition):
        require_transition(terminal, SessionState.CLOSED_AUTO)


def test_pending_exit_can_be_cancelled_or_finalized():
    assert can_transition(SessionState.EXIT_PENDING, SessionState.OPEN)
    assert can_transition(SessionState.EXIT_PENDING, SessionState.CLOSED_AUTO)
    assert can_transition(SessionState.OPEN, SessionState.EXIT_PENDING)


def test_close_entry_only_once(session, entry):
    store = SessionStore(session)

    first = store.close_entry_if_open(entry.id, local_time(16, 30), auto_clocked_out=True)
    second = store.close_entry_if_open(entry.id, local_time(16, 45), auto_clocked_out=True)
    store.commit()

    assert first is True
    assert second is False
    session.refresh(entry)
    assert entry.clock_out.replace(tzinfo=None) == local_time(16, 30).replace(tzinfo=None)


def test_resolve_exit_only_once(session, factory, entry):
    exit_event = factory.exit(entry, local_time(16, 30))
    store = SessionStore(session)

    assert store.resolve_exit(exit_event.id, local_time(16, 40)) is True
    assert store.resolve_exit(exit_event.id, local_time(16, 41)) is False
    store.commit()

    assert store.unresolved_exits_for_entry(entry.id) == []
    assert [e.event_type for e in store.list_events(entry.id)] == [GeofenceEventType.EXIT_DETECTED]

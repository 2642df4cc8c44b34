"""Session phase state machine.

setup -> lobby -> predictions (only with a predictions container) -> active -> results.
Transitions are forward-only. Requesting a phase the session has already
reached or passed is a no-op, which makes retried transition writes safe.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from party.logic.enums import SessionPhase
from party.logic.exceptions import InvalidPhaseTransitionError

if TYPE_CHECKING:
    from party.logic.state import PartySession

_PHASE_ORDER = {
    SessionPhase.SETUP: 0,
    SessionPhase.LOBBY: 1,
    SessionPhase.PREDICTIONS: 2,
    SessionPhase.ACTIVE: 3,
    SessionPhase.RESULTS: 4,
}

_ALLOWED: dict[SessionPhase, frozenset[SessionPhase]] = {
    SessionPhase.SETUP: frozenset({SessionPhase.LOBBY}),
    SessionPhase.LOBBY: frozenset({SessionPhase.PREDICTIONS, SessionPhase.ACTIVE}),
    SessionPhase.PREDICTIONS: frozenset({SessionPhase.ACTIVE}),
    SessionPhase.ACTIVE: frozenset({SessionPhase.RESULTS}),
    SessionPhase.RESULTS: frozenset(),
}


def phase_reached(session: PartySession, phase: SessionPhase) -> bool:
    """Return True if the session is at or past phase."""
    return _PHASE_ORDER[session.phase] >= _PHASE_ORDER[phase]


def phase_after_lobby(session: PartySession) -> SessionPhase:
    """Predictions run only when a predictions container was chosen at setup."""
    if session.predictions_container_id:
        return SessionPhase.PREDICTIONS
    return SessionPhase.ACTIVE


def check_transition(session: PartySession, target: SessionPhase) -> bool:
    """Validate moving session to target.

    Returns False when target was already reached (nothing to write) and
    True when the transition should be written. Raises
    InvalidPhaseTransitionError for illegal transitions.
    """
    if phase_reached(session, target):
        return False

    if target not in _ALLOWED[session.phase]:
        raise InvalidPhaseTransitionError(f"cannot move from {session.phase} to {target}")

    if session.phase == SessionPhase.LOBBY:
        if not session.participants:
            raise InvalidPhaseTransitionError("at least one participant must join before the party starts")
        expected = phase_after_lobby(session)
        if target != expected:
            raise InvalidPhaseTransitionError(f"party with this setup must move from lobby to {expected}")

    return True

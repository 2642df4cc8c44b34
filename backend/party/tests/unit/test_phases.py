import pytest

from party.logic.enums import SessionPhase
from party.logic.exceptions import InvalidPhaseTransitionError
from party.logic.phases import check_transition, phase_after_lobby, phase_reached
from party.tests.conftest import guest, make_session


class TestPhaseAfterLobby:
    def test_predictions_when_container_chosen(self):
        session = make_session(phase=SessionPhase.LOBBY, predictions_container_id="c1")
        assert phase_after_lobby(session) == SessionPhase.PREDICTIONS

    def test_active_without_container(self):
        assert phase_after_lobby(make_session(phase=SessionPhase.LOBBY)) == SessionPhase.ACTIVE


class TestCheckTransition:
    def test_lobby_to_active(self):
        session = make_session(phase=SessionPhase.LOBBY, participants=[guest()])
        assert check_transition(session, SessionPhase.ACTIVE) is True

    def test_lobby_to_predictions(self):
        session = make_session(phase=SessionPhase.LOBBY, participants=[guest()], predictions_container_id="c1")
        assert check_transition(session, SessionPhase.PREDICTIONS) is True

    def test_predictions_to_active(self):
        assert check_transition(make_session(phase=SessionPhase.PREDICTIONS), SessionPhase.ACTIVE) is True

    def test_active_to_results(self):
        assert check_transition(make_session(phase=SessionPhase.ACTIVE), SessionPhase.RESULTS) is True

    def test_leaving_empty_lobby_rejected(self):
        session = make_session(phase=SessionPhase.LOBBY)
        with pytest.raises(InvalidPhaseTransitionError, match="at least one participant"):
            check_transition(session, SessionPhase.ACTIVE)

    def test_skipping_configured_predictions_rejected(self):
        session = make_session(phase=SessionPhase.LOBBY, participants=[guest()], predictions_container_id="c1")
        with pytest.raises(InvalidPhaseTransitionError, match="predictions"):
            check_transition(session, SessionPhase.ACTIVE)

    def test_predictions_without_container_rejected(self):
        session = make_session(phase=SessionPhase.LOBBY, participants=[guest()])
        with pytest.raises(InvalidPhaseTransitionError):
            check_transition(session, SessionPhase.PREDICTIONS)

    def test_lobby_straight_to_results_rejected(self):
        session = make_session(phase=SessionPhase.LOBBY, participants=[guest()])
        with pytest.raises(InvalidPhaseTransitionError):
            check_transition(session, SessionPhase.RESULTS)

    @pytest.mark.parametrize(
        ("phase", "target"),
        [
            (SessionPhase.ACTIVE, SessionPhase.ACTIVE),
            (SessionPhase.ACTIVE, SessionPhase.LOBBY),
            (SessionPhase.RESULTS, SessionPhase.RESULTS),
            (SessionPhase.RESULTS, SessionPhase.ACTIVE),
            (SessionPhase.PREDICTIONS, SessionPhase.PREDICTIONS),
        ],
    )
    def test_reached_target_is_a_no_op(self, phase, target):
        assert check_transition(make_session(phase=phase), target) is False


class TestPhaseReached:
    def test_ordering(self):
        session = make_session(phase=SessionPhase.ACTIVE)
        assert phase_reached(session, SessionPhase.LOBBY)
        assert phase_reached(session, SessionPhase.ACTIVE)
        assert not phase_reached(session, SessionPhase.RESULTS)

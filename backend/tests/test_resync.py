import pytest

from conftest import HOST_SID, join
from livequiz.errors import NotFoundError, StateError, ValidationError
from livequiz.models import SessionParticipant


def test_join_returns_metadata_and_roster(manager, session_code, broadcaster):
    join(manager, session_code, 'alice')
    reply = join(manager, session_code, 'bob', name='Bobby')

    assert reply['success'] is True
    assert reply['role'] == 'participant'
    assert reply['reconnected'] is False
    assert reply['quizTitle'] == 'Test Quiz'
    assert reply['participantCount'] == 2
    assert reply['status'] == 'lobby'
    assert reply['totalQuestions'] == 3
    assert [p['participantId'] for p in reply['participants']] == ['alice', 'bob']
    assert 'currentQuestion' not in reply

    joined = broadcaster.last('participant.joined', to=f'session:{session_code}')
    assert joined['displayName'] == 'Bobby' and joined['totalCount'] == 2
    assert SessionParticipant.query.filter_by(session_code=session_code).count() == 2


def test_join_accepts_lowercase_codes(manager, session_code):
    reply = join(manager, session_code.lower(), 'alice')
    assert reply['sessionCode'] == session_code


def test_join_validation(manager, session_code):
    with pytest.raises(ValidationError):
        manager.join('sid-x', {'sessionCode': session_code, 'participantId': 'x'})
    with pytest.raises(ValidationError):
        manager.join('sid-x', {'participantId': 'x', 'displayName': 'X'})
    with pytest.raises(NotFoundError):
        join(manager, 'QQQQQQ', 'x')


def test_blank_identity_is_rejected(manager, session_code):
    with pytest.raises(ValidationError):
        manager.join('sid-x', {'sessionCode': session_code, 'participantId': '   ', 'displayName': 'X'})
    with pytest.raises(ValidationError):
        manager.join('sid-x', {'sessionCode': session_code, 'participantId': 'x', 'displayName': ' \t'})
    with pytest.raises(ValidationError):
        manager.join('sid-x', {'sessionCode': session_code, 'participantId': 42, 'displayName': 'X'})
    assert manager.registry.get_session(session_code).participant_count == 0

    reply = join(manager, session_code, '  carol ', name=' Carol ')
    assert reply['participants'] == [{'participantId': 'carol', 'displayName': 'Carol', 'photoRef': None}]


def test_rejoin_is_idempotent_and_keeps_counters(manager, session_code, clock, broadcaster):
    join(manager, session_code, 'alice')
    manager.next_question(HOST_SID, {'sessionCode': session_code})
    clock.advance_ms(2000)
    manager.submit_answer('sid-alice', {'sessionCode': session_code, 'questionIndex': 0, 'selectedOption': 'b'})

    manager.connection_lost('sid-alice')
    alice = manager.registry.get_session(session_code).participants['alice']
    assert alice.connected is False

    clock.advance_ms(3000)
    reply = join(manager, session_code, 'alice', sid='sid-alice-2')
    assert reply['reconnected'] is True
    assert reply['yourScore'] == 147
    assert reply['correctCount'] == 1
    assert reply['answeredCount'] == 1
    assert reply['hasAnswered'] is True
    assert reply['participantCount'] == 1
    assert alice.connected and alice.connection_id == 'sid-alice-2'
    assert broadcaster.last('participant.reconnected', to=f'host:{session_code}')['connectedCount'] == 1

    # Joining again from the same connection changes nothing
    again = join(manager, session_code, 'alice', sid='sid-alice-2')
    assert again['yourScore'] == 147
    assert manager.registry.get_session(session_code).participant_count == 1


def test_reconnect_sees_remaining_time_without_the_answer_key(manager, session_code, clock):
    join(manager, session_code, 'alice')
    manager.next_question(HOST_SID, {'sessionCode': session_code})
    clock.advance_ms(12500)

    reply = join(manager, session_code, 'alice', sid='sid-alice-2')
    question = reply['currentQuestion']
    assert question['index'] == 0
    assert question['timeRemainingMs'] == 17500
    assert question['timeRemaining'] == 18
    assert 'correctAnswers' not in question
    assert 'correct_answers' not in question
    assert reply['hasAnswered'] is False
    assert reply['paused'] is False


def test_late_join_is_refused_unless_allowed(manager, session_code):
    manager.next_question(HOST_SID, {'sessionCode': session_code})
    with pytest.raises(StateError):
        join(manager, session_code, 'latecomer')

    open_code = manager.create_session(HOST_SID, 2)['sessionCode']
    manager.next_question(HOST_SID, {'sessionCode': open_code})
    reply = join(manager, open_code, 'latecomer')
    assert reply['reconnected'] is False
    assert reply['currentQuestion']['index'] == 0


def test_nobody_joins_an_ended_session(manager, session_code):
    join(manager, session_code, 'alice')
    manager.end_session(HOST_SID, {'sessionCode': session_code})
    with pytest.raises(StateError):
        join(manager, session_code, 'bob')
    # known participants may still reconnect to see results
    assert join(manager, session_code, 'alice', sid='sid-alice-2')['status'] == 'completed'


def test_host_snapshot_includes_answer_key(manager, session_code):
    join(manager, session_code, 'alice')
    manager.next_question(HOST_SID, {'sessionCode': session_code})
    state = manager.session_state(HOST_SID, {'sessionCode': session_code})
    assert state['currentQuestion']['correctAnswers'] == ['b']
    assert state['participants'][0]['participantId'] == 'alice'
    assert state['leaderboard'][0]['rank'] == 1
    assert state['questionOpen'] is True


def test_leave_marks_participant_disconnected(manager, session_code, broadcaster):
    join(manager, session_code, 'alice')
    manager.leave('sid-alice', {'sessionCode': session_code})
    alice = manager.registry.get_session(session_code).participants['alice']
    assert alice.connected is False
    assert alice.connection_id is None
    left = broadcaster.last('participant.left', to=f'host:{session_code}')
    assert left['participantId'] == 'alice' and left['totalConnected'] == 0

import json

from conftest import HOST_SID, join
from livequiz import db
from livequiz.models import QuizSession, SessionAnswer, SessionParticipant
from livequiz.services.sessions.persistence import PersistenceWorker


class _Logger:
    def __init__(self):
        self.records = []

    def warning(self, msg):
        self.records.append(('warning', msg))

    def error(self, msg):
        self.records.append(('error', msg))


def test_session_lifecycle_is_mirrored(manager, session_code, clock):
    row = QuizSession.query.filter_by(session_code=session_code).one()
    assert row.status == 'lobby'
    assert row.total_questions == 3
    assert row.host_id == '1'

    join(manager, session_code, 'alice')
    manager.next_question(HOST_SID, {'sessionCode': session_code})
    clock.advance_ms(1500)
    manager.submit_answer('sid-alice', {'sessionCode': session_code, 'questionIndex': 0, 'selectedOption': ['b']})

    row = QuizSession.query.filter_by(session_code=session_code).one()
    assert row.status == 'in-progress'
    assert row.current_question_index == 0
    assert row.question_started_at is not None

    participant = SessionParticipant.query.filter_by(session_code=session_code, participant_id='alice').one()
    assert participant.score == manager.registry.get_session(session_code).participants['alice'].score
    assert participant.answered_count == 1

    answer = SessionAnswer.query.filter_by(session_code=session_code).one()
    assert json.loads(answer.selected_option) == 'b'
    assert answer.question_id == 'q1'
    assert answer.response_latency_ms == 1500


def test_failing_write_is_retried_then_counted(flask_app):
    logger = _Logger()
    naps = []
    worker = PersistenceWorker(flask_app, logger, inline=True, max_retries=2, backoff_sec=0.5, sleep=naps.append)
    calls = []

    def broken():
        calls.append(1)
        raise RuntimeError('database is down')

    worker.submit('broken-op', broken)

    assert len(calls) == 3
    assert naps == [0.5, 1.0]
    assert worker.failed == 1
    assert logger.records[-1][0] == 'error'
    assert '[persist-failed] op=broken-op' in logger.records[-1][1]


def test_write_succeeds_after_a_transient_failure(flask_app):
    logger = _Logger()
    worker = PersistenceWorker(flask_app, logger, inline=True, max_retries=3, backoff_sec=0)
    attempts = []

    def flaky():
        attempts.append(1)
        if len(attempts) < 2:
            raise RuntimeError('deadlock')

    worker.submit('flaky-op', flaky)
    assert len(attempts) == 2
    assert worker.failed == 0
    assert [level for level, _ in logger.records] == ['warning']


def test_update_before_insert_does_not_break_the_command(manager, session_code, worker):
    # wipe the mirrored row; the in-memory session carries on regardless
    QuizSession.query.filter_by(session_code=session_code).delete()
    db.session.commit()

    assert manager.next_question(HOST_SID, {'sessionCode': session_code})['questionIndex'] == 0
    assert manager.registry.get_session(session_code).status == 'in-progress'
    assert worker.failed == 1

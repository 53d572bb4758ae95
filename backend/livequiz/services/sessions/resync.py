"""Join, reconnect, and resync.

A join with a participant id the session already knows is a reconnect: the
participant keeps their score and counters and gets back enough state to
redraw the current screen. Joins are idempotent.
"""

import math
from typing import Any, Dict

from livequiz.errors import StateError
from .leaderboard import build_leaderboard
from .state import LiveSession, Participant, SessionStatus


class ResyncHandler:

    def __init__(self, runtime):
        self.rt = runtime

    def join(self, session: LiveSession, identity, connection_id: str) -> Dict[str, Any]:
        existing = session.participants.get(identity.participant_id)
        if existing is not None:
            return self.reconnect(session, existing, connection_id)

        self.ensure_joinable(session)
        participant = Participant(
            participant_id=identity.participant_id,
            display_name=identity.display_name,
            photo_ref=identity.photo_ref,
            connection_id=connection_id,
            joined_at=self.rt.clock(),
        )
        session.participants[participant.participant_id] = participant
        self.rt.mirror.participant_saved(session, participant)

        joined = participant.roster_dict()
        joined['totalCount'] = session.participant_count
        self.rt.broadcaster.to_session(session.code, 'participant.joined', joined)
        self.rt.logger.info(
            f"[participant-join] session={session.code} participant={participant.participant_id} "
            f"total={session.participant_count}"
        )

        reply = self._metadata(session, participant)
        reply.update({
            'reconnected': False,
            'participants': [p.roster_dict() for p in session.participants.values()],
        })
        reply.update(self.current_question_view(session, participant))
        return reply

    @staticmethod
    def ensure_joinable(session: LiveSession) -> None:
        if session.status in SessionStatus.ENDED:
            raise StateError('This quiz session has ended')
        started = session.status in (SessionStatus.IN_PROGRESS, SessionStatus.PAUSED)
        if started and not session.settings.allow_late_join:
            raise StateError('This quiz has already started. Late joining is not allowed.')

    def reconnect(self, session: LiveSession, participant: Participant, connection_id: str) -> Dict[str, Any]:
        participant.connection_id = connection_id
        participant.connected = True
        participant.disconnected_at = None
        self.rt.mirror.participant_saved(session, participant)
        self.rt.broadcaster.to_host(session.code, 'participant.reconnected', {
            'participantId': participant.participant_id,
            'displayName': participant.display_name,
            'totalCount': session.participant_count,
            'connectedCount': session.connected_count,
        })
        self.rt.logger.info(
            f"[participant-reconnect] session={session.code} participant={participant.participant_id}"
        )

        reply = self._metadata(session, participant)
        reply.update({
            'reconnected': True,
            'correctCount': participant.correct_count,
            'answeredCount': participant.answered_count,
        })
        reply.update(self.current_question_view(session, participant))
        return reply

    def _metadata(self, session: LiveSession, participant: Participant) -> Dict[str, Any]:
        return {
            'success': True,
            'sessionCode': session.code,
            'quizTitle': session.quiz_title,
            'participantCount': session.participant_count,
            'status': session.status,
            'currentQuestionIndex': session.current_question_index,
            'totalQuestions': session.total_questions,
            'timePerQuestion': session.settings.time_per_question_sec,
            'yourScore': participant.score,
        }

    def current_question_view(self, session: LiveSession, participant: Participant) -> Dict[str, Any]:
        """The open question without its answer key, plus time remaining."""
        if not session.question_open or session.status not in (SessionStatus.IN_PROGRESS, SessionStatus.PAUSED):
            return {}
        remaining_ms = session.remaining_ms(self.rt.clock())
        question = session.current_question.public_dict()
        question.update({
            'index': session.current_question_index,
            'total': session.total_questions,
            'timeLimit': session.settings.time_per_question_sec,
            'timeRemainingMs': remaining_ms,
            'timeRemaining': math.ceil(remaining_ms / 1000),
        })
        return {
            'currentQuestion': question,
            'hasAnswered': participant.has_answered_current,
            'paused': session.status == SessionStatus.PAUSED,
        }

    def host_snapshot(self, session: LiveSession) -> Dict[str, Any]:
        participants = list(session.participants.values())
        snapshot = {
            'success': True,
            'sessionCode': session.code,
            'quizTitle': session.quiz_title,
            'status': session.status,
            'currentQuestionIndex': session.current_question_index,
            'totalQuestions': session.total_questions,
            'timePerQuestion': session.settings.time_per_question_sec,
            'questionOpen': session.question_open,
            'timeRemainingMs': session.remaining_ms(self.rt.clock()),
            'participantCount': len(participants),
            'connectedCount': session.connected_count,
            'participants': [p.to_dict() for p in participants],
            'leaderboard': build_leaderboard(participants, self.rt.settings.state_leaderboard_size),
        }
        question = session.current_question
        if question is not None:
            current = question.public_dict()
            current.update({
                'index': session.current_question_index,
                'correctAnswers': list(question.correct_answers),
                'explanation': question.explanation,
            })
            snapshot['currentQuestion'] = current
        return snapshot

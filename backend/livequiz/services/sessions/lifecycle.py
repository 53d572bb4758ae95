"""Question lifecycle: lobby -> questions -> results -> completion.

Every public method here expects the caller to hold ``session.lock``. Timer
callbacks take the lock themselves and re-check that the session is still in
the state that armed them before acting.
"""

from typing import Any, Dict

from livequiz.errors import (
    DuplicateAnswerError, LateAnswerError, OutOfQuestionsError, StateError, ValidationError,
)
from .leaderboard import build_leaderboard
from .scoring import ensure_in_time, normalize_selection, score
from .state import AnswerResult, LiveSession, Participant, SessionStatus


class QuestionLifecycleController:

    def __init__(self, runtime):
        self.rt = runtime

    # ---- question start ----

    def advance(self, session: LiveSession) -> int:
        if session.status not in (SessionStatus.LOBBY, SessionStatus.IN_PROGRESS):
            raise StateError(f'Cannot advance a session that is {session.status}')
        if session.current_question_index >= session.total_questions - 1:
            raise OutOfQuestionsError('No more questions. End the quiz.')

        self._cancel_timer(session)
        for participant in session.participants.values():
            participant.reset_for_question()

        session.current_question_index += 1
        session.question_started_at = self.rt.clock()
        session.question_open = True
        session.remaining_ms_when_paused = None
        if session.status == SessionStatus.LOBBY:
            session.transition(SessionStatus.IN_PROGRESS)

        question = session.current_question
        self.rt.broadcaster.to_session(session.code, 'question.start', self.question_payload(session))
        self.rt.broadcaster.to_host(session.code, 'question.hostInfo', {
            'questionIndex': session.current_question_index,
            'correctAnswers': list(question.correct_answers),
            'explanation': question.explanation,
        })
        self.rt.mirror.session_updated(session)
        self.start_question_timer(session, session.time_limit_ms)
        self.rt.logger.info(
            f"[question-start] session={session.code} index={session.current_question_index} "
            f"of={session.total_questions}"
        )
        return session.current_question_index

    def question_payload(self, session: LiveSession) -> Dict[str, Any]:
        payload = session.current_question.public_dict()
        payload.update({
            'index': session.current_question_index,
            'total': session.total_questions,
            'timeLimit': session.settings.time_per_question_sec,
            'timeLimitMs': session.time_limit_ms,
        })
        return payload

    # ---- timers ----

    def start_question_timer(self, session: LiveSession, delay_ms: int) -> None:
        """Arm the question timer; it closes the question once the skew tolerance has also run out."""
        self._cancel_timer(session)
        code = session.code
        index = session.current_question_index
        delay_ms += self.rt.settings.skew_tolerance_ms
        session.timer = self.rt.scheduler.schedule(
            'question', delay_ms / 1000.0, lambda: self._on_question_timeout(code, index)
        )

    def schedule_completion(self, session: LiveSession) -> None:
        self._cancel_timer(session)
        code = session.code
        session.timer = self.rt.scheduler.schedule(
            'complete', self.rt.settings.results_display_sec, lambda: self._on_completion_due(code)
        )

    def schedule_removal(self, session: LiveSession, delay: float) -> None:
        if session.removal_timer is not None:
            session.removal_timer.cancel()
        code = session.code
        session.removal_timer = self.rt.scheduler.schedule(
            'removal', delay, lambda: self._on_removal_due(code, session)
        )
        self.rt.logger.info(f"[session-removal-scheduled] session={code} delay={delay}s")

    @staticmethod
    def _cancel_timer(session: LiveSession) -> None:
        if session.timer is not None:
            session.timer.cancel()
            session.timer = None

    def _on_question_timeout(self, code: str, index: int) -> None:
        session = self.rt.registry.get_session(code)
        if session is None:
            return
        with session.lock:
            if (self.rt.registry.get_session(code) is not session
                    or session.status != SessionStatus.IN_PROGRESS
                    or not session.question_open
                    or session.current_question_index != index):
                self.rt.logger.info(f"[timer-abort] session={code} expected_index={index} mismatch status/question")
                return
            session.timer = None
            self.end_current_question(session)

    def _on_completion_due(self, code: str) -> None:
        session = self.rt.registry.get_session(code)
        if session is None:
            return
        with session.lock:
            # A paused session re-arms completion on resume
            if session.status != SessionStatus.IN_PROGRESS:
                return
            session.timer = None
            self.complete_session(session)

    def _on_removal_due(self, code: str, session: LiveSession) -> None:
        with session.lock:
            if self.rt.registry.get_session(code) is session:
                self.rt.registry.remove_session(code)
                self.rt.logger.info(f"[session-removed] session={code}")

    # ---- answers ----

    def submit_answer(self, session: LiveSession, participant: Participant,
                      question_index: Any, selected_option: Any) -> AnswerResult:
        if isinstance(question_index, bool) or not isinstance(question_index, int):
            raise ValidationError('questionIndex must be an integer')
        selection = normalize_selection(selected_option)
        if session.status == SessionStatus.PAUSED:
            raise StateError('Session is paused')
        if session.status != SessionStatus.IN_PROGRESS:
            raise StateError('No question is open')
        if question_index != session.current_question_index:
            raise StateError('Question has changed')
        if not session.question_open:
            # Arrived after the question closed
            raise LateAnswerError('Time expired for this question')
        question = session.current_question
        known = {o.option_id for o in question.options}
        if known and not selection <= known:
            raise ValidationError('Unknown option')
        if participant.has_answered_current:
            raise DuplicateAnswerError('Already answered this question')

        now = self.rt.clock()
        latency_ms = int(round((now - session.question_started_at) * 1000))
        ensure_in_time(latency_ms, session.time_limit_ms, self.rt.settings.skew_tolerance_ms)
        result = score(question, selection, latency_ms, session.time_limit_ms,
                       session.settings.base_points, session.settings.max_speed_bonus)

        answer = sorted(selection) if len(selection) > 1 else next(iter(selection))
        participant.has_answered_current = True
        participant.current_answer = answer
        participant.last_result = result
        participant.score += result.points
        participant.answered_count += 1
        if result.correct:
            participant.correct_count += 1

        self.rt.mirror.answer_recorded(session, participant, question, answer, result, now)
        self.rt.mirror.participant_saved(session, participant)

        stats = self.answer_stats(session)
        self.rt.broadcaster.to_host(session.code, 'answer.stats', stats)
        if stats['totalParticipants'] > 0 and stats['answered'] == stats['totalParticipants']:
            self.rt.broadcaster.to_host(session.code, 'answer.allComplete', {
                'message': 'All participants have answered',
                'questionIndex': session.current_question_index,
            })
        self.rt.logger.info(
            f"[answer] session={session.code} participant={participant.participant_id} "
            f"index={question_index} correct={result.correct} points={result.points} latency_ms={latency_ms}"
        )
        return result

    def answer_stats(self, session: LiveSession) -> Dict[str, Any]:
        question = session.current_question
        counts = {o.option_id: 0 for o in question.options} if question else {}
        answered = 0
        for participant in session.participants.values():
            if not participant.has_answered_current:
                continue
            answered += 1
            chosen = participant.current_answer
            for option_id in (chosen if isinstance(chosen, list) else [chosen]):
                if option_id in counts:
                    counts[option_id] += 1
        return {
            'questionIndex': session.current_question_index,
            'totalParticipants': session.participant_count,
            'answered': answered,
            'optionCounts': counts,
        }

    # ---- question end / completion ----

    def end_current_question(self, session: LiveSession) -> Dict[str, Any]:
        if session.status != SessionStatus.IN_PROGRESS or not session.question_open:
            raise StateError('No question is open')
        self._cancel_timer(session)
        session.question_open = False

        question = session.current_question
        participants = list(session.participants.values())
        leaderboard = build_leaderboard(participants, self.rt.settings.leaderboard_size)
        ranks = {e['participantId']: e['rank'] for e in build_leaderboard(participants, limit=None)}
        result = {
            'questionIndex': session.current_question_index,
            'correctAnswers': list(question.correct_answers),
            'explanation': question.explanation,
            'stats': self.answer_stats(session),
            'leaderboard': leaderboard if session.settings.show_leaderboard_after_each else [],
            'isLastQuestion': session.is_last_question,
        }
        self.rt.broadcaster.to_session(session.code, 'question.end', result)

        for participant in participants:
            outcome = participant.last_result
            if participant.connected:
                self.rt.broadcaster.to_connection(participant.connection_id, 'question.personalResult', {
                    'questionIndex': session.current_question_index,
                    'wasCorrect': bool(outcome and outcome.correct),
                    'yourAnswer': participant.current_answer,
                    'pointsEarned': outcome.points if outcome else 0,
                    'basePoints': (outcome.points - outcome.speed_bonus) if outcome else 0,
                    'speedBonus': outcome.speed_bonus if outcome else 0,
                    'yourScore': participant.score,
                    'yourRank': ranks.get(participant.participant_id, len(participants)),
                })
            self.rt.mirror.participant_saved(session, participant)

        self.rt.logger.info(
            f"[question-end] session={session.code} index={session.current_question_index} "
            f"answered={result['stats']['answered']}/{result['stats']['totalParticipants']}"
        )
        if session.is_last_question:
            self.schedule_completion(session)
        return result

    def complete_session(self, session: LiveSession) -> Dict[str, Any]:
        if session.status in SessionStatus.ENDED:
            raise StateError('Session has already ended')
        self._cancel_timer(session)
        if session.grace_timer is not None:
            session.grace_timer.cancel()
            session.grace_timer = None
        session.question_open = False
        session.transition(SessionStatus.COMPLETED)
        session.completed_at = self.rt.clock()

        participants = list(session.participants.values())
        final = build_leaderboard(participants, self.rt.settings.final_leaderboard_size)
        ranks = {e['participantId']: e['rank'] for e in build_leaderboard(participants, limit=None)}
        result = {
            'sessionCode': session.code,
            'leaderboard': final,
            'totalQuestions': session.total_questions,
        }
        self.rt.broadcaster.to_session(session.code, 'session.complete', result)
        for participant in participants:
            if participant.connected:
                self.rt.broadcaster.to_connection(participant.connection_id, 'session.personalFinal', {
                    'finalRank': ranks.get(participant.participant_id, len(participants)),
                    'finalScore': participant.score,
                    'correctCount': participant.correct_count,
                    'totalQuestions': session.total_questions,
                })
            self.rt.mirror.participant_saved(session, participant)
        self.rt.mirror.session_updated(session)
        self.rt.logger.info(f"[session-complete] session={session.code} participants={len(participants)}")
        self.schedule_removal(session, self.rt.settings.completed_retention_sec)
        return result

"""Durable mirror of live session state.

The in-memory registry is authoritative. Every write to the database goes
through a one-way queue drained by a background worker, so a slow or failing
database never blocks a command or rolls back a transition. Failed writes are
retried with exponential backoff and logged when they give up.
"""

import json
import queue
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from flask import current_app, has_app_context

from livequiz import db
from livequiz.models import QuizSession, SessionAnswer, SessionParticipant


def _dt(ts: Optional[float]) -> Optional[datetime]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, timezone.utc).replace(tzinfo=None)


class PersistenceWorker:

    def __init__(self, app, logger, inline: bool = False, max_retries: int = 5,
                 backoff_sec: float = 0.5, sleep: Callable[[float], None] = None,
                 spawn: Callable = None):
        self.app = app
        self.logger = logger
        self.inline = inline
        self.max_retries = max_retries
        self.backoff_sec = backoff_sec
        self._sleep = sleep
        self._spawn = spawn
        self._queue: "queue.Queue" = queue.Queue()
        self._started = False
        self._start_lock = threading.Lock()
        self.failed = 0

    def submit(self, description: str, fn: Callable, *args) -> None:
        """Enqueue a write. Never raises."""
        if self.inline:
            self._run(description, fn, args)
            return
        self._ensure_started()
        self._queue.put((description, fn, args))

    def _ensure_started(self) -> None:
        with self._start_lock:
            if self._started:
                return
            self._started = True
        if self._spawn is not None:
            self._spawn(self._loop)
        else:
            threading.Thread(target=self._loop, daemon=True).start()

    def _loop(self) -> None:
        while True:
            description, fn, args = self._queue.get()
            try:
                self._run(description, fn, args)
            finally:
                self._queue.task_done()

    def _run(self, description: str, fn: Callable, args) -> bool:
        for attempt in range(self.max_retries + 1):
            try:
                self._execute(fn, args)
                return True
            except Exception as exc:
                self.logger.warning(
                    f"[persist-retry] op={description} attempt={attempt + 1} error={exc!r}"
                )
                if attempt < self.max_retries and self.backoff_sec > 0 and self._sleep is not None:
                    self._sleep(self.backoff_sec * (2 ** attempt))
        self.failed += 1
        self.logger.error(f"[persist-failed] op={description} retries={self.max_retries}")
        return False

    def _execute(self, fn: Callable, args) -> None:
        if has_app_context() and current_app._get_current_object() is self.app:
            self._commit(fn, args)
            return
        with self.app.app_context():
            self._commit(fn, args)

    @staticmethod
    def _commit(fn: Callable, args) -> None:
        try:
            fn(*args)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise


def _insert_session(data: Dict[str, Any]) -> None:
    db.session.add(QuizSession(**data))


def _update_session(code: str, fields: Dict[str, Any]) -> None:
    row = QuizSession.query.filter_by(session_code=code).first()
    if row is None:
        raise LookupError(f'session {code} not mirrored yet')
    for key, value in fields.items():
        setattr(row, key, value)


def _save_participant(code: str, data: Dict[str, Any]) -> None:
    row = SessionParticipant.query.filter_by(session_code=code, participant_id=data['participant_id']).first()
    if row is None:
        row = SessionParticipant(session_code=code, participant_id=data['participant_id'])
        db.session.add(row)
    for key, value in data.items():
        setattr(row, key, value)


def _append_answer(data: Dict[str, Any]) -> None:
    db.session.add(SessionAnswer(**data))


class SessionMirror:
    """Translates in-memory changes into queued database writes.

    Values are copied when the write is queued, so later in-memory updates
    never race the worker.
    """

    def __init__(self, worker: PersistenceWorker):
        self.worker = worker

    def session_created(self, session) -> None:
        data = {
            'session_code': session.code,
            'quiz_id': session.quiz_id,
            'host_id': session.host_id,
            'status': session.status,
            'current_question_index': session.current_question_index,
            'time_per_question': session.settings.time_per_question_sec,
            'base_points': session.settings.base_points,
            'max_speed_bonus': session.settings.max_speed_bonus,
            'allow_late_join': session.settings.allow_late_join,
            'show_leaderboard_after_each': session.settings.show_leaderboard_after_each,
            'total_questions': session.total_questions,
            'created_at': _dt(session.created_at),
        }
        self.worker.submit(f'create-session {session.code}', _insert_session, data)

    def session_updated(self, session) -> None:
        fields = {
            'status': session.status,
            'current_question_index': session.current_question_index,
            'question_started_at': _dt(session.question_started_at),
            'paused_at': _dt(session.paused_at),
            'remaining_ms_when_paused': session.remaining_ms_when_paused,
            'completed_at': _dt(session.completed_at),
        }
        self.worker.submit(f'update-session {session.code}', _update_session, session.code, fields)

    def participant_saved(self, session, participant) -> None:
        data = {
            'participant_id': participant.participant_id,
            'display_name': participant.display_name,
            'photo_ref': participant.photo_ref,
            'connection_id': participant.connection_id,
            'score': participant.score,
            'correct_count': participant.correct_count,
            'answered_count': participant.answered_count,
            'connected': participant.connected,
            'last_disconnected_at': _dt(participant.disconnected_at),
            'joined_at': _dt(participant.joined_at),
        }
        self.worker.submit(
            f'save-participant {session.code}/{participant.participant_id}',
            _save_participant, session.code, data,
        )

    def answer_recorded(self, session, participant, question, selected_option, result, answered_at) -> None:
        data = {
            'session_code': session.code,
            'participant_id': participant.participant_id,
            'question_index': session.current_question_index,
            'question_id': question.question_id,
            'selected_option': json.dumps(selected_option),
            'correct': result.correct,
            'response_latency_ms': result.response_latency_ms,
            'points_awarded': result.points,
            'speed_bonus': result.speed_bonus,
            'answered_at': _dt(answered_at),
        }
        self.worker.submit(
            f'append-answer {session.code}/{participant.participant_id}/{session.current_question_index}',
            _append_answer, data,
        )

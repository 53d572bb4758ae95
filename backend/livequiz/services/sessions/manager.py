import time
from threading import Lock
from typing import Any, Callable, Dict, Optional

from livequiz.errors import AuthorizationError, NotFoundError, ValidationError
from .broadcast import Broadcaster
from .identity import ClaimedIdentity
from .lifecycle import QuestionLifecycleController
from .persistence import PersistenceWorker, SessionMirror
from .registry import SessionRegistry
from .resync import ResyncHandler
from .runtime import LiveSettings, Runtime
from .scheduler import BackgroundScheduler, ManualScheduler
from .state import LiveSession, QuizSnapshot
from .supervisor import DisconnectSupervisor


def load_quiz_snapshot(quiz_id: Any) -> Optional[QuizSnapshot]:
    from livequiz.models import Quiz
    try:
        quiz_pk = int(quiz_id)
    except (TypeError, ValueError):
        raise ValidationError('Quiz ID must be a number')
    quiz = Quiz.query.filter_by(id=quiz_pk).first()
    return QuizSnapshot.from_model(quiz) if quiz else None


class SessionManager:
    """Entry point for every live session command.

    Each command resolves its session, takes the session lock, checks who is
    asking, and hands off to the lifecycle, resync, or disconnect component.
    """

    def __init__(self, runtime: Runtime, quiz_loader: Callable[[Any], Optional[QuizSnapshot]] = load_quiz_snapshot):
        self.rt = runtime
        self.registry = runtime.registry
        self.lifecycle = QuestionLifecycleController(runtime)
        self.resync = ResyncHandler(runtime)
        self.supervisor = DisconnectSupervisor(runtime, self.lifecycle)
        self.quiz_loader = quiz_loader
        self._identities: Dict[str, Any] = {}
        self._identities_lock = Lock()

    @classmethod
    def from_app(cls, app, socketio) -> 'SessionManager':
        from livequiz import QUIZ_NAMESPACE
        config = app.config
        testing = bool(config.get('TESTING'))
        if testing and not config.get('ENABLE_SCHEDULER_IN_TESTS'):
            scheduler = ManualScheduler()
        else:
            scheduler = BackgroundScheduler(socketio, app.logger)
        worker = PersistenceWorker(
            app,
            app.logger,
            inline=testing,
            max_retries=int(config.get('PERSIST_MAX_RETRIES', 5)),
            backoff_sec=float(config.get('PERSIST_BACKOFF_SEC', 0.5)),
            sleep=socketio.sleep,
            spawn=socketio.start_background_task,
        )
        runtime = Runtime(
            registry=SessionRegistry(int(config.get('SESSION_CODE_MAX_ATTEMPTS', 100))),
            broadcaster=Broadcaster(socketio, QUIZ_NAMESPACE),
            mirror=SessionMirror(worker),
            scheduler=scheduler,
            clock=time.time,
            settings=LiveSettings.from_config(config),
            logger=app.logger,
        )
        return cls(runtime)

    # ---- connection identity ----

    def bind_identity(self, connection_id: str, identity) -> None:
        with self._identities_lock:
            if identity is None:
                self._identities.pop(connection_id, None)
            else:
                self._identities[connection_id] = identity

    def identity_for(self, connection_id: str):
        with self._identities_lock:
            return self._identities.get(connection_id)

    def _require_host(self, session: LiveSession, connection_id: str) -> None:
        identity = self.identity_for(connection_id)
        if identity is None or not identity.is_host or identity.host_id != session.host_id:
            raise AuthorizationError('Only the session host can do that')

    # ---- commands ----

    def create_session(self, connection_id: str, quiz_id: Any) -> Dict[str, Any]:
        identity = self.identity_for(connection_id)
        if identity is None or not identity.is_host:
            raise AuthorizationError('Only hosts can create sessions')
        if quiz_id in (None, ''):
            raise ValidationError('Quiz ID is required')
        quiz = self.quiz_loader(quiz_id)
        if quiz is None:
            raise NotFoundError('Quiz not found')
        if not quiz.questions:
            raise ValidationError('Quiz has no questions')

        settings = self.rt.settings.session_settings(quiz.live_settings)
        session = self.registry.create_unique_session(
            quiz, settings, host_id=identity.host_id,
            host_connection_id=connection_id, created_at=self.rt.clock(),
        )
        self.rt.mirror.session_created(session)
        self.rt.logger.info(
            f"[session-create] session={session.code} quiz={quiz.quiz_id} host={identity.host_id} "
            f"questions={session.total_questions}"
        )
        return {
            'success': True,
            'sessionCode': session.code,
            'quizTitle': session.quiz_title,
            'questionCount': session.total_questions,
            'timePerQuestion': settings.time_per_question_sec,
        }

    def join(self, connection_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        code = data.get('sessionCode')
        if not code or not isinstance(code, str):
            raise ValidationError('Session code, participant id, and display name are required')
        identity = self.identity_for(connection_id)
        with self.registry.locked(code) as session:
            if identity is not None and identity.is_host and identity.host_id == session.host_id:
                self.supervisor.host_reconnected(session, connection_id)
                reply = self.resync.host_snapshot(session)
                reply['role'] = 'host'
                return reply
            claimed = ClaimedIdentity.from_payload(data)
            reply = self.resync.join(session, claimed, connection_id)
            reply['role'] = 'participant'
            return reply

    def next_question(self, connection_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self.registry.locked(data.get('sessionCode')) as session:
            self._require_host(session, connection_id)
            index = self.lifecycle.advance(session)
            return {'success': True, 'questionIndex': index}

    def submit_answer(self, connection_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self.registry.locked(data.get('sessionCode')) as session:
            participant = session.participant_by_connection(connection_id)
            if participant is None:
                raise AuthorizationError('Not joined to this session')
            self.lifecycle.submit_answer(
                session, participant, data.get('questionIndex'), data.get('selectedOption')
            )
            # Correctness stays hidden until the question ends
            return {'success': True, 'acknowledged': True}

    def skip_question(self, connection_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self.registry.locked(data.get('sessionCode')) as session:
            self._require_host(session, connection_id)
            self.lifecycle.end_current_question(session)
            return {'success': True}

    def end_session(self, connection_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self.registry.locked(data.get('sessionCode')) as session:
            self._require_host(session, connection_id)
            self.lifecycle.complete_session(session)
            return {'success': True}

    def session_state(self, connection_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self.registry.locked(data.get('sessionCode')) as session:
            self._require_host(session, connection_id)
            return self.resync.host_snapshot(session)

    def leave(self, connection_id: str, data: Dict[str, Any]) -> None:
        with self.registry.locked(data.get('sessionCode')) as session:
            participant = session.participant_by_connection(connection_id)
            if participant is None:
                return
            self.supervisor.participant_disconnected(session, participant, reason='leave')

    def connection_lost(self, connection_id: str) -> None:
        """Transport-level disconnect for any role the connection held."""
        for session in self.registry.find_by_host_connection(connection_id):
            with session.lock:
                if session.host_connection_id == connection_id:
                    self.supervisor.host_disconnected(session)
        for session, participant in self.registry.find_participant_by_connection(connection_id):
            with session.lock:
                if participant.connection_id == connection_id:
                    self.supervisor.participant_disconnected(session, participant)
        self.bind_identity(connection_id, None)

    def active_sessions(self, host_id: Optional[str] = None):
        return [
            s.summary() for s in self.registry.sessions()
            if host_id is None or s.host_id == host_id
        ]

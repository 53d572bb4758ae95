import random
from contextlib import contextmanager
from threading import RLock
from typing import Dict, Iterator, List, Optional, Tuple

from livequiz.errors import CapacityError, NotFoundError, StateError, ValidationError
from .state import LiveSession, Participant, QuizSnapshot, SessionSettings

# No 0/O or 1/I, so codes read unambiguously off a projector
CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
CODE_LENGTH = 6


class SessionRegistry:
    """Authoritative table of active sessions, keyed by session code."""

    def __init__(self, max_code_attempts: int = 100, rng: Optional[random.Random] = None):
        self.max_code_attempts = max_code_attempts
        self._rng = rng or random.SystemRandom()
        self._sessions: Dict[str, LiveSession] = {}
        self._lock = RLock()

    def generate_code(self) -> str:
        return ''.join(self._rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))

    def create_session(self, code: str, quiz: QuizSnapshot, settings: SessionSettings,
                       host_id: str, host_connection_id: Optional[str], created_at: float) -> LiveSession:
        with self._lock:
            if code in self._sessions:
                raise StateError(f'Session code {code} is already in use')
            session = LiveSession(
                code=code,
                quiz_id=quiz.quiz_id,
                quiz_title=quiz.title,
                host_id=host_id,
                host_connection_id=host_connection_id,
                questions=tuple(quiz.questions),
                settings=settings,
                created_at=created_at,
            )
            self._sessions[code] = session
            return session

    def create_unique_session(self, quiz: QuizSnapshot, settings: SessionSettings,
                              host_id: str, host_connection_id: Optional[str],
                              created_at: float) -> LiveSession:
        with self._lock:
            for _ in range(self.max_code_attempts):
                code = self.generate_code()
                if code not in self._sessions:
                    return self.create_session(code, quiz, settings, host_id,
                                               host_connection_id, created_at)
            raise CapacityError('Failed to generate a unique session code')

    def get_session(self, code: Optional[str]) -> Optional[LiveSession]:
        if not code or not isinstance(code, str):
            return None
        return self._sessions.get(code.strip().upper())

    def require(self, code: Optional[str]) -> LiveSession:
        if not code or not isinstance(code, str):
            raise ValidationError('sessionCode is required')
        session = self.get_session(code)
        if session is None:
            raise NotFoundError('Session not found. Check the code and try again.')
        return session

    @contextmanager
    def locked(self, code: Optional[str]) -> Iterator[LiveSession]:
        """Admit one operation at a time against the session."""
        session = self.require(code)
        with session.lock:
            # Removal may have won the race while we waited for the lock
            if self._sessions.get(session.code) is not session:
                raise NotFoundError('Session not found. Check the code and try again.')
            yield session

    def remove_session(self, code: str) -> Optional[LiveSession]:
        with self._lock:
            session = self._sessions.pop(code, None)
        if session is not None:
            session.cancel_timers()
        return session

    def sessions(self) -> List[LiveSession]:
        with self._lock:
            return list(self._sessions.values())

    def find_by_host_connection(self, connection_id: str) -> List[LiveSession]:
        return [s for s in self.sessions() if s.host_connection_id == connection_id]

    def find_participant_by_connection(self, connection_id: str) -> List[Tuple[LiveSession, Participant]]:
        found = []
        for session in self.sessions():
            participant = session.participant_by_connection(connection_id)
            if participant is not None:
                found.append((session, participant))
        return found

    def __len__(self):
        return len(self._sessions)

    def __contains__(self, code):
        return code in self._sessions

"""In-memory state of a live session: quiz snapshot, participants, status."""

from __future__ import annotations

from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Dict, Optional, Tuple

from livequiz.errors import StateError, ValidationError


class SessionStatus:
    LOBBY = 'lobby'
    IN_PROGRESS = 'in-progress'
    PAUSED = 'paused'
    COMPLETED = 'completed'
    INTERRUPTED = 'interrupted'

    ENDED = (COMPLETED, INTERRUPTED)


# Allowed status transitions. Everything else is rejected.
TRANSITIONS = {
    SessionStatus.LOBBY: {SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED},
    SessionStatus.IN_PROGRESS: {SessionStatus.PAUSED, SessionStatus.COMPLETED, SessionStatus.INTERRUPTED},
    SessionStatus.PAUSED: {SessionStatus.IN_PROGRESS, SessionStatus.INTERRUPTED, SessionStatus.COMPLETED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.INTERRUPTED: set(),
}


@dataclass(frozen=True)
class Option:
    option_id: str
    text: str


@dataclass(frozen=True)
class Question:
    question_id: str
    type: str
    text: str
    options: Tuple[Option, ...]
    correct_answers: Tuple[str, ...]
    image: Optional[str] = None
    marks: int = 1
    explanation: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Question':
        try:
            options = tuple(
                Option(option_id=str(o['option_id']), text=o.get('text', ''))
                for o in data.get('options', [])
            )
            return cls(
                question_id=str(data['question_id']),
                type=data.get('type', 'single_choice'),
                text=data['question_text'],
                options=options,
                correct_answers=tuple(str(a) for a in data.get('correct_answers', [])),
                image=data.get('image'),
                marks=int(data.get('marks', 1)),
                explanation=data.get('explanation'),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError(f'Malformed question: {exc}') from exc

    def public_dict(self) -> Dict[str, Any]:
        """Question content with the answer key withheld."""
        return {
            'question_id': self.question_id,
            'question_text': self.text,
            'type': self.type,
            'image': self.image,
            'options': [{'option_id': o.option_id, 'text': o.text} for o in self.options],
            'marks': self.marks,
        }


@dataclass(frozen=True)
class QuizSnapshot:
    quiz_id: int
    title: str
    questions: Tuple[Question, ...]
    live_settings: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_model(cls, quiz) -> 'QuizSnapshot':
        return cls(
            quiz_id=quiz.id,
            title=quiz.title,
            questions=tuple(Question.from_dict(q) for q in quiz.question_list()),
            live_settings=quiz.settings(),
        )


@dataclass(frozen=True)
class SessionSettings:
    time_per_question_sec: int = 30
    base_points: int = 100
    max_speed_bonus: int = 50
    allow_late_join: bool = False
    show_leaderboard_after_each: bool = True


@dataclass
class AnswerResult:
    correct: bool
    points: int
    speed_bonus: int
    response_latency_ms: int = 0


@dataclass
class Participant:
    participant_id: str
    display_name: str
    photo_ref: Optional[str] = None
    connection_id: Optional[str] = None
    score: int = 0
    correct_count: int = 0
    answered_count: int = 0
    current_answer: Any = None
    has_answered_current: bool = False
    connected: bool = True
    joined_at: float = 0.0
    disconnected_at: Optional[float] = None
    last_result: Optional[AnswerResult] = None

    def reset_for_question(self) -> None:
        self.current_answer = None
        self.has_answered_current = False
        self.last_result = None

    def roster_dict(self) -> Dict[str, Any]:
        return {
            'participantId': self.participant_id,
            'displayName': self.display_name,
            'photoRef': self.photo_ref,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.roster_dict()
        data.update({
            'score': self.score,
            'correctCount': self.correct_count,
            'answeredCount': self.answered_count,
            'connected': self.connected,
            'hasAnswered': self.has_answered_current,
        })
        return data


@dataclass
class LiveSession:
    code: str
    quiz_id: int
    quiz_title: str
    host_id: str
    host_connection_id: Optional[str]
    questions: Tuple[Question, ...]
    settings: SessionSettings
    created_at: float
    current_question_index: int = -1
    question_started_at: Optional[float] = None
    question_open: bool = False
    status: str = SessionStatus.LOBBY
    paused_at: Optional[float] = None
    remaining_ms_when_paused: Optional[int] = None
    completed_at: Optional[float] = None
    participants: Dict[str, Participant] = field(default_factory=dict)
    timer: Any = None
    grace_timer: Any = None
    removal_timer: Any = None
    lock: Any = field(default_factory=RLock, repr=False, compare=False)

    @property
    def total_questions(self) -> int:
        return len(self.questions)

    @property
    def time_limit_ms(self) -> int:
        return self.settings.time_per_question_sec * 1000

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_question_index < len(self.questions):
            return self.questions[self.current_question_index]
        return None

    @property
    def is_last_question(self) -> bool:
        return self.current_question_index >= len(self.questions) - 1

    @property
    def participant_count(self) -> int:
        return len(self.participants)

    @property
    def connected_count(self) -> int:
        return sum(1 for p in self.participants.values() if p.connected)

    def transition(self, new_status: str) -> None:
        if new_status not in TRANSITIONS.get(self.status, set()):
            raise StateError(f'Cannot move session from {self.status} to {new_status}')
        self.status = new_status

    def participant_by_connection(self, connection_id: str) -> Optional[Participant]:
        for participant in list(self.participants.values()):
            if participant.connection_id == connection_id:
                return participant
        return None

    def remaining_ms(self, now: float) -> int:
        """Time left on the open question; the frozen remainder while paused."""
        if not self.question_open:
            return 0
        if self.status == SessionStatus.PAUSED and self.remaining_ms_when_paused is not None:
            return self.remaining_ms_when_paused
        elapsed_ms = (now - (self.question_started_at or now)) * 1000
        return max(0, int(self.time_limit_ms - elapsed_ms))

    def cancel_timers(self) -> None:
        for attr in ('timer', 'grace_timer', 'removal_timer'):
            timer = getattr(self, attr)
            if timer is not None:
                timer.cancel()
                setattr(self, attr, None)

    def summary(self) -> Dict[str, Any]:
        return {
            'sessionCode': self.code,
            'quizTitle': self.quiz_title,
            'status': self.status,
            'participantCount': self.participant_count,
            'currentQuestionIndex': self.current_question_index,
            'totalQuestions': self.total_questions,
            'createdAt': self.created_at,
        }

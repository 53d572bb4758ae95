import math
from typing import Any, Iterable

from livequiz.errors import LateAnswerError, ValidationError
from .state import AnswerResult, Question


def normalize_selection(selected_option: Any) -> frozenset:
    """Return the selection as a set of option ids.

    Accepts a single option id or a list of ids (multi-select).
    """
    if isinstance(selected_option, (list, tuple, set, frozenset)):
        values: Iterable[Any] = selected_option
    else:
        values = [selected_option]
    selection = frozenset(str(v) for v in values if v is not None and str(v) != '')
    if not selection:
        raise ValidationError('selectedOption is required')
    return selection


def is_correct(question: Question, selected_option: Any) -> bool:
    # No partial credit: the whole selection must equal the answer key
    return normalize_selection(selected_option) == frozenset(question.correct_answers)


def speed_bonus(response_latency_ms: int, time_limit_ms: int, max_speed_bonus: int) -> int:
    if time_limit_ms <= 0 or max_speed_bonus <= 0:
        return 0
    latency = max(0, response_latency_ms)
    ratio = 1 - (latency / time_limit_ms)
    # half-up rounding
    bonus = math.floor(max_speed_bonus * ratio + 0.5)
    return max(0, min(max_speed_bonus, bonus))


def ensure_in_time(response_latency_ms: int, time_limit_ms: int, skew_tolerance_ms: int) -> None:
    if response_latency_ms > time_limit_ms + skew_tolerance_ms:
        raise LateAnswerError('Time expired for this question')


def score(question: Question, selected_option: Any, response_latency_ms: int,
          time_limit_ms: int, base_points: int, max_speed_bonus: int) -> AnswerResult:
    """Score one answer.

    Incorrect answers earn nothing. Correct answers earn ``base_points`` plus
    a bonus that shrinks linearly from ``max_speed_bonus`` to 0 over the time
    limit.
    """
    if not is_correct(question, selected_option):
        return AnswerResult(correct=False, points=0, speed_bonus=0,
                            response_latency_ms=response_latency_ms)
    bonus = speed_bonus(response_latency_ms, time_limit_ms, max_speed_bonus)
    return AnswerResult(correct=True, points=base_points + bonus, speed_bonus=bonus,
                        response_latency_ms=response_latency_ms)

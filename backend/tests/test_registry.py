import random

import pytest

from conftest import make_snapshot
from livequiz.errors import CapacityError, NotFoundError, StateError, ValidationError
from livequiz.services.sessions.registry import CODE_ALPHABET, CODE_LENGTH, SessionRegistry
from livequiz.services.sessions.state import SessionSettings


class _StuckRandom(random.Random):
    def choice(self, seq):
        return seq[0]


def _create(registry, code='ABC234'):
    return registry.create_session(code, make_snapshot(2), SessionSettings(), 'host', 'sid', 0.0)


def test_generated_codes_use_the_unambiguous_alphabet():
    registry = SessionRegistry(rng=random.Random(7))
    for _ in range(50):
        code = registry.generate_code()
        assert len(code) == CODE_LENGTH
        assert set(code) <= set(CODE_ALPHABET)
        assert not set(code) & set('01IO')


def test_create_get_and_remove():
    registry = SessionRegistry()
    session = _create(registry)
    assert registry.get_session('ABC234') is session
    assert registry.get_session('abc234') is session
    assert session.current_question_index == -1
    assert session.status == 'lobby'
    registry.remove_session('ABC234')
    assert registry.get_session('ABC234') is None


def test_duplicate_code_is_rejected():
    registry = SessionRegistry()
    _create(registry)
    with pytest.raises(StateError):
        _create(registry)


def test_code_space_exhaustion_raises_capacity_error():
    registry = SessionRegistry(max_code_attempts=5, rng=_StuckRandom())
    first = registry.create_unique_session(make_snapshot(1), SessionSettings(), 'host', 'sid', 0.0)
    assert first.code == CODE_ALPHABET[0] * CODE_LENGTH
    with pytest.raises(CapacityError):
        registry.create_unique_session(make_snapshot(1), SessionSettings(), 'host', 'sid', 0.0)


def test_locked_requires_a_known_code():
    registry = SessionRegistry()
    with pytest.raises(ValidationError):
        with registry.locked(None):
            pass
    with pytest.raises(NotFoundError):
        with registry.locked('ZZZZZZ'):
            pass


def test_remove_cancels_timers():
    registry = SessionRegistry()
    session = _create(registry)

    class _Timer:
        cancelled = False

        def cancel(self):
            self.cancelled = True

    session.timer, session.grace_timer = _Timer(), _Timer()
    timer, grace = session.timer, session.grace_timer
    registry.remove_session(session.code)
    assert timer.cancelled and grace.cancelled

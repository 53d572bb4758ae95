import os
import sys
import json
import pytest

# Ensure the backend root (containing the `livequiz` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from livequiz import create_app, db, socketio, QUIZ_NAMESPACE
from livequiz.services.sessions import LiveSettings, Runtime, SessionManager
from livequiz.services.sessions.identity import TokenIdentity
from livequiz.services.sessions.persistence import PersistenceWorker, SessionMirror
from livequiz.services.sessions.registry import SessionRegistry
from livequiz.services.sessions.scheduler import ManualScheduler
from livequiz.services.sessions.state import Question, QuizSnapshot


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    JWT_SECRET_KEY = 'test-jwt-secret-with-enough-length-for-hs256'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    CORS_ORIGINS = ['http://localhost:5173']
    PERSIST_BACKOFF_SEC = 0
    PERSIST_MAX_RETRIES = 2


HOST_SID = 'host-sid'
HOST_ID = '1'


def make_questions(count=3):
    questions = []
    for i in range(count):
        questions.append({
            'question_id': f'q{i + 1}',
            'type': 'single_choice',
            'question_text': f'Question {i + 1}?',
            'options': [
                {'option_id': 'a', 'text': 'A'},
                {'option_id': 'b', 'text': 'B'},
                {'option_id': 'c', 'text': 'C'},
            ],
            'correct_answers': ['b'],
            'explanation': f'B is right for question {i + 1}',
        })
    return questions


def make_snapshot(count=3, live_settings=None, quiz_id=1):
    return QuizSnapshot(
        quiz_id=quiz_id,
        title='Test Quiz',
        questions=tuple(Question.from_dict(q) for q in make_questions(count)),
        live_settings=live_settings or {},
    )


class FakeClock:
    def __init__(self, start=1_700_000_000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance_ms(self, ms):
        self.now += ms / 1000.0


class RecordingBroadcaster:
    def __init__(self):
        self.sent = []

    def emit(self, event, payload, to):
        self.sent.append((event, payload, to))

    def to_session(self, code, event, payload):
        self.emit(event, payload, f'session:{code}')

    def to_host(self, code, event, payload):
        self.emit(event, payload, f'host:{code}')

    def to_connection(self, connection_id, event, payload):
        if connection_id:
            self.emit(event, payload, connection_id)

    def events(self, name, to=None):
        return [p for (e, p, t) in self.sent if e == name and (to is None or t == to)]

    def last(self, name, to=None):
        found = self.events(name, to)
        return found[-1] if found else None


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import livequiz.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def scheduler(clock):
    return ManualScheduler(clock)


@pytest.fixture()
def worker(flask_app):
    return PersistenceWorker(flask_app, flask_app.logger, inline=True, max_retries=2, backoff_sec=0)


@pytest.fixture()
def quizzes():
    return {1: make_snapshot(3), 2: make_snapshot(1, {'allowLateJoin': True})}


@pytest.fixture()
def manager(flask_app, clock, broadcaster, scheduler, worker, quizzes):
    runtime = Runtime(
        registry=SessionRegistry(),
        broadcaster=broadcaster,
        mirror=SessionMirror(worker),
        scheduler=scheduler,
        clock=clock,
        settings=LiveSettings(),
        logger=flask_app.logger,
    )
    mgr = SessionManager(runtime, quiz_loader=lambda quiz_id: quizzes.get(quiz_id))
    mgr.bind_identity(HOST_SID, TokenIdentity(host_id=HOST_ID, display_name='host'))
    return mgr


@pytest.fixture()
def session_code(manager):
    """A fresh lobby session for quiz 1, hosted on HOST_SID."""
    return manager.create_session(HOST_SID, 1)['sessionCode']


def join(manager, code, pid, name=None, sid=None):
    return manager.join(sid or f'sid-{pid}', {
        'sessionCode': code,
        'participantId': pid,
        'displayName': name or pid.title(),
    })


@pytest.fixture()
def seeded(flask_app):
    """A host account and a two question quiz in the database."""
    from livequiz.models import User, Quiz
    host = User(username='host')
    host.set_password('password')
    db.session.add(host)
    quiz = Quiz(
        title='Socket Quiz',
        questions=json.dumps(make_questions(2)),
        live_settings=json.dumps({'timePerQuestion': 30}),
    )
    db.session.add(quiz)
    db.session.commit()
    return {'host': host, 'quiz': quiz}


@pytest.fixture()
def host_token(client, seeded):
    res = client.post('/login', json={'username': 'host', 'password': 'password'})
    assert res.status_code == 200
    return res.get_json()['accessToken']


@pytest.fixture()
def host_client(flask_app, host_token):
    test_client = socketio.test_client(
        flask_app,
        namespace=QUIZ_NAMESPACE,
        auth={'token': host_token},
    )
    yield test_client
    if test_client.is_connected(QUIZ_NAMESPACE):
        test_client.disconnect(namespace=QUIZ_NAMESPACE)


@pytest.fixture()
def make_player(flask_app):
    created = []

    def _make():
        test_client = socketio.test_client(flask_app, namespace=QUIZ_NAMESPACE)
        created.append(test_client)
        return test_client

    yield _make
    for test_client in created:
        if test_client.is_connected(QUIZ_NAMESPACE):
            test_client.disconnect(namespace=QUIZ_NAMESPACE)

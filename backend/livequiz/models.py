from livequiz import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import json


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(UserMixin, db.Model):
    """A host account. Hosts authenticate with a password and receive a token."""
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class Quiz(db.Model):
    """A quiz definition. Authoring happens elsewhere; live sessions only read it."""
    __tablename__ = 'quiz'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    questions = db.Column(db.Text, nullable=False, default='[]')  # JSON-encoded list of questions
    live_settings = db.Column(db.Text, nullable=True)  # JSON-encoded dict
    created_at = db.Column(db.DateTime, default=_utcnow)

    def question_list(self):
        try:
            return json.loads(self.questions or '[]')
        except ValueError:
            return []

    def settings(self):
        try:
            return json.loads(self.live_settings) if self.live_settings else {}
        except ValueError:
            return {}


class QuizSession(db.Model):
    __tablename__ = 'quiz_session'
    id = db.Column(db.Integer, primary_key=True)
    session_code = db.Column(db.String(6), unique=True, nullable=False, index=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False)
    host_id = db.Column(db.String(64), nullable=False, index=True)
    status = db.Column(db.String(32), default='lobby', index=True)  # lobby, in-progress, paused, completed, interrupted
    current_question_index = db.Column(db.Integer, default=-1)
    question_started_at = db.Column(db.DateTime, nullable=True)
    time_per_question = db.Column(db.Integer, nullable=False, default=30)
    base_points = db.Column(db.Integer, nullable=False, default=100)
    max_speed_bonus = db.Column(db.Integer, nullable=False, default=50)
    allow_late_join = db.Column(db.Boolean, default=False)
    show_leaderboard_after_each = db.Column(db.Boolean, default=True)
    paused_at = db.Column(db.DateTime, nullable=True)
    remaining_ms_when_paused = db.Column(db.Integer, nullable=True)
    total_questions = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=_utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)


class SessionParticipant(db.Model):
    __tablename__ = 'session_participant'
    __table_args__ = (
        db.UniqueConstraint('session_code', 'participant_id', name='uq_session_participant'),
    )
    id = db.Column(db.Integer, primary_key=True)
    session_code = db.Column(db.String(6), nullable=False, index=True)
    participant_id = db.Column(db.String(128), nullable=False)
    display_name = db.Column(db.String(128), nullable=False)
    photo_ref = db.Column(db.String(512), nullable=True)
    connection_id = db.Column(db.String(64), nullable=True)
    score = db.Column(db.Integer, default=0)
    correct_count = db.Column(db.Integer, default=0)
    answered_count = db.Column(db.Integer, default=0)
    connected = db.Column(db.Boolean, default=True)
    last_disconnected_at = db.Column(db.DateTime, nullable=True)
    joined_at = db.Column(db.DateTime, default=_utcnow)


class SessionAnswer(db.Model):
    """Append-only record of one accepted answer."""
    __tablename__ = 'session_answer'
    __table_args__ = (
        db.Index('ix_session_answer_question', 'session_code', 'question_index'),
    )
    id = db.Column(db.Integer, primary_key=True)
    session_code = db.Column(db.String(6), nullable=False)
    participant_id = db.Column(db.String(128), nullable=False, index=True)
    question_index = db.Column(db.Integer, nullable=False)
    question_id = db.Column(db.String(64), nullable=False)
    selected_option = db.Column(db.Text, nullable=False)  # JSON-encoded option id or list of ids
    correct = db.Column(db.Boolean, nullable=False)
    response_latency_ms = db.Column(db.Integer, nullable=False)
    points_awarded = db.Column(db.Integer, default=0)
    speed_bonus = db.Column(db.Integer, default=0)
    answered_at = db.Column(db.DateTime, default=_utcnow)


def seed_demo_data():
    """Create a host account and a short sample quiz."""
    host = User(username='host')
    host.set_password('password')
    db.session.add(host)

    questions = [
        {
            'question_id': 'q1',
            'type': 'single_choice',
            'question_text': 'Which planet is known as the Red Planet?',
            'options': [
                {'option_id': 'a', 'text': 'Venus'},
                {'option_id': 'b', 'text': 'Mars'},
                {'option_id': 'c', 'text': 'Jupiter'},
            ],
            'correct_answers': ['b'],
            'explanation': 'Iron oxide on the surface gives Mars its colour.',
        },
        {
            'question_id': 'q2',
            'type': 'multiple_choice',
            'question_text': 'Which of these are prime numbers?',
            'options': [
                {'option_id': 'a', 'text': '2'},
                {'option_id': 'b', 'text': '9'},
                {'option_id': 'c', 'text': '11'},
            ],
            'correct_answers': ['a', 'c'],
        },
    ]
    quiz = Quiz(
        title='Warm-up',
        description='A two question sample quiz',
        questions=json.dumps(questions),
        live_settings=json.dumps({'timePerQuestion': 20, 'allowLateJoin': True}),
    )
    db.session.add(quiz)
    db.session.commit()

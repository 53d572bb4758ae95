from flask_socketio import join_room, leave_room
from flask import current_app, request
from functools import wraps
from livequiz import socketio, QUIZ_NAMESPACE
from livequiz.errors import LiveQuizError, StateError, ValidationError
from livequiz.services.sessions.broadcast import host_room, session_room
from livequiz.services.sessions.identity import resolve_identity


def _manager():
    return current_app.extensions['livequiz']


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def command(name):
    """Wrap a handler so every outcome becomes an ack.

    Domain errors are returned as error replies; anything unexpected is
    logged with the session code and returned as a generic state error.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(data=None, *args):
            if data is None:
                data = {}
            if not isinstance(data, dict):
                return ValidationError('Payload must be an object').to_reply()
            try:
                return fn(data)
            except LiveQuizError as exc:
                current_app.logger.info(
                    f"[command-reject] command={name} session={data.get('sessionCode')} code={exc.code} message={exc.message}"
                )
                return exc.to_reply()
            except Exception:
                current_app.logger.exception(
                    f"[command-error] command={name} session={data.get('sessionCode')} sid={_get_sid()}"
                )
                return StateError('Something went wrong handling that request').to_reply()
        return wrapper
    return decorator


def handle_connect(auth=None):
    identity = resolve_identity(auth, current_app.logger)
    _manager().bind_identity(_get_sid(), identity)
    current_app.logger.debug(f"[connect] sid={_get_sid()} host={identity is not None}")


def handle_disconnect(*args):
    sid = _get_sid()
    try:
        _manager().connection_lost(sid)
    except Exception:
        current_app.logger.exception(f"[disconnect-error] sid={sid}")


@command('session.create')
def handle_session_create(data):
    reply = _manager().create_session(_get_sid(), data.get('quizId'))
    code = reply['sessionCode']
    join_room(session_room(code))
    join_room(host_room(code))
    return reply


@command('session.join')
def handle_session_join(data):
    reply = _manager().join(_get_sid(), data)
    code = reply['sessionCode']
    join_room(session_room(code))
    if reply.get('role') == 'host':
        join_room(host_room(code))
    return reply


@command('question.next')
def handle_question_next(data):
    return _manager().next_question(_get_sid(), data)


@command('answer.submit')
def handle_answer_submit(data):
    return _manager().submit_answer(_get_sid(), data)


@command('question.skip')
def handle_question_skip(data):
    return _manager().skip_question(_get_sid(), data)


@command('session.end')
def handle_session_end(data):
    return _manager().end_session(_get_sid(), data)


@command('session.state')
def handle_session_state(data):
    return _manager().session_state(_get_sid(), data)


@command('session.leave')
def handle_session_leave(data):
    _manager().leave(_get_sid(), data)
    leave_room(session_room(data['sessionCode'].strip().upper()))
    return None


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on the quiz namespace."""
    socketio.on_event('connect', handle_connect, namespace=QUIZ_NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=QUIZ_NAMESPACE)
    socketio.on_event('session.create', handle_session_create, namespace=QUIZ_NAMESPACE)
    socketio.on_event('session.join', handle_session_join, namespace=QUIZ_NAMESPACE)
    socketio.on_event('question.next', handle_question_next, namespace=QUIZ_NAMESPACE)
    socketio.on_event('answer.submit', handle_answer_submit, namespace=QUIZ_NAMESPACE)
    socketio.on_event('question.skip', handle_question_skip, namespace=QUIZ_NAMESPACE)
    socketio.on_event('session.end', handle_session_end, namespace=QUIZ_NAMESPACE)
    socketio.on_event('session.state', handle_session_state, namespace=QUIZ_NAMESPACE)
    socketio.on_event('session.leave', handle_session_leave, namespace=QUIZ_NAMESPACE)

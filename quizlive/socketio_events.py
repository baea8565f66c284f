import functools
from typing import Any, Dict

from flask import current_app
from flask_socketio import emit

from quizlive import socketio
from quizlive.errors import SessionError
from quizlive.gateway import SocketIOGateway
from quizlive.models import AnswerSubmission


def _registry():
    return current_app.extensions['quizlive']['registry']


def _gateway():
    return current_app.extensions['quizlive']['gateway']


def _get_sid() -> str:
    return _gateway().identify()


def reports_errors(handler):
    """Turn SessionError into an `error` event for the requesting connection."""

    @functools.wraps(handler)
    def wrapper(data=None):
        payload = data if isinstance(data, dict) else {}
        try:
            return handler(payload)
        except SessionError as exc:
            current_app.logger.info(f"[error] sid={_get_sid()} event={handler.__name__} code={exc.code}")
            emit('error', exc.to_dict())

    return wrapper


def _required(data: Dict[str, Any], *fields):
    missing = [f for f in fields if str(data.get(f) or '').strip() == '']
    if missing:
        emit('error', {'message': f"{', '.join(missing)} required", 'code': 'bad_request'})
        return False
    return True


def handle_connect(auth=None):
    current_app.logger.info(f"[connect] sid={_get_sid()}")
    emit('connected', {'id': _get_sid()})


def handle_disconnect(sid):
    current_app.logger.info(f"[disconnect] sid={sid}")
    _registry().handle_disconnect(sid)


@reports_errors
def handle_create_game(data):
    session, _, _ = _registry().create_or_attach(_get_sid(), quiz=data.get('quiz'))
    emit('game-created', {'pin': session.code, 'quiz': session.quiz.to_dict()})


@reports_errors
def handle_host_join_game(data):
    session, state, created = _registry().create_or_attach(
        _get_sid(), join_code=data.get('pin'), quiz=data.get('quiz')
    )
    emit('host-joined', {
        'pin': session.code,
        'created': created,
        'quiz': session.quiz.to_dict(),
        'gameState': state,
    })


@reports_errors
def handle_start_game(data):
    if not _required(data, 'pin'):
        return
    _registry().start_game(data['pin'], _get_sid())


@reports_errors
def handle_join_game(data):
    if not _required(data, 'pin', 'playerName'):
        return
    _registry().join_player(data['pin'], _get_sid(), str(data['playerName']).strip())


def handle_submit_answer(data=None):
    # Straggling or malformed answers are dropped without an error event
    submission = AnswerSubmission.from_dict(data)
    if submission is None:
        return
    _registry().submit_answer(
        _get_sid(), submission.question_id, submission.option_index, submission.elapsed,
        join_code=data.get('pin'),
    )


@reports_errors
def handle_pause_game(data):
    if not _required(data, 'pin'):
        return
    _registry().toggle_pause(data['pin'], _get_sid())


@reports_errors
def handle_end_game(data):
    if not _required(data, 'pin'):
        return
    _registry().end_game(data['pin'], _get_sid())


@reports_errors
def handle_kick_player(data):
    if not _required(data, 'pin', 'playerId'):
        return
    _registry().kick_player(data['pin'], _get_sid(), data['playerId'])


def handle_ping(data=None):
    emit('pong', data or {})


def register_socketio_handlers(namespace: str = '/') -> SocketIOGateway:
    """Register Socket.IO event handlers on `namespace` and return the gateway bound to it."""
    gateway = SocketIOGateway(socketio, namespace=namespace)
    socketio.on_event('connect', handle_connect, namespace=namespace)
    gateway.on_disconnect(handle_disconnect)
    socketio.on_event('create-game', handle_create_game, namespace=namespace)
    socketio.on_event('host-join-game', handle_host_join_game, namespace=namespace)
    socketio.on_event('start-game', handle_start_game, namespace=namespace)
    socketio.on_event('join-game', handle_join_game, namespace=namespace)
    socketio.on_event('submit-answer', handle_submit_answer, namespace=namespace)
    socketio.on_event('pause-game', handle_pause_game, namespace=namespace)
    socketio.on_event('end-game', handle_end_game, namespace=namespace)
    socketio.on_event('kick-player', handle_kick_player, namespace=namespace)
    socketio.on_event('ping', handle_ping, namespace=namespace)
    return gateway

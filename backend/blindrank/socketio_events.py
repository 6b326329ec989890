from flask_socketio import join_room, leave_room, emit
from flask import current_app, request
from blindrank import socketio, store
from blindrank.session import RoomSession
from blindrank.store import room_path
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)

# socket id -> {'game_code', 'player_id'}
_sid_to_ctx: Dict[str, Dict[str, Any]] = {}
# socket id -> host session driving advancement for that socket
_host_sessions: Dict[str, RoomSession] = {}


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    sid = _get_sid()
    _sid_to_ctx.pop(sid, None)
    _close_host_session(sid)


def handle_join_game(data):
    game_code = ((data or {}).get('game_code') or '').upper()
    player_id = (data or {}).get('player_id')
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    sid = _get_sid()
    channel = f"game:{game_code}"
    join_room(channel)
    _sid_to_ctx[sid] = {'game_code': game_code, 'player_id': player_id}

    room = store.get(room_path(game_code))
    is_host = bool(room and player_id and room.get('host_id') == player_id)
    if is_host and sid not in _host_sessions:
        _host_sessions[sid] = _open_host_session(sid, game_code, player_id)
    emit('joined', {'room': channel, 'is_host': is_host})


def handle_leave_game(data):
    game_code = ((data or {}).get('game_code') or '').upper()
    if not game_code:
        emit('error', {'message': 'game_code is required'})
        return
    sid = _get_sid()
    channel = f"game:{game_code}"
    leave_room(channel)
    _sid_to_ctx.pop(sid, None)
    _close_host_session(sid)
    emit('left', {'room': channel})


def handle_ping(data):
    emit('pong', data or {})


# ---- Host session lifecycle helpers ----

def _open_host_session(sid: str, game_code: str, player_id: str) -> RoomSession:
    app = current_app._get_current_object()
    cfg = app.config
    background = not cfg.get('TESTING')

    def _on_error(exc):
        socketio.emit(
            'room_error',
            {'game_code': game_code, 'error': str(exc), 'retryable': exc.status_code == 503},
            to=sid,
            namespace='/ws',
        )

    session = RoomSession(
        store,
        game_code,
        player_id,
        round_duration=int(cfg.get('ROUND_DURATION_SEC', 20)),
        poll_interval=int(cfg.get('TIMER_POLL_MS', 200)) / 1000.0,
        spawn=socketio.start_background_task if background else None,
        sleep=socketio.sleep,
        app=app,
        on_error=_on_error,
    )
    return session.open()


def _close_host_session(sid: str) -> None:
    session = _host_sessions.pop(sid, None)
    if session:
        session.close()


def host_session_for(sid: str):
    return _host_sessions.get(sid)


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
        socketio.on_event('join_game', handle_join_game, namespace=namespace)
        socketio.on_event('leave_game', handle_leave_game, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)

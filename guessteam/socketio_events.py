from flask_socketio import join_room, leave_room, emit
from flask import request
from guessteam import socketio
from guessteam.services.games import engine, inactivity, store
from guessteam.services.games.errors import GameError
from guessteam.services.games.notifications import room_channel
from typing import Dict, Any


_sid_to_ctx: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    # request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect():
    # Liveness is judged by heartbeats, so a dropped socket does not evict
    _sid_to_ctx.pop(_get_sid(), None)


def handle_join_room(data):
    """Subscribe this socket to a room's change notifications."""
    data = data or {}
    room_code = store.normalize_code(data.get('room_code'))
    if not room_code:
        emit('error', {'error': 'invalid_payload', 'message': 'room_code is required'})
        return
    session_id = str(data.get('session_id') or '').strip()
    try:
        room = store.load_room_by_code(room_code)
        player = store.find_player_by_session(room.id, session_id)
    except GameError as exc:
        emit('error', exc.to_dict())
        return
    channel = room_channel(room_code)
    join_room(channel)
    _sid_to_ctx[_get_sid()] = {'room_code': room_code, 'session_id': session_id}
    # Sockets without a player may still listen
    if player is not None:
        inactivity.record_activity(room.id, player.id)
    emit('joined', {'room': channel, 'room_code': room_code, 'player_id': player.id if player else None})


def handle_leave_room(data):
    data = data or {}
    room_code = store.normalize_code(data.get('room_code'))
    if not room_code:
        emit('error', {'error': 'invalid_payload', 'message': 'room_code is required'})
        return
    channel = room_channel(room_code)
    leave_room(channel)
    _sid_to_ctx.pop(_get_sid(), None)
    emit('left', {'room': channel})


def handle_heartbeat(data):
    data = data or {}
    ctx = _sid_to_ctx.get(_get_sid(), {})
    room_code = store.normalize_code(data.get('room_code') or ctx.get('room_code'))
    session_id = str(data.get('session_id') or ctx.get('session_id') or '').strip()
    try:
        player = engine.heartbeat(room_code, session_id)
    except GameError as exc:
        emit('error', exc.to_dict())
        return
    emit('heartbeat_ack', {'room_code': room_code, 'player_id': player.id})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = {
        'connect': handle_connect,
        'disconnect': handle_disconnect,
        'join_room': handle_join_room,
        'leave_room': handle_leave_room,
        'heartbeat': handle_heartbeat,
        'ping': handle_ping,
    }
    for event, handler in handlers.items():
        socketio.on_event(event, handler, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        for event, handler in handlers.items():
            socketio.on_event(event, handler, namespace='/')

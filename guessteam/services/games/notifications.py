from typing import Iterable

from flask import current_app

from guessteam import socketio

ROOM_CHANGED = 'room_changed'
PLAYERS_CHANGED = 'players_changed'
ENTRIES_CHANGED = 'entries_changed'
_EVENTS = {'room': ROOM_CHANGED, 'players': PLAYERS_CHANGED, 'entries': ENTRIES_CHANGED}


def room_channel(room_code: str) -> str:
    return f"room:{room_code}"


def publish(room_code: str, kinds: Iterable[str]) -> None:
    """Tell subscribers which parts of a room changed.

    Payloads never carry state; clients re-fetch with their own session so
    the concealed answer only reaches the chooser.
    """
    for kind in sorted(set(kinds)):
        event = _EVENTS.get(kind)
        if event is None:
            continue
        socketio.emit(event, {'room_code': room_code}, to=room_channel(room_code), namespace='/ws')
        current_app.logger.debug(f"[notify] room={room_code} event={event}")

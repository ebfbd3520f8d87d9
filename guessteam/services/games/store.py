"""Load/save access to rooms, players and exchange entries.

All writes to a room go through :func:`mutate_room`, which serializes
mutations per room, commits once, and only then publishes change
notifications and runs post-commit hooks (timers).
"""

import threading
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from guessteam import db
from guessteam.models import ExchangeEntry, Player, Room
from .errors import GameError, NotFound, StorageError


_room_locks: Dict[int, threading.RLock] = {}
_room_locks_guard = threading.Lock()


def room_lock(room_id: int) -> threading.RLock:
    with _room_locks_guard:
        lock = _room_locks.get(room_id)
        if lock is None:
            lock = _room_locks[room_id] = threading.RLock()
        return lock


def _wrap_storage(exc: SQLAlchemyError) -> StorageError:
    db.session.rollback()
    return StorageError(f'State store failure: {exc.__class__.__name__}')


def normalize_code(code: str) -> str:
    return (code or '').strip().upper()


def load_room(room_id: int) -> Room:
    try:
        room = db.session.get(Room, room_id)
    except SQLAlchemyError as exc:
        raise _wrap_storage(exc) from exc
    if room is None:
        raise NotFound('Room not found', reason='room_not_found')
    return room


def load_room_by_code(code: str) -> Room:
    code = normalize_code(code)
    if not code:
        raise NotFound('Room not found', reason='room_not_found')
    try:
        room = Room.query.filter_by(code=code).first()
    except SQLAlchemyError as exc:
        raise _wrap_storage(exc) from exc
    if room is None:
        raise NotFound('Room not found', reason='room_not_found')
    return room


def load_players(room_id: int) -> List[Player]:
    try:
        return Player.query.filter_by(room_id=room_id).order_by(Player.order, Player.id).all()
    except SQLAlchemyError as exc:
        raise _wrap_storage(exc) from exc


def load_entries(room_id: int, round_number: int, game_number: Optional[int] = None) -> List[ExchangeEntry]:
    query = ExchangeEntry.query.filter_by(room_id=room_id, round=round_number)
    if game_number is not None:
        query = query.filter_by(game_number=game_number)
    try:
        return query.order_by(ExchangeEntry.id).all()
    except SQLAlchemyError as exc:
        raise _wrap_storage(exc) from exc


def find_player_by_session(room_id: int, session_id: str) -> Optional[Player]:
    if not session_id:
        return None
    try:
        return Player.query.filter_by(room_id=room_id, session_id=session_id).first()
    except SQLAlchemyError as exc:
        raise _wrap_storage(exc) from exc


class RoomContext:
    """One room's state loaded for a single mutation."""

    def __init__(self, room: Room, players: List[Player]):
        self.room = room
        self.players = players
        self.changed = set()
        self.after_commit: List[Callable[[], None]] = []

    def mark(self, *kinds: str) -> None:
        self.changed.update(kinds)

    def refresh_players(self) -> None:
        self.players = sorted(self.room.players, key=lambda p: (p.order, p.id or 0))

    def player_for_session(self, session_id: str) -> Optional[Player]:
        if not session_id:
            return None
        return next((p for p in self.players if p.session_id == session_id), None)

    def player_by_id(self, player_id) -> Optional[Player]:
        return next((p for p in self.players if p.id == player_id), None)

    def index_of(self, player: Player) -> int:
        return next(i for i, p in enumerate(self.players) if p.id == player.id)

    @property
    def chooser(self) -> Optional[Player]:
        idx = self.room.current_chooser_index
        return self.players[idx] if 0 <= idx < len(self.players) else None

    @property
    def turn_player(self) -> Optional[Player]:
        idx = self.room.current_turn_index
        return self.players[idx] if 0 <= idx < len(self.players) else None

    def guessers(self) -> List[Player]:
        chooser = self.chooser
        return [p for p in self.players if chooser is None or p.id != chooser.id]


@contextmanager
def mutate_room(code: str = None, room_id: int = None):
    """Run one serialized read-modify-write against a room.

    Any :class:`GameError` raised inside the block rolls the session back
    so a rejected action leaves the stored state unchanged.
    """
    if room_id is None:
        room_id = load_room_by_code(code).id
    with room_lock(room_id):
        try:
            room = Room.query.filter_by(id=room_id).with_for_update().populate_existing().first()
        except SQLAlchemyError as exc:
            raise _wrap_storage(exc) from exc
        if room is None:
            raise NotFound('Room not found', reason='room_not_found')
        ctx = RoomContext(room, load_players(room.id))
        try:
            yield ctx
            db.session.commit()
        except GameError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            raise _wrap_storage(exc) from exc
        room_code = room.code

    from .notifications import publish
    publish(room_code, ctx.changed)
    for hook in ctx.after_commit:
        try:
            hook()
        except GameError as exc:
            current_app.logger.warning(f"[hook-failed] room={room_id} error={exc.reason}")

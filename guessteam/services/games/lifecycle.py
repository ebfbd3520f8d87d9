"""Room lifecycle: create, join, kick, evict and restart."""

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from guessteam import db
from guessteam.models import Player, Room, generate_room_code
from .engine import remove_player, require_host, require_status, room_mutation, touch_later
from .errors import CapacityExceeded, IllegalAction, NotFound, StorageError, ValidationError
from .store import load_room_by_code

MAX_NAME_LENGTH = 50
MAX_SESSION_LENGTH = 64
CONFIG_LIMITS = {
    'max_guesses': (1, 10),
    'max_questions': (1, 50),
    'max_rounds': (1, 10),
}


def _clean_name(name):
    n = name.strip() if isinstance(name, str) else ''
    if not n:
        raise ValidationError('A player name is required', reason='invalid_name')
    if len(n) > MAX_NAME_LENGTH:
        raise ValidationError(f'Player names are at most {MAX_NAME_LENGTH} characters', reason='invalid_name')
    # No control characters.
    if any(ord(ch) < 32 for ch in n):
        raise ValidationError('Player names cannot contain control characters', reason='invalid_name')
    return n


def _clean_session(session_id):
    s = session_id.strip() if isinstance(session_id, str) else ''
    if not s or len(s) > MAX_SESSION_LENGTH:
        raise ValidationError('A session id is required', reason='invalid_session')
    return s


def _bounded_int(value, field):
    low, high = CONFIG_LIMITS[field]
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer', reason='invalid_config')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer', reason='invalid_config')
    if number != value and not isinstance(value, str):
        raise ValidationError(f'{field} must be an integer', reason='invalid_config')
    if not low <= number <= high:
        raise ValidationError(f'{field} must be between {low} and {high}', reason='invalid_config')
    return number


def create_room(name, session_id, max_guesses=3, max_questions=30, max_rounds=1, code_generator=None):
    """Create a waiting room with its host as player 0.

    Code collisions are detected by the unique index on room.code and
    retried up to ROOM_CODE_ATTEMPTS times.
    """
    name = _clean_name(name)
    session_id = _clean_session(session_id)
    max_guesses = _bounded_int(max_guesses, 'max_guesses')
    max_questions = _bounded_int(max_questions, 'max_questions')
    max_rounds = _bounded_int(max_rounds, 'max_rounds')

    cfg = current_app.config
    generate = code_generator or generate_room_code
    length = int(cfg.get('ROOM_CODE_LENGTH', 6))
    attempts = int(cfg.get('ROOM_CODE_ATTEMPTS', 5))
    for attempt in range(1, attempts + 1):
        code = generate(length).upper()
        room = Room(
            code=code,
            status='waiting',
            host_session_id=session_id,
            max_guesses=max_guesses,
            max_questions=max_questions,
            max_rounds=max_rounds,
            current_round=1,
            current_chooser_index=0,
            current_turn_index=0,
            game_number=1,
        )
        host = Player(
            name=name,
            session_id=session_id,
            is_host=True,
            order=0,
            score=0,
            guesses_left=max_guesses,
            questions_left=max_questions,
        )
        room.players.append(host)
        db.session.add(room)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.info(f"[code-collision] code={code} attempt={attempt}")
            continue
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StorageError(f'State store failure: {exc.__class__.__name__}') from exc
        current_app.logger.info(
            f"[create] room={room.id} code={room.code} guesses={max_guesses} questions={max_questions} rounds={max_rounds}"
        )
        return room, host
    raise StorageError('Could not allocate a unique room code', reason='code_exhausted')


def join_room(code, name, session_id):
    """Join a waiting room; returns (player, created).

    A session that already has a player in the room gets that player back,
    whatever the room's phase.
    """
    name = _clean_name(name)
    session_id = _clean_session(session_id)
    room = load_room_by_code(code)
    with room_mutation(room_id=room.id) as ctx:
        existing = ctx.player_for_session(session_id)
        if existing is not None:
            touch_later(ctx, existing)
            current_app.logger.info(f"[rejoin] room={ctx.room.id} player={existing.id}")
            return existing, False

        require_status(ctx, 'waiting')
        max_players = int(current_app.config.get('MAX_PLAYERS', 4))
        if len(ctx.players) >= max_players:
            raise CapacityExceeded(f'Room is full (max {max_players} players)')

        next_order = max((p.order for p in ctx.players), default=-1) + 1
        player = Player(
            name=name,
            session_id=session_id,
            is_host=False,
            order=next_order,
            score=0,
            guesses_left=ctx.room.max_guesses,
            questions_left=ctx.room.max_questions,
        )
        ctx.room.players.append(player)
        ctx.refresh_players()
        ctx.mark('players')
        current_app.logger.info(f"[join] room={ctx.room.id} order={next_order} players={len(ctx.players)}")
        return player, True


def kick_player(code, session_id, player_id):
    with room_mutation(code) as ctx:
        host = require_host(ctx, session_id)
        target = ctx.player_by_id(player_id)
        if target is None:
            raise NotFound('Player not found in this room', reason='player_not_found')
        if target.id == host.id:
            raise IllegalAction('The host cannot kick themselves', reason='cannot_kick_self')
        remove_player(ctx, target, reason='kick')
        touch_later(ctx, host)
        return ctx.room


def evict_inactive_player(room_id, player_id):
    """Remove a player the inactivity monitor found idle."""
    with room_mutation(room_id=room_id) as ctx:
        require_status(ctx, 'choosing', 'playing')
        target = ctx.player_by_id(player_id)
        if target is None:
            raise NotFound('Player not found in this room', reason='player_not_found')
        if len(ctx.players) <= 1:
            raise IllegalAction('The last player in a room is never evicted', reason='last_player')
        remove_player(ctx, target, reason='evict')
        return ctx.room


def restart_game(code, session_id):
    """Return a finished room to the lobby, keeping its players and code."""
    with room_mutation(code) as ctx:
        host = require_host(ctx, session_id)
        require_status(ctx, 'game_over')
        room = ctx.room
        for p in ctx.players:
            p.score = 0
            p.guesses_left = room.max_guesses
            p.questions_left = room.max_questions
        room.status = 'waiting'
        room.current_round = 1
        room.current_chooser_index = 0
        room.current_turn_index = 0
        room.current_answer = None
        room.revealed_answer = None
        room.round_history = None
        room.game_number += 1
        ctx.mark('room', 'players', 'entries')
        touch_later(ctx, host)
        current_app.logger.info(f"[restart] room={room.id} game={room.game_number}")
        return room

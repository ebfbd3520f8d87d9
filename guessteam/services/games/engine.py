"""Round engine: the in-game actions of a room.

Each operation re-reads the room inside :func:`room_mutation`, checks every
precondition before touching state, then mutates. The store commits and
publishes change notifications once the block exits cleanly; any
:class:`GameError` rolls the whole action back.
"""

import random
from contextlib import contextmanager

from flask import current_app

from guessteam import db
from guessteam.models import ExchangeEntry
from . import inactivity, scheduler, scoring
from .errors import IllegalAction, NotFound, ValidationError
from .matching import is_match
from .store import RoomContext, find_player_by_session, load_room_by_code, mutate_room

ANSWER_CHOICES = ('Yes', 'No', 'Maybe')
MAX_ANSWER_LENGTH = 120
MAX_TEXT_LENGTH = 500


@contextmanager
def room_mutation(code=None, room_id=None):
    """mutate_room plus the timer bookkeeping every mutation needs."""
    with mutate_room(code=code, room_id=room_id) as ctx:
        yield ctx
        app = current_app._get_current_object()
        rid = ctx.room.id
        # Runs first so later hooks see a monitor matching the committed status
        ctx.after_commit.insert(
            0, lambda: inactivity.sync_room(app, rid, ctx.room.status, [p.id for p in ctx.players])
        )


# ---- Precondition helpers ----

def clean_text(value, field, max_length):
    text = value.strip() if isinstance(value, str) else ''
    if not text:
        raise ValidationError(f'The {field} must not be empty', reason=f'empty_{field}')
    if len(text) > max_length:
        raise ValidationError(f'The {field} must be at most {max_length} characters', reason=f'{field}_too_long')
    return text


def require_status(ctx: RoomContext, *statuses):
    if ctx.room.status not in statuses:
        raise IllegalAction(
            f"Not allowed while the room is {ctx.room.status} (expected {' or '.join(statuses)})",
            reason='wrong_phase',
        )


def require_member(ctx: RoomContext, session_id):
    player = ctx.player_for_session(session_id)
    if player is None:
        raise IllegalAction('You are not a player in this room', reason='not_in_room')
    return player


def require_host(ctx: RoomContext, session_id):
    player = require_member(ctx, session_id)
    if ctx.room.host_session_id != player.session_id:
        raise IllegalAction('Only the host may do this', reason='not_host')
    return player


def require_chooser(ctx: RoomContext, session_id):
    player = require_member(ctx, session_id)
    chooser = ctx.chooser
    if chooser is None or chooser.id != player.id:
        raise IllegalAction('Only the chooser may do this', reason='not_chooser')
    return player


def require_turn(ctx: RoomContext, session_id):
    player = require_member(ctx, session_id)
    turn = ctx.turn_player
    chooser = ctx.chooser
    if turn is None or turn.id != player.id or (chooser is not None and chooser.id == player.id):
        raise IllegalAction('It is not your turn', reason='not_your_turn')
    if pending_question(ctx, player) is not None:
        raise IllegalAction('Wait for the chooser to answer your question', reason='question_pending')
    return player


def pending_question(ctx: RoomContext, player):
    """The player's unanswered question in the current game and round, if any."""
    room = ctx.room
    return ExchangeEntry.query.filter_by(
        room_id=room.id,
        game_number=room.game_number,
        round=room.current_round,
        author_player_id=player.id,
        is_guess=False,
        answer=None,
    ).first()


def touch_later(ctx: RoomContext, player):
    """Count a successful action as a liveness signal once it commits."""
    rid, pid = ctx.room.id, player.id
    ctx.after_commit.append(lambda: inactivity.record_activity(rid, pid))


# ---- Turn rotation ----

def first_guesser_index(players, chooser_index):
    """Index of the player right after the chooser, wrapping."""
    if len(players) < 2:
        return chooser_index
    return (chooser_index + 1) % len(players)


def next_guesser(ctx: RoomContext, current):
    """The next guesser after ``current`` who still has guesses, or None.

    Rotation walks the guessers (everyone but the chooser) in join order and
    wraps over that subsequence. Running out of questions never skips a
    guesser; running out of guesses does.
    """
    guessers = ctx.guessers()
    if not guessers:
        return None
    ids = [p.id for p in guessers]
    start = ids.index(current.id) if current is not None and current.id in ids else -1
    for step in range(1, len(guessers) + 1):
        candidate = guessers[(start + step) % len(guessers)]
        if candidate.guesses_left > 0:
            return candidate
    return None


def all_guessers_exhausted(ctx: RoomContext):
    guessers = ctx.guessers()
    return bool(guessers) and all(p.guesses_left <= 0 for p in guessers)


def advance_turn(ctx: RoomContext, current):
    nxt = next_guesser(ctx, current)
    if nxt is not None:
        ctx.room.current_turn_index = ctx.index_of(nxt)
        ctx.mark('room')
    check_round_end(ctx)


def check_round_end(ctx: RoomContext):
    """End the round with the stump bonus once no guesser has guesses left."""
    if ctx.room.status != 'playing' or not all_guessers_exhausted(ctx):
        return False
    chooser = ctx.chooser
    scoring.award_stump_bonus(chooser)
    finish_round(ctx, chooser, stumped=True)
    return True


def finish_round(ctx: RoomContext, chooser, winner=None, stumped=False, abandoned=False):
    room = ctx.room
    scoring.record_round(room, chooser, winner=winner, stumped=stumped, abandoned=abandoned)
    room.revealed_answer = room.current_answer
    room.current_answer = None
    room.status = 'round_end'
    ctx.mark('room', 'players')
    current_app.logger.info(
        f"[round_end] room={room.id} round={room.current_round} winner={winner.id if winner else None} "
        f"stumped={stumped} abandoned={abandoned}"
    )
    app = current_app._get_current_object()
    rid = room.id
    ctx.after_commit.append(lambda: scheduler.schedule_round_end_advance(app, rid))


def _advance_round(ctx: RoomContext):
    room = ctx.room
    player_count = len(ctx.players)
    prev_round = room.current_round
    if room.current_round >= room.max_rounds * player_count:
        room.status = 'game_over'
        current_app.logger.info(f"[finish] room={room.id} finished at round={prev_round}")
    else:
        room.current_round += 1
        room.current_chooser_index = (room.current_chooser_index + 1) % player_count
        room.current_turn_index = first_guesser_index(ctx.players, room.current_chooser_index)
        room.current_answer = None
        room.revealed_answer = None
        room.status = 'choosing'
        current_app.logger.info(
            f"[advance] room={room.id} round {prev_round} -> {room.current_round} chooser_index={room.current_chooser_index}"
        )
    ctx.mark('room')


# ---- Operations ----

def start_game(code, session_id):
    with room_mutation(code) as ctx:
        host = require_host(ctx, session_id)
        require_status(ctx, 'waiting')
        min_players = int(current_app.config.get('MIN_PLAYERS', 2))
        if len(ctx.players) < min_players:
            raise IllegalAction(f'At least {min_players} players are required to start', reason='insufficient_players')

        room = ctx.room
        for p in ctx.players:
            p.guesses_left = room.max_guesses
            p.questions_left = room.max_questions
        room.current_round = 1
        room.current_chooser_index = random.randrange(len(ctx.players))
        room.current_turn_index = first_guesser_index(ctx.players, room.current_chooser_index)
        room.current_answer = None
        room.revealed_answer = None
        room.round_history = None
        room.status = 'choosing'
        ctx.mark('room', 'players')
        touch_later(ctx, host)
        current_app.logger.info(
            f"[start] room={room.id} players={len(ctx.players)} chooser_index={room.current_chooser_index}"
        )
        return room


def choose_answer(code, session_id, answer):
    with room_mutation(code) as ctx:
        require_status(ctx, 'choosing')
        chooser = require_chooser(ctx, session_id)
        text = clean_text(answer, 'answer', MAX_ANSWER_LENGTH)

        room = ctx.room
        for p in ctx.guessers():
            p.guesses_left = room.max_guesses
            p.questions_left = room.max_questions
        room.current_answer = text
        room.revealed_answer = None
        room.current_turn_index = first_guesser_index(ctx.players, room.current_chooser_index)
        room.status = 'playing'
        ctx.mark('room', 'players')
        touch_later(ctx, chooser)
        current_app.logger.info(f"[choose] room={room.id} round={room.current_round} chooser={chooser.id}")
        return room


def ask_question(code, session_id, question):
    with room_mutation(code) as ctx:
        require_status(ctx, 'playing')
        player = require_turn(ctx, session_id)
        if player.questions_left <= 0:
            raise IllegalAction('You have no questions left this round', reason='no_questions_left')
        text = clean_text(question, 'question', MAX_TEXT_LENGTH)

        room = ctx.room
        entry = ExchangeEntry(
            room_id=room.id,
            game_number=room.game_number,
            round=room.current_round,
            author_player_id=player.id,
            author_name=player.name,
            text=text,
            is_guess=False,
        )
        db.session.add(entry)
        player.questions_left -= 1
        ctx.mark('entries', 'players')
        touch_later(ctx, player)
        current_app.logger.info(
            f"[question] room={room.id} round={room.current_round} player={player.id} left={player.questions_left}"
        )
        return entry


def answer_question(code, session_id, entry_id, answer):
    with room_mutation(code) as ctx:
        require_status(ctx, 'playing')
        chooser = require_chooser(ctx, session_id)
        text = clean_text(answer, 'answer', MAX_ANSWER_LENGTH)

        room = ctx.room
        entry = db.session.get(ExchangeEntry, entry_id)
        if (
            entry is None
            or entry.room_id != room.id
            or entry.game_number != room.game_number
            or entry.round != room.current_round
        ):
            raise NotFound('Question not found in this round', reason='entry_not_found')
        if entry.is_guess:
            raise IllegalAction('Guesses cannot be answered', reason='not_a_question')
        if entry.answer is not None:
            raise IllegalAction('This question was already answered', reason='already_answered')

        entry.answer = text
        ctx.mark('entries')
        touch_later(ctx, chooser)
        current_app.logger.info(f"[answer] room={room.id} round={room.current_round} entry={entry.id}")

        advance_turn(ctx, ctx.turn_player)
        return entry


def submit_guess(code, session_id, guess):
    with room_mutation(code) as ctx:
        require_status(ctx, 'playing')
        player = require_turn(ctx, session_id)
        if player.guesses_left <= 0:
            raise IllegalAction('You have no guesses left this round', reason='no_guesses_left')
        text = clean_text(guess, 'guess', MAX_TEXT_LENGTH)

        room = ctx.room
        correct = room.current_answer is not None and is_match(text, room.current_answer)
        entry = ExchangeEntry(
            room_id=room.id,
            game_number=room.game_number,
            round=room.current_round,
            author_player_id=player.id,
            author_name=player.name,
            text=text,
            is_guess=True,
            is_correct=correct,
        )
        db.session.add(entry)
        player.guesses_left -= 1
        ctx.mark('entries', 'players')
        touch_later(ctx, player)
        current_app.logger.info(
            f"[guess] room={room.id} round={room.current_round} player={player.id} correct={correct} left={player.guesses_left}"
        )

        if correct:
            scoring.award_correct_guess(player)
            finish_round(ctx, ctx.chooser, winner=player)
        else:
            advance_turn(ctx, player)
        return entry


def pass_turn(code, session_id):
    with room_mutation(code) as ctx:
        require_status(ctx, 'playing')
        player = require_turn(ctx, session_id)
        advance_turn(ctx, player)
        ctx.mark('room')
        touch_later(ctx, player)
        current_app.logger.info(f"[pass] room={ctx.room.id} player={player.id} turn_index={ctx.room.current_turn_index}")
        return ctx.room


def advance_round(code, session_id):
    with room_mutation(code) as ctx:
        host = require_host(ctx, session_id)
        require_status(ctx, 'round_end')
        _advance_round(ctx)
        touch_later(ctx, host)
        return ctx.room


def auto_advance_round(room_id, expected_round, expected_game):
    """Advance on the host's behalf if the room is still where the timer left it."""
    with room_mutation(room_id=room_id) as ctx:
        room = ctx.room
        if room.status != 'round_end' or room.current_round != expected_round or room.game_number != expected_game:
            current_app.logger.info(f"[timer-abort] room={room_id} status/round mismatch")
            return False
        _advance_round(ctx)
        return True


def end_game(code, session_id):
    with room_mutation(code) as ctx:
        require_host(ctx, session_id)
        require_status(ctx, 'choosing', 'playing', 'round_end')
        room = ctx.room
        if room.current_answer is not None:
            room.revealed_answer = room.current_answer
        room.current_answer = None
        room.status = 'game_over'
        ctx.mark('room')
        current_app.logger.info(f"[finish] room={room.id} ended by host at round={room.current_round}")
        return room


def heartbeat(code, session_id):
    """Liveness signal from a player; never mutates the room."""
    room = load_room_by_code(code)
    player = find_player_by_session(room.id, session_id)
    if player is None:
        raise IllegalAction('You are not a player in this room', reason='not_in_room')
    inactivity.record_activity(room.id, player.id)
    return player


# ---- Removal ----

def remove_player(ctx: RoomContext, player, reason='kick'):
    """Remove ``player`` and repair the turn pointers.

    Must run inside a room mutation. Indices are recomputed by player id, a
    removed turn holder hands the turn on like a pass, a removed chooser
    abandons the round, and too few remaining players end the game.
    """
    room = ctx.room
    status = room.status
    chooser = ctx.chooser if status in ('choosing', 'playing', 'round_end') else None
    turn_holder = ctx.turn_player if status == 'playing' else None
    old_chooser_index = room.current_chooser_index
    removed_chooser = chooser is not None and chooser.id == player.id

    next_turn = None
    if status == 'playing' and not removed_chooser and turn_holder is not None and turn_holder.id == player.id:
        next_turn = next_guesser(ctx, player)
        if next_turn is not None and next_turn.id == player.id:
            next_turn = None

    remaining = [p for p in ctx.players if p.id != player.id]
    if player.is_host and remaining:
        new_host = remaining[0]
        new_host.is_host = True
        room.host_session_id = new_host.session_id
        current_app.logger.info(f"[host] room={room.id} host -> player={new_host.id}")

    rid, pid = room.id, player.id
    room.players.remove(player)
    ctx.refresh_players()
    ctx.mark('room', 'players')
    ctx.after_commit.append(lambda: inactivity.forget_player(rid, pid))
    current_app.logger.info(f"[{reason}] room={room.id} player={pid} status={status} remaining={len(ctx.players)}")

    player_count = len(ctx.players)
    min_players = int(current_app.config.get('MIN_PLAYERS', 2))
    if status in ('choosing', 'playing', 'round_end') and player_count < min_players:
        if status == 'playing':
            scoring.record_round(room, chooser, abandoned=True)
        if room.current_answer is not None:
            room.revealed_answer = room.current_answer
        room.current_answer = None
        room.current_chooser_index = 0
        room.current_turn_index = 0
        room.status = 'game_over'
        current_app.logger.info(f"[finish] room={room.id} not enough players left")
        return

    if status in ('waiting', 'game_over'):
        room.current_chooser_index = 0
        room.current_turn_index = 0
        return

    if removed_chooser:
        if status == 'choosing':
            # The next player in order takes over the choice
            room.current_chooser_index = old_chooser_index % player_count
        else:
            # So that the next advance rotates to the player after the removed one
            room.current_chooser_index = (old_chooser_index - 1) % player_count
    else:
        room.current_chooser_index = ctx.index_of(chooser)

    if status == 'playing' and removed_chooser:
        room.current_turn_index = first_guesser_index(ctx.players, room.current_chooser_index)
        finish_round(ctx, chooser, abandoned=True)
        return

    if status != 'playing':
        room.current_turn_index = first_guesser_index(ctx.players, room.current_chooser_index)
        return

    target = next_turn
    if target is None and turn_holder is not None and turn_holder.id != player.id:
        target = turn_holder
    if target is None:
        room.current_turn_index = first_guesser_index(ctx.players, room.current_chooser_index)
    else:
        room.current_turn_index = ctx.index_of(target)
    check_round_end(ctx)

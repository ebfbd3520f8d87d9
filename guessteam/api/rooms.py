from flask import Blueprint, jsonify, request, current_app
from guessteam.services.games import engine, lifecycle, store
from guessteam.services.games.errors import GameError, ValidationError


rooms = Blueprint('rooms', __name__)


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _session_id(data=None) -> str:
    data = data or {}
    sid = data.get('session_id') or request.headers.get('X-Session-Id') or request.args.get('session_id') or ''
    return str(sid).strip()


def _int_field(value, field):
    if isinstance(value, bool):
        raise ValidationError(f'{field} must be an integer', reason=f'invalid_{field}')
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be an integer', reason=f'invalid_{field}')


def _room_state(code, session_id):
    """Room, players and current-round entries as seen by one session."""
    room = store.load_room_by_code(code)
    players = store.load_players(room.id)
    viewer = next((p for p in players if session_id and p.session_id == session_id), None)
    payload = room.to_dict(viewer=viewer, players=players)
    payload['entries'] = [e.to_dict() for e in store.load_entries(room.id, room.current_round, room.game_number)]
    payload['answer_choices'] = list(engine.ANSWER_CHOICES)
    return payload


@rooms.errorhandler(GameError)
def handle_game_error(exc):
    current_app.logger.info(f"[rejected] {request.method} {request.path} reason={exc.reason}")
    return jsonify(exc.to_dict()), exc.status_code


@rooms.route('', methods=['POST'])
@rooms.route('/', methods=['POST'])
def create_room():
    data = _payload()
    sid = _session_id(data)
    room, host = lifecycle.create_room(
        name=data.get('name'),
        session_id=sid,
        max_guesses=data.get('max_guesses', 3),
        max_questions=data.get('max_questions', 30),
        max_rounds=data.get('max_rounds', 1),
    )
    return jsonify({
        'message': 'New room created!',
        'room_code': room.code,
        'player': host.to_dict(),
        'room': _room_state(room.code, sid),
    }), 201


@rooms.route('/join', methods=['POST'])
def join_room():
    data = _payload()
    code = data.get('room_code') or ''
    sid = _session_id(data)
    player, created = lifecycle.join_room(code, data.get('name'), sid)
    return jsonify({
        'player': player.to_dict(),
        'room': _room_state(code, sid),
    }), 201 if created else 200


@rooms.route('/<string:code>/state', methods=['GET'])
def get_room_state(code):
    return jsonify(_room_state(code, _session_id()))


@rooms.route('/<string:code>/entries', methods=['GET'])
def get_entries(code):
    room = store.load_room_by_code(code)
    round_number = request.args.get('round')
    round_number = room.current_round if round_number is None else _int_field(round_number, 'round')
    entries = store.load_entries(room.id, round_number, room.game_number)
    return jsonify({'round': round_number, 'entries': [e.to_dict() for e in entries]})


@rooms.route('/<string:code>/start', methods=['POST'])
def start_game(code):
    sid = _session_id(_payload())
    engine.start_game(code, sid)
    return jsonify(_room_state(code, sid))


@rooms.route('/<string:code>/answer', methods=['POST'])
def choose_answer(code):
    data = _payload()
    sid = _session_id(data)
    engine.choose_answer(code, sid, data.get('answer'))
    return jsonify(_room_state(code, sid))


@rooms.route('/<string:code>/questions', methods=['POST'])
def ask_question(code):
    data = _payload()
    sid = _session_id(data)
    entry = engine.ask_question(code, sid, data.get('question'))
    return jsonify({'entry': entry.to_dict(), 'room': _room_state(code, sid)}), 201


@rooms.route('/<string:code>/questions/<int:entry_id>/answer', methods=['POST'])
def answer_question(code, entry_id):
    data = _payload()
    sid = _session_id(data)
    entry = engine.answer_question(code, sid, entry_id, data.get('answer'))
    return jsonify({'entry': entry.to_dict(), 'room': _room_state(code, sid)})


@rooms.route('/<string:code>/guesses', methods=['POST'])
def submit_guess(code):
    data = _payload()
    sid = _session_id(data)
    entry = engine.submit_guess(code, sid, data.get('guess'))
    return jsonify({'entry': entry.to_dict(), 'room': _room_state(code, sid)}), 201


@rooms.route('/<string:code>/pass', methods=['POST'])
def pass_turn(code):
    sid = _session_id(_payload())
    engine.pass_turn(code, sid)
    return jsonify(_room_state(code, sid))


@rooms.route('/<string:code>/advance', methods=['POST'])
def advance_round(code):
    sid = _session_id(_payload())
    engine.advance_round(code, sid)
    return jsonify(_room_state(code, sid))


@rooms.route('/<string:code>/end', methods=['POST'])
def end_game(code):
    sid = _session_id(_payload())
    engine.end_game(code, sid)
    return jsonify(_room_state(code, sid))


@rooms.route('/<string:code>/kick', methods=['POST'])
def kick_player(code):
    data = _payload()
    sid = _session_id(data)
    lifecycle.kick_player(code, sid, _int_field(data.get('player_id'), 'player_id'))
    return jsonify(_room_state(code, sid))


@rooms.route('/<string:code>/restart', methods=['POST'])
def restart_game(code):
    sid = _session_id(_payload())
    lifecycle.restart_game(code, sid)
    return jsonify(_room_state(code, sid))


@rooms.route('/<string:code>/heartbeat', methods=['POST'])
def heartbeat(code):
    player = engine.heartbeat(code, _session_id(_payload()))
    return jsonify({'ok': True, 'player_id': player.id})

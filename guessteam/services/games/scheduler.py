import time
from typing import Set, Tuple

from guessteam import socketio
from .errors import GameError
from .store import load_room


_scheduled_round_end_keys: Set[Tuple[int, int, int]] = set()


def schedule_round_end_advance(app, room_id: int) -> None:
    """Schedule the automatic exit from round_end for the given room.

    - No-ops when ROUND_END_DURATION_SEC is 0 (the host advances manually)
    - No-ops in TESTING mode unless ENABLE_SCHEDULER_IN_TESTS is set
    - Ensures a single timer per (room_id, game_number, round)
    - Aborts if the room moved on before the timer fired
    """
    try:
        duration = float(app.config.get('ROUND_END_DURATION_SEC', 0) or 0)
    except (TypeError, ValueError):
        duration = 0
    if duration <= 0:
        return
    if app.config.get('TESTING') and not app.config.get('ENABLE_SCHEDULER_IN_TESTS'):
        return

    with app.app_context():
        room = load_room(room_id)
        if room.status != 'round_end':
            return
        round_idx = int(room.current_round)
        game_idx = int(room.game_number)

    key = (room_id, game_idx, round_idx)
    if key in _scheduled_round_end_keys:
        app.logger.info(f"[timer-skip] room={room_id} game={game_idx} round={round_idx} already scheduled")
        return
    _scheduled_round_end_keys.add(key)
    app.logger.info(f"[timer-set] room={room_id} game={game_idx} round={round_idx} duration={duration}s")

    def _worker(rid: int, expected_game: int, expected_round: int, delay: float):
        if app.config.get('TESTING'):
            time.sleep(delay)
        else:
            socketio.sleep(delay)
        with app.app_context():
            _scheduled_round_end_keys.discard((rid, expected_game, expected_round))
            app.logger.info(f"[timer-fire] room={rid} expected_game={expected_game} expected_round={expected_round}")
            from .engine import auto_advance_round
            try:
                auto_advance_round(rid, expected_round, expected_game)
            except GameError as exc:
                app.logger.warning(f"[timer-failed] room={rid} reason={exc.reason}")

    if app.config.get('TESTING'):
        _worker(room_id, game_idx, round_idx, duration)
    else:
        socketio.start_background_task(_worker, room_id, game_idx, round_idx, duration)

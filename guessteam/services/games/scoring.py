from guessteam.models import Player, Room
import json

CORRECT_GUESS_POINTS = 5
STUMP_BONUS_POINTS = 3


def award_correct_guess(guesser: Player) -> None:
    guesser.score += CORRECT_GUESS_POINTS


def award_stump_bonus(chooser: Player) -> None:
    """The chooser stumped every guesser."""
    chooser.score += STUMP_BONUS_POINTS


def record_round(room: Room, chooser, winner=None, stumped=False, abandoned=False) -> None:
    """Append a summary of the round that just finished to room.round_history."""
    try:
        history = json.loads(room.round_history) if room.round_history else []
    except ValueError:
        history = []
    history.append({
        'round': int(room.current_round or 0),
        'chooser_id': chooser.id if chooser else None,
        'answer': room.current_answer,
        'winner_id': winner.id if winner else None,
        'points_awarded': CORRECT_GUESS_POINTS if winner else (STUMP_BONUS_POINTS if stumped else 0),
        'stumped': stumped,
        'abandoned': abandoned,
    })
    room.round_history = json.dumps(history)

from guessteam import db
import json
import string
import random

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_room_code(length=6):
    """Generate a short uppercase join code.

    Uniqueness is enforced by the unique index on ``room.code``; callers
    retry on collision.
    """
    return ''.join(random.choices(CODE_ALPHABET, k=length))


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), unique=True, index=True, nullable=False)
    status = db.Column(db.String(16), nullable=False, default='waiting')  # waiting, choosing, playing, round_end, game_over
    host_session_id = db.Column(db.String(64), nullable=False)
    max_guesses = db.Column(db.Integer, nullable=False, default=3)
    max_questions = db.Column(db.Integer, nullable=False, default=30)
    max_rounds = db.Column(db.Integer, nullable=False, default=1)
    current_round = db.Column(db.Integer, nullable=False, default=1)
    current_chooser_index = db.Column(db.Integer, nullable=False, default=0)
    current_turn_index = db.Column(db.Integer, nullable=False, default=0)
    current_answer = db.Column(db.String(120), nullable=True)
    revealed_answer = db.Column(db.String(120), nullable=True)
    game_number = db.Column(db.Integer, nullable=False, default=1)
    round_history = db.Column(db.Text, nullable=True)  # JSON-encoded list of finished rounds
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(db.DateTime, server_default=db.func.now(), onupdate=db.func.now())
    players = db.relationship(
        'Player',
        back_populates='room',
        order_by='Player.order',
        cascade='all, delete-orphan',
    )

    @property
    def history(self):
        try:
            return json.loads(self.round_history) if self.round_history else []
        except ValueError:
            return []

    def to_dict(self, viewer=None, players=None):
        """Serialize the room for one viewer.

        The concealed answer is only included when ``viewer`` is the current
        chooser; everyone else sees ``has_answer``.
        """
        players = list(self.players) if players is None else players
        chooser = None
        chooser_id = None
        turn_player = None
        last_round = self.history[-1] if self.history else None
        if self.status == 'round_end' and last_round and last_round.get('round') == self.current_round:
            # The finished round's chooser, even if they have since left
            chooser_id = last_round.get('chooser_id')
            chooser = next((p for p in players if p.id == chooser_id), None)
        elif self.status in ('choosing', 'playing', 'round_end') and 0 <= self.current_chooser_index < len(players):
            chooser = players[self.current_chooser_index]
            chooser_id = chooser.id
        if self.status == 'playing' and 0 <= self.current_turn_index < len(players):
            turn_player = players[self.current_turn_index]
        host = next((p for p in players if p.is_host), None)

        payload = {
            'id': self.id,
            'code': self.code,
            'status': self.status,
            'host_id': host.id if host else None,
            'max_guesses': self.max_guesses,
            'max_questions': self.max_questions,
            'max_rounds': self.max_rounds,
            'current_round': self.current_round,
            'total_rounds': self.max_rounds * len(players),
            'current_chooser_index': self.current_chooser_index,
            'current_turn_index': self.current_turn_index,
            'chooser_id': chooser_id,
            'turn_player_id': turn_player.id if turn_player else None,
            'game_number': self.game_number,
            'has_answer': self.current_answer is not None,
            'round_history': self.history,
            'players': [p.to_dict(chooser_id=chooser_id, room_status=self.status) for p in players],
        }
        if self.status in ('round_end', 'game_over'):
            payload['revealed_answer'] = self.revealed_answer
        if viewer is not None and chooser is not None and viewer.id == chooser.id and self.current_answer:
            payload['current_answer'] = self.current_answer
        if viewer is not None:
            payload['you'] = viewer.id
        return payload


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (db.UniqueConstraint('room_id', 'session_id', name='uq_player_room_session'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    name = db.Column(db.String(50), nullable=False)
    session_id = db.Column(db.String(64), nullable=False)
    is_host = db.Column(db.Boolean, default=False, nullable=False)
    order = db.Column('player_order', db.Integer, nullable=False, default=0)
    score = db.Column(db.Integer, default=0, nullable=False)
    guesses_left = db.Column(db.Integer, default=0, nullable=False)
    questions_left = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    room = db.relationship('Room', back_populates='players')

    def to_dict(self, chooser_id=None, room_status=None):
        is_chooser = chooser_id is not None and self.id == chooser_id
        return {
            'id': self.id,
            'room_id': self.room_id,
            'name': self.name,
            'is_host': self.is_host,
            'order': self.order,
            'score': self.score,
            'guesses_left': self.guesses_left,
            'questions_left': self.questions_left,
            'is_chooser': is_chooser,
            'is_spectating': room_status == 'playing' and not is_chooser and self.guesses_left <= 0,
        }


class ExchangeEntry(db.Model):
    """A question or a guess logged during a round."""
    __tablename__ = 'exchange_entry'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    game_number = db.Column(db.Integer, nullable=False, default=1)
    round = db.Column(db.Integer, nullable=False)
    # Not a foreign key: history outlives kicked players
    author_player_id = db.Column(db.Integer, nullable=False, index=True)
    author_name = db.Column(db.String(50), nullable=False)
    text = db.Column(db.String(500), nullable=False)
    is_guess = db.Column(db.Boolean, default=False, nullable=False)
    answer = db.Column(db.String(120), nullable=True)
    is_correct = db.Column(db.Boolean, nullable=True)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'game_number': self.game_number,
            'round': self.round,
            'author_player_id': self.author_player_id,
            'author_name': self.author_name,
            'text': self.text,
            'is_guess': self.is_guess,
            'answer': self.answer,
            'is_correct': self.is_correct,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }

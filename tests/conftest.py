import os
import sys
import pytest

# Ensure the project root (containing the `guessteam` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from guessteam import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = '*'
    MIN_PLAYERS = 2
    MAX_PLAYERS = 4
    ROOM_CODE_LENGTH = 6
    ROOM_CODE_ATTEMPTS = 5
    INACTIVITY_TIMEOUT_SEC = 45
    INACTIVITY_CHECK_INTERVAL_SEC = 5
    ROUND_END_DURATION_SEC = 0


@pytest.fixture()
def flask_app():
    from guessteam.services.games import inactivity
    inactivity._monitors.clear()
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import guessteam.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()
    inactivity._monitors.clear()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def fixed_chooser(monkeypatch):
    """Make start_game pick the player at the given index as first chooser."""
    from guessteam.services.games import engine

    def _fix(index):
        monkeypatch.setattr(engine.random, 'randrange', lambda n: index)

    return _fix


@pytest.fixture()
def make_room(flask_app):
    """Create a room with ``count`` players; returns (code, [session ids])."""
    from guessteam.services.games import lifecycle

    def _make(count=3, max_guesses=3, max_questions=30, max_rounds=1):
        sessions = [f'session-{i}' for i in range(count)]
        room, _ = lifecycle.create_room(
            'Player0', sessions[0],
            max_guesses=max_guesses, max_questions=max_questions, max_rounds=max_rounds,
        )
        code = room.code
        for i, sid in enumerate(sessions[1:], start=1):
            lifecycle.join_room(code, f'Player{i}', sid)
        return code, sessions

    return _make

import os
import random
import sys
import pytest

# Ensure the backend root (containing the `bingo` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from bingo import create_app, socketio
from bingo.services.directory import SessionDirectory
from bingo.services.games.draws import DrawEngine
from bingo.services.games.engine import GameSettings, GameStateMachine

ADMIN_KEY = 'test-admin-key'


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    ADMIN_KEY = ADMIN_KEY
    CORS_ORIGINS = ['http://localhost:5173']
    AUTO_START_MIN_PLAYERS = 0


class RecordingBroadcaster:
    """Collects every delivery instead of touching a socket."""

    def __init__(self):
        self.sent = []
        self.broken = set()

    def emit(self, event, payload, to):
        if to in self.broken:
            raise ConnectionError(f'{to} is gone')
        self.sent.append((to, event, payload))

    def events_for(self, channel):
        return [(event, payload) for to, event, payload in self.sent if to == channel]

    def names_for(self, channel):
        return [event for event, _ in self.events_for(channel)]

    def last(self, channel, event):
        matches = [payload for name, payload in self.events_for(channel) if name == event]
        return matches[-1] if matches else None

    def clear(self):
        self.sent.clear()


class FakeClock:

    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RecordingSpawner:
    """Stands in for socketio.start_background_task without starting anything."""

    def __init__(self):
        self.calls = []

    def __call__(self, target, *args):
        self.calls.append((target, args))


class ScriptedDraws(DrawEngine):
    """Draws numbers from a fixed script."""

    def __init__(self, numbers):
        super().__init__()
        self.numbers = list(numbers)

    def draw_next(self, exclude, max_number):
        number = self.numbers.pop(0)
        assert number not in exclude
        return number


class NeverWins:

    def match(self, board_type, grid, marked):
        return None

    def is_winner(self, board_type, grid, marked):
        return False


class AlwaysWins:

    def match(self, board_type, grid, marked):
        return 'row'

    def is_winner(self, board_type, grid, marked):
        return True


@pytest.fixture()
def broadcaster():
    return RecordingBroadcaster()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def spawner():
    return RecordingSpawner()


@pytest.fixture()
def directory(broadcaster, clock):
    return SessionDirectory(broadcaster, retention=50, admin_stale_sec=300, clock=clock)


@pytest.fixture()
def settings():
    return GameSettings(auto_start_min_players=0)


@pytest.fixture()
def make_game(settings, directory, clock, spawner):
    def factory(**kwargs):
        kwargs.setdefault('draws', DrawEngine(random.Random(7)))
        kwargs.setdefault('clock', clock)
        kwargs.setdefault('spawn', spawner)
        kwargs.setdefault('sleep', lambda seconds: None)
        return GameStateMachine(settings, directory, **kwargs)
    return factory


@pytest.fixture()
def game(make_game):
    return make_game()


@pytest.fixture()
def add_player():
    """Register player ``n`` on ``game`` with a unique phone and board."""
    def factory(game, n, board_type='75ball', stake=100, channel=None):
        info = {
            'name': f'Player {n}',
            'phone': f'09{n:08d}',
            'boardType': board_type,
            'boardNumber': n,
            'stake': stake,
        }
        return game.register(info, channel or f'sid-{n}')
    return factory


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


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
def admin_client(flask_app):
    test_client = socketio.test_client(flask_app, namespace='/ws', auth={'admin_key': ADMIN_KEY})
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass

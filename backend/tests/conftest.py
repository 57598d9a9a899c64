import os
import random
import sys
import pytest

# Ensure the backend root (containing the `bullscows` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from bullscows import create_app, get_coordinator, socketio
from bullscows.services.chat import ChatLog
from bullscows.services.match import (
    IdentityRegistry,
    ManualScheduler,
    MatchSettings,
    SessionCoordinator,
)


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SOCKETIO_NAMESPACE = '/'
    CORS_ORIGINS = ['*']
    DISCONNECT_GRACE_SEC = 30
    TURN_DURATION_SEC = 60
    STARTUP_GRACE_SEC = 60
    RETURN_TO_LOBBY_SEC = 10
    MAX_LOBBY = 200
    NAME_COLLISION_POLICY = 'suffix'
    MAX_CHAT = 200
    MAX_CHAT_MESSAGE_LEN = 500
    LEADERBOARD_URL = ''


class RecordingEmitter:
    """Collects outbound events instead of sending them."""

    def __init__(self):
        self.sent = []
        self.broadcasts = []

    def send(self, sid, event, data=None):
        self.sent.append((sid, event, data))

    def broadcast(self, event, data=None):
        self.broadcasts.append((event, data))

    def to(self, sid, event=None):
        return [(e, d) for s, e, d in self.sent if s == sid and (event is None or e == event)]

    def last(self, sid, event):
        matches = self.to(sid, event)
        return matches[-1][1] if matches else None

    def last_lobby(self):
        lobbies = [d for e, d in self.broadcasts if e == 'updateLobby']
        return lobbies[-1] if lobbies else None

    def clear(self):
        self.sent.clear()
        self.broadcasts.clear()


class FirstPlayerRandom(random.Random):
    """Always hands the first turn to the first candidate (the challenger)."""

    def choice(self, seq):
        return seq[0]


class FakeLeaderboard:
    def __init__(self):
        self.entries = []

    def submit(self, entry):
        self.entries.append(entry)
        return True


@pytest.fixture()
def emitter():
    return RecordingEmitter()


@pytest.fixture()
def scheduler():
    return ManualScheduler()


@pytest.fixture()
def leaderboard():
    return FakeLeaderboard()


@pytest.fixture()
def coordinator(emitter, scheduler, leaderboard):
    return SessionCoordinator(
        emitter,
        scheduler,
        registry=IdentityRegistry(max_players=200),
        chat=ChatLog(50),
        leaderboard=leaderboard,
        settings=MatchSettings(turn_duration=60, startup_grace=60, disconnect_grace=30, return_to_lobby=10),
        rng=FirstPlayerRandom(),
    )


@pytest.fixture()
def paired(coordinator):
    """Alice (sid-a) challenged Bob (sid-b) and Bob accepted."""
    coordinator.dispatch('registerName', 'sid-a', 'Alice', 'dev-a')
    coordinator.dispatch('registerName', 'sid-b', 'Bob', 'dev-b')
    coordinator.dispatch('challengePlayer', 'sid-a', 'Bob')
    coordinator.dispatch('acceptChallenge', 'sid-b', 'Alice')
    alice = coordinator.registry.get('Alice')
    return alice.match


@pytest.fixture()
def active(coordinator, paired):
    """Both secrets locked; Alice (challenger) holds the first turn."""
    coordinator.dispatch('lockSecret', 'sid-a', '1234')
    coordinator.dispatch('lockSecret', 'sid-b', '5678')
    return paired


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        yield application


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def app_scheduler(flask_app):
    return get_coordinator(flask_app).scheduler


@pytest.fixture()
def sio_factory(flask_app):
    clients = []

    def _make():
        test_client = socketio.test_client(flask_app, flask_test_client=flask_app.test_client())
        clients.append(test_client)
        return test_client

    yield _make
    for c in clients:
        try:
            if c.is_connected():
                c.disconnect()
        except RuntimeError:
            pass

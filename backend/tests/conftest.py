import os
import sys
import pytest

# Ensure the backend root (containing the `matchup` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from matchup import create_app, db, socketio
from matchup.services.tournament import clock
from matchup.services.tournament.bracket import DEFAULT_SEED_URL

# 2023-11-14T22:13:20Z; whole seconds so slice edges are easy to reason about
T0 = 1_700_000_000
BASE_ISO = '2023-11-14T22:13:20Z'


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    TIMER_PERIOD_SEC = 100
    COUNTDOWN_PERIOD_SEC = 10
    COUNTDOWN_MAX_CATCHUP = 1000
    SEED_IMAGE_URL = DEFAULT_SEED_URL
    IMAGE_CACHE_SIZE = 256
    CORS_ALLOW_HEADERS = ['authorization', 'x-client-info', 'apikey', 'content-type']


class FrozenClock:
    """Stands in for ``clock.utcnow``; only moves when told to."""

    def __init__(self, now):
        self.now = float(now)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
        return self.now

    def set(self, now):
        self.now = float(now)
        return self.now


@pytest.fixture()
def frozen_clock(monkeypatch):
    fake = FrozenClock(T0)
    monkeypatch.setattr(clock, 'utcnow', fake)
    return fake


@pytest.fixture()
def flask_app(frozen_clock):
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import matchup.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


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
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


@pytest.fixture()
def logged_in(client):
    res = client.post('/register', json={'username': 'voter1', 'password': 'secret'})
    assert res.status_code == 201
    return res.get_json()['user']

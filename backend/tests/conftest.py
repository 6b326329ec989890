import os
import sys
import pytest

# Ensure the backend root (containing the `blindrank` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from blindrank import create_app, db, socketio, store
from blindrank.store import player_path, room_path


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    ROUND_DURATION_SEC = 20
    TIMER_POLL_MS = 200
    ROOM_CODE_LENGTH = 4
    ATOMIC_MAX_ATTEMPTS = 5
    CORS_ORIGINS = ['http://localhost:5173']


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import blindrank.models  # noqa: F401
        db.create_all()
        yield application
        from blindrank.socketio_events import _close_host_session, _host_sessions
        for sid in list(_host_sessions):
            _close_host_session(sid)
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
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def make_room(flask_app):
    """Seed a room and its players straight into the store."""
    def _make_room(order, players=('host',), code='ABCD', status='lobby', current_index=-1,
                   round_ends_at=None, topic_id='fast-food', rankings=None):
        store.set(room_path(code), {
            'code': code,
            'topic_id': topic_id,
            'status': status,
            'order': list(order),
            'current_index': current_index,
            'round_ends_at': round_ends_at,
            'host_id': players[0] if players else 'host',
            'created_at': 0.0,
        })
        rankings = rankings or {}
        for joined, pid in enumerate(players):
            store.set(player_path(code, pid), {
                'name': pid.title(),
                'ranking': rankings.get(pid, [None] * len(order)),
                'joined_at': float(joined),
            })
        return store.get(room_path(code))
    return _make_room

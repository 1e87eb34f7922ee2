import os
import sys
import pytest

# Ensure the backend root (containing the `arena` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from arena import create_app, db, socketio
from arena.models import User
from arena.tokens import issue_token


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    TOKEN_MAX_AGE_SEC = 3600
    WIN_THRESHOLD = 3
    RANKING_SIZE = 10
    CORS_ORIGINS = ['http://localhost:3000']
    LOG_LEVEL = 'WARNING'


@pytest.fixture()
def flask_app():
    from arena.services.matches import rounds
    from arena import socketio_events

    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import arena.models  # noqa: F401
        db.create_all()
        # Module level state outlives a single app; match ids restart per test
        rounds.resolver.discard_all()
        socketio_events._sid_to_ctx.clear()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def make_user(flask_app):
    """Create an account and return it with a freshly issued token."""
    def _make(username, password='password', played=0, won=0):
        user = User(username=username, played=played, won=won)
        user.set_password(password)
        db.session.add(user)
        db.session.commit()
        return user, issue_token(user)
    return _make


@pytest.fixture()
def connect(flask_app):
    """Open Socket.IO test connections on /ws; all are closed at teardown."""
    opened = []

    def _connect(token=None, **kwargs):
        auth = {'token': token} if token is not None else None
        test_client = socketio.test_client(flask_app, namespace='/ws', auth=auth, **kwargs)
        opened.append(test_client)
        return test_client

    yield _connect
    for test_client in opened:
        try:
            if test_client.is_connected('/ws'):
                test_client.disconnect(namespace='/ws')
        except Exception:
            pass

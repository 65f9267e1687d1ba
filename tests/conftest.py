import os
from datetime import datetime, timedelta

import mongomock
import pytest
from bson import ObjectId

# === Configure env BEFORE any imports ===
os.environ.pop("FLASK_ENV", None)
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("MONGO_DB", "relay_test")

from config import config  # noqa: E402
from relay_server.messaging import conversations as conversations_mod  # noqa: E402
from relay_server.messaging import presence as presence_mod  # noqa: E402
from relay_server.messaging import service as service_mod  # noqa: E402
from relay_server.messaging import typing_signals as typing_mod  # noqa: E402
from relay_server.notification import bridge as bridge_mod  # noqa: E402
from relay_server.repository.mongo_helper import MongoRepositorySingleton  # noqa: E402
from relay_server.security.authentication import AuthSecurity  # noqa: E402
from relay_server.security.roles import Role  # noqa: E402


class FakeClock:
    """Deterministic naive-UTC clock; every call returns the current value."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 3, 6, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, seconds=1):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingListener:
    """MessagingService listener that records every event it receives."""

    def __init__(self):
        self.events = []

    def names(self):
        return [name for name, _ in self.events]

    def message_persisted(self, message):
        self.events.append(('message_persisted', message))

    def messages_read(self, reader_id, counterpart_id, count, read_at):
        self.events.append(('messages_read', (reader_id, counterpart_id, count)))

    def message_read(self, message):
        self.events.append(('message_read', message))

    def reaction_changed(self, message, user_id, emoji, action):
        self.events.append(('reaction_changed', (user_id, emoji, action)))

    def message_deleted(self, message):
        self.events.append(('message_deleted', message))


def run_inline(fn, *args, **kwargs):
    return fn(*args, **kwargs)


@pytest.fixture(autouse=True)
def db():
    """Fresh mongomock database and fresh singletons for every test."""
    mock_db = mongomock.MongoClient()[config.MONGO_DB_NAME]
    MongoRepositorySingleton.reset(mock_db)
    service_mod.reset_messaging_service()
    conversations_mod.reset_conversation_deriver()
    presence_mod.reset_presence_tracker()
    typing_mod.reset_typing_broadcaster()
    bridge_mod.reset_notification_bridge()
    # Notifications are written synchronously so tests can assert on them
    bridge_mod._bridge = bridge_mod.NotificationBridge(submit=run_inline, enabled=True)
    AuthSecurity.configure(config.JWT_SECRET, config.JWT_ALGORITHM, config.ACCESS_TOKEN_EXPIRE_MINUTES)

    yield mock_db

    bridge_mod.reset_notification_bridge()
    MongoRepositorySingleton.reset()


@pytest.fixture
def repos(db):
    return MongoRepositorySingleton.get_instance()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def listener():
    return RecordingListener()


@pytest.fixture
def service(repos, listener, clock):
    return service_mod.MessagingService(repos=repos, listeners=[listener], clock=clock)


# === Seed the directory ===
@pytest.fixture
def people(db):
    """Users and projects covering every role pairing.

    - owner: owner-admin
    - coord: coordinator of ``project`` (listed in ``managers``)
    - coord2: coordinator of ``project2`` (legacy single ``manager`` field)
    - client: client of ``project``
    - client2: client of ``project2``
    - former: inactive client of ``project``
    """
    ids = {key: ObjectId() for key in ('owner', 'coord', 'coord2', 'client', 'client2', 'former')}
    roles = {
        'owner': Role.OWNER_ADMIN.value,
        'coord': Role.COORDINATOR.value,
        'coord2': Role.COORDINATOR.value,
        'client': Role.CLIENT.value,
        'client2': Role.CLIENT.value,
        'former': Role.CLIENT.value,
    }
    names = {
        'owner': 'Olivia Owner',
        'coord': 'Carl Coordinator',
        'coord2': 'Dana Coordinator',
        'client': 'Acme Client',
        'client2': 'Globex Client',
        'former': 'Former Client',
    }
    for key, user_id in ids.items():
        db.users.insert_one({
            '_id': user_id,
            'name': names[key],
            'email': f'{key}@example.com',
            'role': roles[key],
            'isActive': key != 'former',
        })

    ids['project'] = ObjectId()
    ids['project2'] = ObjectId()
    db.projects.insert_one({
        '_id': ids['project'],
        'title': 'Acme Website',
        'client': ids['client'],
        'managers': [ids['coord']],
    })
    db.projects.insert_one({
        '_id': ids['project2'],
        'title': 'Globex Rebrand',
        'client': ids['client2'],
        'manager': ids['coord2'],
    })
    ids['roles'] = roles
    ids['names'] = names
    return ids


# === Auth helpers ===
def token_for(people, key):
    return AuthSecurity.encode_token({
        'user_id': str(people[key]),
        'role': people['roles'][key],
        'name': people['names'][key],
    })


@pytest.fixture
def auth_headers(people):
    """Factory: auth_headers('coord') -> Authorization header for that user."""
    def _headers(key):
        return {'Authorization': f'Bearer {token_for(people, key)}'}
    return _headers


# === Flask / Socket.IO ===
@pytest.fixture
def app(db):
    from server import create_app
    flask_app = create_app()
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def socketio(app):
    return app.extensions['socketio']


@pytest.fixture
def connect(app, socketio, people):
    """Factory: connect('coord') -> connected Socket.IO test client for that user."""
    clients = []

    def _connect(key):
        sio_client = socketio.test_client(app, auth={'token': token_for(people, key)})
        clients.append(sio_client)
        return sio_client

    yield _connect

    for sio_client in clients:
        if sio_client.is_connected():
            sio_client.disconnect()


def events_named(received, name):
    return [pkt['args'][0] for pkt in received if pkt['name'] == name]

import pytest

from relay_server.messaging.typing_signals import TypingBroadcaster
from relay_server.websocket.event_emitter import EventEmitter, project_room


class RecordingEmitter:
    def __init__(self):
        self.emitted = []

    def emit_to_room(self, room, event, data, skip_sid=None):
        self.emitted.append(('room', room, event, data, skip_sid))
        return True

    def emit_to_user(self, user_id, event, data, skip_sid=None):
        self.emitted.append(('user', str(user_id), event, data, skip_sid))
        return True


@pytest.fixture
def emitter():
    return RecordingEmitter()


@pytest.fixture
def broadcaster(repos, emitter):
    return TypingBroadcaster(repos=repos, emitter=emitter)


def _user(people, key):
    return {'user_id': people[key], 'role': people['roles'][key], 'name': people['names'][key]}


def test_direct_typing_reaches_permitted_recipient(broadcaster, emitter, people):
    assert broadcaster.broadcast(_user(people, 'coord'), True, recipient_id=people['client']) is True

    kind, target, event, data, _ = emitter.emitted[0]
    assert (kind, target, event) == ('user', str(people['client']), EventEmitter.TYPING_START)
    assert data == {
        'userId': str(people['coord']),
        'userName': 'Carl Coordinator',
        'isTyping': True,
        'recipientId': str(people['client']),
    }


def test_typing_stop_uses_its_own_event(broadcaster, emitter, people):
    broadcaster.broadcast(_user(people, 'client'), False, recipient_id=people['coord'])
    assert emitter.emitted[0][2] == EventEmitter.TYPING_STOP
    assert emitter.emitted[0][3]['isTyping'] is False


def test_direct_typing_to_unrelated_user_is_dropped(broadcaster, emitter, people):
    assert broadcaster.broadcast(_user(people, 'coord'), True, recipient_id=people['client2']) is False
    assert broadcaster.broadcast(_user(people, 'coord'), True, recipient_id=people['former']) is False
    assert emitter.emitted == []


def test_project_typing_requires_joined_room(broadcaster, emitter, people):
    user = _user(people, 'coord')
    assert broadcaster.broadcast(user, True, project_id=str(people['project']), sid='sid-1', joined_rooms=set()) is False
    assert emitter.emitted == []

    room = project_room(people['project'])
    assert broadcaster.broadcast(user, True, project_id=str(people['project']), sid='sid-1', joined_rooms={room}) is True
    kind, target, event, data, skip_sid = emitter.emitted[0]
    assert (kind, target, skip_sid) == ('room', room, 'sid-1')
    assert data['projectId'] == str(people['project'])


def test_typing_is_never_persisted(broadcaster, people, db):
    broadcaster.broadcast(_user(people, 'coord'), True, recipient_id=people['client'])
    broadcaster.broadcast(_user(people, 'coord'), False, recipient_id=people['client'])
    assert db.messages.count_documents({}) == 0
    assert db.notifications.count_documents({}) == 0

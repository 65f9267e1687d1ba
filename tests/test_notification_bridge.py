import pytest

from relay_server.exception import ForbiddenError
from relay_server.messaging.service import get_messaging_service
from relay_server.notification.bridge import NotificationBridge


def test_send_creates_a_notification_for_the_recipient(people, db):
    message = get_messaging_service().send(people['coord'], people['client'], 'status update')

    notifications = list(db.notifications.find({'recipient': people['client']}))
    assert len(notifications) == 1
    notification = notifications[0]
    assert notification['sender'] == people['coord']
    assert notification['type'] == 'message_received'
    assert notification['title'] == 'New Message'
    assert notification['message'] == 'Carl Coordinator sent you a message'
    assert notification['data'] == {'messageId': message.message_id, 'projectId': None}
    assert notification['isRead'] is False


def test_rejected_send_creates_no_notification(people, db):
    with pytest.raises(ForbiddenError):
        get_messaging_service().send(people['coord'], people['client2'], 'not allowed')
    assert db.notifications.count_documents({}) == 0


def test_disabled_bridge_submits_nothing(people):
    submitted = []
    bridge = NotificationBridge(submit=lambda fn, *args: submitted.append(args), enabled=False)

    class Stub:
        recipient_id = people['client']
        sender_id = people['coord']
        message_id = None
        project_id = None
        sender = None

    assert bridge.message_persisted(Stub()) is None
    assert submitted == []


def test_sender_name_falls_back(people):
    class Stub:
        recipient_id = people['client']
        sender_id = people['coord']
        message_id = None
        project_id = people['project']
        sender = None

    doc = NotificationBridge.build_notification(Stub())
    assert doc['message'] == 'Someone sent you a message'
    assert doc['data']['projectId'] == people['project']


def test_failed_insert_does_not_fail_the_send(people, db, repos, monkeypatch):
    def boom(doc):
        raise RuntimeError('notifications collection locked')

    monkeypatch.setattr(repos.notification, 'create', boom)
    message = get_messaging_service().send(people['coord'], people['client'], 'still delivered')
    assert db.messages.count_documents({'_id': message.message_id}) == 1

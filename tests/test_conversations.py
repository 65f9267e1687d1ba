import pytest
from pymongo.errors import PyMongoError

from relay_server.messaging.conversations import ConversationDeriver
from relay_server.messaging.presence import PresenceTracker


@pytest.fixture
def presence(repos, clock):
    return PresenceTracker(repo=repos.presence, clock=clock)


@pytest.fixture
def deriver(repos, presence):
    return ConversationDeriver(repos=repos, presence=presence)


def _by_participant(listing):
    return {c.participant_id: c for c in listing.conversations}


def _fail(*args, **kwargs):
    raise PyMongoError('connection reset')


def test_groups_messages_by_counterpart(deriver, service, clock, people):
    service.send(people['client'], people['coord'], 'first')
    clock.advance(10)
    service.send(people['owner'], people['coord'], 'from the owner')
    clock.advance(10)
    service.send(people['client'], people['coord'], 'latest from client')
    clock.advance(10)
    service.send(people['coord'], people['client'], 'my reply')

    listing = deriver.list_conversations(people['coord'], 'project_manager')
    assert listing.degraded is False

    with_history = [c for c in listing.conversations if c.has_history]
    assert [c.participant_id for c in with_history] == [people['client'], people['owner']]

    client_row = with_history[0]
    assert client_row.last_message == 'my reply'
    assert client_row.last_message_time == clock.now
    # Unread counts only messages addressed to the caller
    assert client_row.unread_count == 2
    assert with_history[1].unread_count == 1


def test_contacts_without_history_are_appended(deriver, people):
    listing = deriver.list_conversations(people['coord'], 'project_manager')
    rows = _by_participant(listing)
    assert set(rows) == {people['client'], people['owner']}
    assert all(not row.has_history and row.unread_count == 0 for row in rows.values())
    assert people['client2'] not in rows


def test_role_falls_back_to_the_directory(deriver, people):
    listing = deriver.list_conversations(str(people['client2']))
    assert set(_by_participant(listing)) == {people['coord2'], people['owner']}


def test_summary_carries_project_title_and_presence(deriver, service, presence, clock, people):
    service.send(people['coord'], people['client'], 'scoped', project_id=people['project'])
    presence.touch(people['client'])

    row = _by_participant(deriver.list_conversations(people['coord'], 'project_manager'))[people['client']]
    assert row.project_id == people['project']
    assert row.project_title == 'Acme Website'
    assert row.is_online is True
    assert row.to_dict()['participantName'] == 'Acme Client'


def test_deleted_messages_are_ignored(deriver, service, people):
    message = service.send(people['coord'], people['client'], 'regret')
    service.delete_message(people['coord'], message.message_id)

    row = _by_participant(deriver.list_conversations(people['client'], 'client'))[people['coord']]
    assert row.has_history is False
    assert row.unread_count == 0


def test_inactive_counterparts_are_dropped(deriver, service, db, people):
    service.send(people['coord'], people['client'], 'before they left')
    db.users.update_one({'_id': people['client']}, {'$set': {'isActive': False}})

    listing = deriver.list_conversations(people['coord'], 'project_manager')
    assert people['client'] not in _by_participant(listing)
    assert listing.degraded is False


def test_message_failure_degrades_to_contacts(deriver, repos, service, people, monkeypatch):
    service.send(people['coord'], people['client'], 'hi')
    monkeypatch.setattr(repos.message, 'iter_for_participant', _fail)

    listing = deriver.list_conversations(people['coord'], 'project_manager')
    assert listing.degraded is True
    assert listing.failed_steps == ['messages']
    rows = _by_participant(listing)
    assert set(rows) == {people['client'], people['owner']}
    assert not any(row.has_history for row in rows.values())


def test_presence_failure_marks_everyone_offline(deriver, presence, people, monkeypatch):
    presence.touch(people['client'])
    monkeypatch.setattr(presence, 'online_map', _fail)

    listing = deriver.list_conversations(people['coord'], 'project_manager')
    assert listing.degraded is True
    assert listing.conversations
    assert all(row.is_online is False for row in listing.conversations)


def test_directory_failure_yields_empty_degraded_listing(deriver, repos, service, people, monkeypatch):
    service.send(people['coord'], people['client'], 'hi')
    monkeypatch.setattr(repos.user, 'map_active_by_ids', _fail)

    listing = deriver.list_conversations(people['coord'], 'project_manager')
    assert listing.to_dict() == {'conversations': [], 'degraded': True}


def test_invalid_user_id_is_degraded_not_raised(deriver):
    listing = deriver.list_conversations('garbage')
    assert listing.degraded is True
    assert listing.conversations == []


def test_read_by_client_is_reflected_on_both_sides(deriver, service, clock, people):
    service.send(people['coord'], people['client'], 'Hello')
    clock.advance(60)
    service.mark_read(people['client'], people['coord'])

    client_row = _by_participant(deriver.list_conversations(people['client'], 'client'))[people['coord']]
    assert client_row.unread_count == 0
    assert client_row.last_message == 'Hello'

    coord_row = _by_participant(deriver.list_conversations(people['coord'], 'project_manager'))[people['client']]
    assert coord_row.last_message == 'Hello'
    assert coord_row.unread_count == 0

    # Repeating the read changes nothing
    assert service.mark_read(people['client'], people['coord']) == 0
    again = _by_participant(deriver.list_conversations(people['client'], 'client'))[people['coord']]
    assert again.unread_count == 0


def test_each_side_sees_exactly_one_entry_for_the_other(deriver, service, clock, people):
    for i in range(4):
        clock.advance(1)
        sender, recipient = (people['coord'], people['client']) if i % 2 == 0 else (people['client'], people['coord'])
        service.send(sender, recipient, f'turn {i}')

    for me, other, role in ((people['coord'], people['client'], 'project_manager'), (people['client'], people['coord'], 'client')):
        rows = [c for c in deriver.list_conversations(me, role).conversations if c.participant_id == other]
        assert len(rows) == 1
        assert rows[0].last_message == 'turn 3'


def test_message_without_timestamp_sorts_last(deriver, service, db, people):
    service.send(people['client'], people['coord'], 'dated')
    db.messages.insert_one({
        'senderId': people['owner'],
        'recipientId': people['coord'],
        'content': 'imported without a timestamp',
        'isRead': False,
        'isDeleted': False,
    })

    listing = deriver.list_conversations(people['coord'], 'project_manager')
    assert listing.degraded is False
    with_history = [c for c in listing.conversations if c.has_history]
    assert [c.participant_id for c in with_history] == [people['client'], people['owner']]
    assert with_history[1].to_dict()['lastMessageTime'] is None

from conftest import events_named, token_for


def test_connect_requires_a_valid_token(app, socketio):
    anonymous = socketio.test_client(app)
    assert anonymous.is_connected() is False

    forged = socketio.test_client(app, auth={'token': 'a.b.c'})
    assert forged.is_connected() is False


def test_connect_joins_personal_room_and_touches_presence(connect, people, db):
    coord = connect('coord')
    assert coord.is_connected()

    connected = events_named(coord.get_received(), 'connected')
    assert connected and connected[0]['userId'] == str(people['coord'])
    assert db.user_presence.count_documents({'userId': people['coord']}) == 1


def test_token_in_query_string_is_accepted(app, socketio, people):
    sio_client = socketio.test_client(app, query_string=f"token={token_for(people, 'client')}")
    assert sio_client.is_connected()
    sio_client.disconnect()


def test_send_over_socket_delivers_to_recipient_and_acks_sender(connect, people, db):
    coord = connect('coord')
    client = connect('client')
    coord.get_received()
    client.get_received()

    coord.emit('message:send', {'recipientId': str(people['client']), 'content': 'live hello', 'tempId': 'tmp-1'})

    sent = events_named(coord.get_received(), 'message:sent')
    assert len(sent) == 1
    assert sent[0]['tempId'] == 'tmp-1'
    message_id = sent[0]['message']['_id']

    delivered = events_named(client.get_received(), 'message:new')
    assert [e['message']['_id'] for e in delivered] == [message_id]
    assert delivered[0]['message']['content'] == 'live hello'
    assert db.messages.count_documents({}) == 1


def test_rejected_send_reports_message_error(connect, people, db):
    coord = connect('coord')
    stranger = connect('client2')
    coord.get_received()
    stranger.get_received()

    coord.emit('message:send', {'recipientId': str(people['client2']), 'content': 'hi', 'tempId': 'tmp-2'})

    errors = events_named(coord.get_received(), 'message:error')
    assert errors == [{'code': 'FORBIDDEN', 'message': 'You are not allowed to message this user', 'tempId': 'tmp-2'}]
    assert events_named(stranger.get_received(), 'message:new') == []
    assert db.messages.count_documents({}) == 0


def test_invalid_send_payload_reports_invalid_data(connect):
    coord = connect('coord')
    coord.get_received()
    coord.emit('message:send', {'recipientId': 'nope', 'content': 'hi'})
    errors = events_named(coord.get_received(), 'message:error')
    assert errors[0]['code'] == 'INVALID_DATA'


def test_mark_read_over_socket_notifies_the_sender(connect, people):
    coord = connect('coord')
    client = connect('client')
    coord.emit('message:send', {'recipientId': str(people['client']), 'content': 'please review'})
    coord.get_received()
    client.get_received()

    ack = client.emit('messages:read', {'participantId': str(people['coord'])}, callback=True)
    assert ack == {'success': True, 'markedCount': 1}

    receipts = events_named(coord.get_received(), 'message:read')
    assert receipts[0]['readerId'] == str(people['client'])
    assert receipts[0]['count'] == 1


def test_direct_typing_is_relayed_only_when_permitted(connect, people):
    coord = connect('coord')
    client = connect('client')
    stranger = connect('client2')
    for c in (coord, client, stranger):
        c.get_received()

    coord.emit('typing:start', {'recipientId': str(people['client'])})
    coord.emit('typing:start', {'recipientId': str(people['client2'])})

    typing = events_named(client.get_received(), 'typing:start')
    assert typing[0]['userId'] == str(people['coord'])
    assert typing[0]['isTyping'] is True
    assert events_named(stranger.get_received(), 'typing:start') == []


def test_project_room_membership(connect, people):
    coord = connect('coord')
    client = connect('client')
    outsider = connect('client2')
    for c in (coord, client, outsider):
        c.get_received()

    project_id = str(people['project'])
    coord.emit('project:join', {'projectId': project_id})
    client.emit('project:join', {'projectId': project_id})
    outsider.emit('project:join', {'projectId': project_id})

    assert events_named(coord.get_received(), 'project:joined') == [{'projectId': project_id}]
    client.get_received()
    refused = events_named(outsider.get_received(), 'error')
    assert refused[0]['code'] == 'FORBIDDEN'

    coord.emit('typing:stop', {'projectId': project_id})
    assert events_named(client.get_received(), 'typing:stop')[0]['projectId'] == project_id
    # The typist's own connection is skipped and the outsider never joined
    assert events_named(coord.get_received(), 'typing:stop') == []
    assert events_named(outsider.get_received(), 'typing:stop') == []


def test_project_message_reaches_the_project_room(connect, people):
    coord = connect('coord')
    owner = connect('owner')
    owner.emit('project:join', {'projectId': str(people['project'])})
    for c in (coord, owner):
        c.get_received()

    coord.emit('message:send', {
        'recipientId': str(people['client']),
        'projectId': str(people['project']),
        'content': 'milestone done',
    })
    delivered = events_named(owner.get_received(), 'message:new')
    assert delivered[0]['message']['projectId'] == str(people['project'])
    assert delivered[0]['_target'] == 'project'


def test_ping_answers_pong(connect):
    coord = connect('coord')
    coord.get_received()
    coord.emit('ping')
    assert events_named(coord.get_received(), 'pong')


def test_disconnect_drops_bookkeeping(app, connect, people):
    from relay_server.websocket.hub import get_websocket_hub
    coord = connect('coord')
    hub = get_websocket_hub()
    assert hub.is_connected(people['coord'])

    coord.disconnect()
    assert not hub.is_connected(people['coord'])


def test_uppercase_project_id_joins_the_canonical_room(connect, people):
    coord = connect('coord')
    client = connect('client')
    upper = str(people['project']).upper()
    client.emit('project:join', {'projectId': upper})
    assert events_named(client.get_received(), 'project:joined') == [{'projectId': str(people['project'])}]
    coord.get_received()

    coord.emit('message:send', {
        'recipientId': str(people['owner']),
        'projectId': str(people['project']),
        'content': 'room check',
    })
    delivered = events_named(client.get_received(), 'message:new')
    assert [e['_target'] for e in delivered] == ['project']

    coord.emit('project:join', {'projectId': str(people['project'])})
    coord.get_received()
    client.emit('typing:start', {'projectId': upper})
    assert events_named(coord.get_received(), 'typing:start')[0]['projectId'] == str(people['project'])

    client.emit('project:leave', {'projectId': upper})
    assert events_named(client.get_received(), 'project:left') == [{'projectId': str(people['project'])}]


def test_non_object_payloads_are_invalid_data(connect):
    coord = connect('coord')
    coord.get_received()

    coord.emit('message:send', 'just a string')
    assert events_named(coord.get_received(), 'message:error') == [
        {'code': 'INVALID_DATA', 'message': 'Payload must be an object', 'tempId': None},
    ]

    coord.emit('messages:read', ['not', 'a', 'dict'])
    assert events_named(coord.get_received(), 'error')[0]['code'] == 'INVALID_DATA'

    coord.emit('project:join', 'nope')
    assert events_named(coord.get_received(), 'error')[0]['code'] == 'INVALID_DATA'
    coord.emit('typing:start', 42)
    assert coord.get_received() == []

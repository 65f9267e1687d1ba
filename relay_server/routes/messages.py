"""Messages REST API routes.

REST endpoints cover sending, history, read state and the derived
conversation list. The same operations are available in real time over
Socket.IO (see websocket/handlers/chat_handler.py); both paths go through
MessagingService, so every send is authorized and persisted before it is
broadcast.

Endpoints:
- POST   /api/messages                    send a message
- GET    /api/messages                    one page of a thread
- GET    /api/messages/conversations      derived conversation list (never fails)
- POST   /api/messages/conversations      open a conversation with a contact
- POST   /api/messages/mark-read          mark a thread read
- PATCH  /api/messages/<id>/read          mark one message read
- POST   /api/messages/<id>/reactions     add a reaction
- DELETE /api/messages/<id>/reactions     remove a reaction
- DELETE /api/messages/<id>               soft-delete own message
- GET    /api/messages/stats              message counters (degrades)
- GET    /api/messages/presence           online flags for user ids
"""
import logging

from flask import Blueprint, request
from pymongo.errors import PyMongoError

from config import config
from relay_server.exception.ValidationError import ValidationError
from relay_server.messaging.conversations import get_conversation_deriver
from relay_server.messaging.presence import get_presence_tracker
from relay_server.messaging.service import get_messaging_service
from relay_server.utils.decorators import handle_errors, require_auth
from relay_server.utils.helpers import (
    build_pagination, normalize_doc, parse_bool, parse_page_args, respond_error, respond_success,
)
from relay_server.utils.validation import to_object_id, validate_send_payload

logger = logging.getLogger(__name__)

messages_bp = Blueprint('messages', __name__, url_prefix='/api/messages')

FALLBACK_HEADERS = {'X-Fallback': 'true'}
RECENT_CONVERSATIONS = 5


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


@messages_bp.route('', methods=['POST'])
@handle_errors
@require_auth
def send_message(auth_payload):
    """Send a message.

    Body:
        recipientId: str (required)
        content: str (required, trimmed, max 2000 chars)
        projectId: str - scope the message to a shared project
        attachments: list of {fileId, filename, url, mimeType, size}
        replyTo: str - id of the message being answered
        messageType: text | image | file | audio | video
    """
    data = _json_body()
    ok, errors = validate_send_payload(data)
    if not ok:
        return respond_error(errors, status=400)

    message = get_messaging_service().send(
        auth_payload['user_id'],
        data['recipientId'],
        data['content'],
        project_id=data.get('projectId') or None,
        attachments=data.get('attachments'),
        reply_to=data.get('replyTo') or None,
        message_type=data.get('messageType'),
    )
    return respond_success({'data': message.to_dict()}, status=201)


@messages_bp.route('', methods=['GET'])
@handle_errors
@require_auth
def list_messages(auth_payload):
    """One page of the thread with ``participantId``, oldest first.

    Query Params:
        participantId: str (required)
        projectId: str - project thread instead of the direct thread
        page: int - 1 is the most recent page (default 1)
        limit: int - default 50, max 100
        unreadOnly: bool - only unread messages addressed to the caller
    """
    participant_id = request.args.get('participantId')
    if not participant_id:
        return respond_error({'participantId': 'participantId is required'}, status=400)

    page, limit, errors = parse_page_args(
        request.args,
        default_limit=config.MESSAGE_PAGE_LIMIT,
        max_limit=config.MESSAGE_PAGE_MAX_LIMIT,
    )
    if errors:
        return respond_error(errors, status=400)

    messages, total = get_messaging_service().list_between(
        auth_payload['user_id'],
        participant_id,
        project_id=request.args.get('projectId') or None,
        page=page,
        limit=limit,
        unread_only=parse_bool(request.args.get('unreadOnly')),
    )
    return respond_success({
        'data': [m.to_dict() for m in messages],
        'pagination': build_pagination(page, limit, total),
    })


@messages_bp.route('/conversations', methods=['GET'])
@handle_errors
@require_auth
def list_conversations(auth_payload):
    """Derived conversation list.

    Always 200 for an authenticated caller. When part of the derivation
    failed the body carries ``degraded: true`` and the X-Fallback header is set.
    """
    listing = get_conversation_deriver().list_conversations(
        auth_payload['user_id'], auth_payload.get('role')
    )
    body = listing.to_dict()
    if listing.degraded:
        return respond_success(body, headers=FALLBACK_HEADERS)
    return respond_success(body)


@messages_bp.route('/conversations', methods=['POST'])
@handle_errors
@require_auth
def start_conversation(auth_payload):
    """Open a conversation with a permitted contact (no message is written)."""
    data = _json_body()
    participant_id = data.get('participantId')
    if not participant_id:
        return respond_error({'participantId': 'participantId is required'}, status=400)

    summary = get_messaging_service().start_conversation(auth_payload['user_id'], participant_id)
    try:
        summary.is_online = get_presence_tracker().is_online(summary.participant_id)
    except PyMongoError as e:
        logger.warning("Presence lookup failed for %s: %s", summary.participant_id, e)
    return respond_success({'conversation': summary.to_dict()})


@messages_bp.route('/mark-read', methods=['POST'])
@handle_errors
@require_auth
def mark_read(auth_payload):
    """Mark every message from ``participantId`` to the caller as read (idempotent)."""
    data = _json_body()
    participant_id = data.get('participantId')
    if not participant_id:
        return respond_error({'participantId': 'participantId is required'}, status=400)

    count = get_messaging_service().mark_read(auth_payload['user_id'], participant_id)
    return respond_success({'markedCount': count})


@messages_bp.route('/<message_id>/read', methods=['PATCH'])
@handle_errors
@require_auth
def mark_message_read(message_id, auth_payload):
    message = get_messaging_service().mark_message_read(auth_payload['user_id'], message_id)
    return respond_success({'data': message.to_dict()})


@messages_bp.route('/<message_id>/reactions', methods=['POST'])
@handle_errors
@require_auth
def add_reaction(message_id, auth_payload):
    data = _json_body()
    message = get_messaging_service().add_reaction(auth_payload['user_id'], message_id, data.get('emoji'))
    return respond_success({'data': message.to_dict()})


@messages_bp.route('/<message_id>/reactions', methods=['DELETE'])
@handle_errors
@require_auth
def remove_reaction(message_id, auth_payload):
    data = _json_body()
    emoji = data.get('emoji') or request.args.get('emoji')
    message = get_messaging_service().remove_reaction(auth_payload['user_id'], message_id, emoji)
    return respond_success({'data': message.to_dict()})


@messages_bp.route('/<message_id>', methods=['DELETE'])
@handle_errors
@require_auth
def delete_message(message_id, auth_payload):
    message = get_messaging_service().delete_message(auth_payload['user_id'], message_id)
    return respond_success({'data': {'_id': str(message.message_id), 'isDeleted': True}})


@messages_bp.route('/stats', methods=['GET'])
@handle_errors
@require_auth
def message_stats(auth_payload):
    """Counters for the caller's inbox.

    Query Params:
        includeRecent: bool - add the most recent conversations with history
    """
    user_id = auth_payload['user_id']
    data, degraded = get_messaging_service().stats(user_id)
    data = normalize_doc(data)

    if parse_bool(request.args.get('includeRecent')):
        listing = get_conversation_deriver().list_conversations(user_id, auth_payload.get('role'))
        recent = [c for c in listing.conversations if c.has_history][:RECENT_CONVERSATIONS]
        data['recentConversations'] = [c.to_dict() for c in recent]
        degraded = degraded or listing.degraded

    body = {'data': data, 'degraded': degraded}
    if degraded:
        return respond_success(body, headers=FALLBACK_HEADERS)
    return respond_success(body)


@messages_bp.route('/presence', methods=['GET'])
@handle_errors
@require_auth
def presence(auth_payload):
    """Online flags for ``userIds`` (comma separated)."""
    raw = request.args.get('userIds', '')
    ids = [to_object_id(part, 'userIds') for part in raw.split(',') if part.strip()]
    if not ids:
        return respond_error({'userIds': 'userIds is required'}, status=400)

    tracker = get_presence_tracker()
    try:
        seen = tracker.last_seen_many(ids)
    except PyMongoError as e:
        logger.warning("Presence lookup degraded: %s", e)
        body = {'presence': {str(i): {'isOnline': False, 'lastSeen': None} for i in ids}, 'degraded': True}
        return respond_success(body, headers=FALLBACK_HEADERS)

    result = {}
    for user_id in ids:
        last_seen = seen.get(user_id)
        result[str(user_id)] = {
            'isOnline': tracker.is_fresh(last_seen),
            'lastSeen': normalize_doc(last_seen),
        }
    return respond_success({'presence': result, 'degraded': False})

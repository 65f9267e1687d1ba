from bson import ObjectId
from bson.errors import InvalidId

from relay_server.exception.ValidationError import ValidationError


def is_object_id(value) -> bool:
    if isinstance(value, ObjectId):
        return True
    return isinstance(value, str) and ObjectId.is_valid(value)


def to_object_id(value, field='id') -> ObjectId:
    """Coerce ``value`` to an ObjectId or raise ValidationError naming ``field``."""
    if isinstance(value, ObjectId):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'Invalid {field}', {field: f'{field} is required'})
    try:
        return ObjectId(value.strip())
    except (InvalidId, TypeError):
        raise ValidationError(f'Invalid {field}', {field: f'{field} must be a valid id'})


def optional_object_id(value, field='id'):
    if value is None or value == '':
        return None
    return to_object_id(value, field)


def validate_send_payload(data):
    """Check the shape of a send-message body.

    Returns (ok: bool, errors: dict). Semantic checks (membership, permission,
    length) happen in the messaging service.
    """
    errors = {}
    if not isinstance(data, dict):
        return False, {'body': 'Request body must be a JSON object'}
    if not data.get('recipientId'):
        errors['recipientId'] = 'recipientId is required'
    elif not is_object_id(data.get('recipientId')):
        errors['recipientId'] = 'recipientId must be a valid id'
    content = data.get('content')
    if content is None or not isinstance(content, str) or not content.strip():
        errors['content'] = 'content is required'
    project_id = data.get('projectId')
    if project_id not in (None, '') and not is_object_id(project_id):
        errors['projectId'] = 'projectId must be a valid id'
    reply_to = data.get('replyTo')
    if reply_to not in (None, '') and not is_object_id(reply_to):
        errors['replyTo'] = 'replyTo must be a valid id'
    attachments = data.get('attachments')
    if attachments is not None and not isinstance(attachments, list):
        errors['attachments'] = 'attachments must be a list'
    return (len(errors) == 0, errors)

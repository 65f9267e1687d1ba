from datetime import datetime

from bson import ObjectId
from flask import jsonify

from relay_server.utils.time_utils import to_iso


def respond_error(message_or_dict, status=400):
    """Return a standardized error response."""
    if isinstance(message_or_dict, dict):
        body = {'success': False, 'errors': message_or_dict}
    else:
        body = {'success': False, 'error': message_or_dict}
    return jsonify(body), status


def respond_success(payload=None, status=200, headers=None):
    if payload is None:
        payload = {}
    body = {'success': True}
    if isinstance(payload, dict):
        body.update(payload)
    else:
        body['data'] = payload
    if headers:
        return jsonify(body), status, headers
    return jsonify(body), status


def normalize_doc(obj):
    """Recursively convert BSON types (ObjectId) and datetimes to JSON-serializable values.

    - ObjectId -> str(ObjectId)
    - datetime -> ISO string (UTC, 'Z' suffix)
    - recursively handles dicts and lists
    Returns a new object (does not mutate input).
    """
    if obj is None:
        return None
    if isinstance(obj, dict):
        return {k: normalize_doc(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [normalize_doc(v) for v in obj]
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, datetime):
        return to_iso(obj)
    return obj


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def parse_page_args(args, default_limit=50, max_limit=100):
    """Parse ``page``/``limit`` query args into ints.

    Returns (page, limit, errors); errors is None when both are valid.
    """
    errors = {}
    page = 1
    limit = default_limit
    try:
        page = int(args.get('page', 1))
        if page < 1:
            errors['page'] = 'page must be >= 1'
    except (TypeError, ValueError):
        errors['page'] = 'page must be an integer'
    try:
        limit = int(args.get('limit', default_limit))
        if limit < 1:
            errors['limit'] = 'limit must be >= 1'
        limit = min(limit, max_limit)
    except (TypeError, ValueError):
        errors['limit'] = 'limit must be an integer'
    if errors:
        return None, None, errors
    return page, limit, None


def build_pagination(page, limit, total_count):
    total_pages = (total_count + limit - 1) // limit if limit else 0
    return {
        'page': page,
        'limit': limit,
        'totalCount': total_count,
        'totalPages': total_pages,
        'hasNext': page < total_pages,
        'hasPrev': page > 1,
    }

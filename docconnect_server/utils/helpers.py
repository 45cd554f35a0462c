import math
from datetime import datetime
from typing import Optional, Tuple

from bson import ObjectId
from bson.errors import InvalidId
from flask import jsonify

from config import config
from docconnect_server.exception.MessagingError import ValidationFailedError, NotFoundError
from docconnect_server.utils.time_utils import to_iso


def respond_error(message, status=400, code=None):
    """Return a standardized error response."""
    body = {'success': False, 'message': message}
    if code:
        body['code'] = code
    return jsonify(body), status


def respond_success(data=None, status=200, pagination=None, message=None):
    """Return a standardized success response: {success, data, pagination?, message?}."""
    body = {'success': True, 'data': data}
    if pagination is not None:
        body['pagination'] = pagination
    if message:
        body['message'] = message
    return jsonify(body), status


def normalize_doc(obj):
    """Recursively convert BSON types (ObjectId) and datetimes to JSON-serializable values.

    - ObjectId -> str(ObjectId)
    - datetime -> ISO string
    - recursively handles dicts and lists
    Returns a new object (does not mutate input).
    """
    if obj is None:
        return None
    if isinstance(obj, dict):
        return {k: normalize_doc(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [normalize_doc(v) for v in obj]
    if isinstance(obj, ObjectId):
        return str(obj)
    if isinstance(obj, datetime):
        return to_iso(obj)
    return obj


def to_object_id(value, label: str = 'Resource') -> ObjectId:
    """Coerce a client-supplied id; malformed ids are reported as missing resources."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise NotFoundError(f'{label} not found')


def parse_pagination(args, default_limit: Optional[int] = None, max_limit: Optional[int] = None) -> Tuple[int, int]:
    """Parse 1-based ``page`` and ``limit`` query arguments."""
    default_limit = default_limit or config.DEFAULT_PAGE_LIMIT
    max_limit = max_limit or config.MAX_PAGE_LIMIT
    try:
        page = int(args.get('page', 1))
    except (TypeError, ValueError):
        raise ValidationFailedError('page must be an integer')
    try:
        limit = int(args.get('limit', default_limit))
    except (TypeError, ValueError):
        raise ValidationFailedError('limit must be an integer')
    if page < 1:
        raise ValidationFailedError('page must be >= 1')
    if limit < 1 or limit > max_limit:
        raise ValidationFailedError(f'limit must be between 1 and {max_limit}')
    return page, limit


def build_pagination(page: int, limit: int, total: int) -> dict:
    return {
        'page': page,
        'limit': limit,
        'total': total,
        'pages': math.ceil(total / limit) if limit else 0,
    }

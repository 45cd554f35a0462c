"""Notification routes for the current user."""
import logging

from flask import Blueprint, request

from docconnect_server.exception import ValidationFailedError
from docconnect_server.messaging.notifications import get_notification_service
from docconnect_server.utils.decorators import handle_errors, require_auth
from docconnect_server.utils.helpers import respond_success, parse_pagination

logger = logging.getLogger(__name__)

notification_bp = Blueprint('notification', __name__, url_prefix='/api/notifications')


def _parse_read_filter(value):
    if value is None:
        return None
    lowered = value.lower()
    if lowered in ('true', '1'):
        return True
    if lowered in ('false', '0'):
        return False
    raise ValidationFailedError('read must be true or false')


@notification_bp.route('/', methods=['GET'])
@notification_bp.route('', methods=['GET'])
@handle_errors
@require_auth
def list_notifications(auth_payload):
    """List notifications for the current user, newest first.

    Query Params:
        page: int - 1-based page (default: 1)
        limit: int - Page size (default: 20)
        read: bool - Only read / only unread
    """
    user_key = auth_payload['user_key']
    page, limit = parse_pagination(request.args)
    service = get_notification_service()
    items, pagination = service.list_notifications(user_key, page, limit, _parse_read_filter(request.args.get('read')))
    return respond_success({'notifications': items, 'unreadCount': service.unread_count(user_key)},
                           pagination=pagination)


@notification_bp.route('/<notification_id>/read', methods=['PUT'])
@handle_errors
@require_auth
def mark_notification_read(notification_id, auth_payload):
    notification = get_notification_service().mark_read(notification_id, auth_payload['user_key'])
    return respond_success(notification, message='Notification marked as read')


@notification_bp.route('/read-all', methods=['PUT'])
@handle_errors
@require_auth
def mark_all_notifications_read(auth_payload):
    count = get_notification_service().mark_all_read(auth_payload['user_key'])
    return respond_success({'modifiedCount': count}, message='All notifications marked as read')


@notification_bp.route('/<notification_id>', methods=['DELETE'])
@handle_errors
@require_auth
def delete_notification(notification_id, auth_payload):
    get_notification_service().delete(notification_id, auth_payload['user_key'])
    return respond_success({'notificationId': notification_id}, message='Notification deleted')

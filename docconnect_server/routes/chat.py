"""Messaging REST API routes.

Stateless mirror of the realtime chat operations for clients that cannot
hold a socket connection. Writes made here are fanned out to connected
clients exactly like their realtime counterparts.

Endpoints (all under /api/messages, bearer auth):
- GET    /conversations                      - List conversations
- POST   /conversations                      - Find or create a conversation
- GET    /conversations/{id}                 - Conversation details
- PUT    /conversations/{id}/archive         - Toggle archive
- PUT    /conversations/{id}/mute            - Toggle mute
- PUT    /conversations/{id}/read            - Mark conversation read
- GET    /conversations/{id}/messages        - Message history (oldest first per page)
- POST   /conversations/{id}/messages        - Send a message
- PUT    /mark-delivered                     - Bulk mark delivered
- PUT    /mark-read                          - Bulk mark read
- PUT    /{messageId}                        - Edit a text message
- DELETE /{messageId}                        - Soft delete for the caller
"""
import logging

from flask import Blueprint, request

from docconnect_server.messaging.models import preview_text
from docconnect_server.messaging.notifications import get_notification_service
from docconnect_server.messaging.service import get_messaging_service
from docconnect_server.utils.decorators import handle_errors, require_auth, get_json_body
from docconnect_server.utils.helpers import respond_success, parse_pagination
from docconnect_server.websocket.handlers.chat_handler import get_chat_handler

logger = logging.getLogger(__name__)

chat_bp = Blueprint('chat', __name__, url_prefix='/api/messages')


# =============================================================================
# Conversation Endpoints
# =============================================================================

@chat_bp.route('/conversations', methods=['GET'])
@handle_errors
@require_auth
def list_conversations(auth_payload):
    """List non-archived conversations, most recent first.

    Query Params:
        page: int - 1-based page (default: 1)
        limit: int - Page size (default: 20)
    """
    page, limit = parse_pagination(request.args)
    items, pagination = get_messaging_service().list_conversations(auth_payload['user_key'], page, limit)
    return respond_success(items, pagination=pagination)


@chat_bp.route('/conversations', methods=['POST'])
@handle_errors
@require_auth
def create_conversation(auth_payload):
    """Find or create the conversation with another user.

    Body:
        participantId: str - The other user's key
        relatedTo: {type, id} - Optional job/application context

    Returns 201 when a conversation was created, 200 when it already existed.
    """
    user_key = auth_payload['user_key']
    data = get_json_body()
    service = get_messaging_service()
    doc, created = service.find_or_create_conversation(user_key, data.get('participantId'), data.get('relatedTo'))
    return respond_success(service.conversation_view(doc, user_key), status=201 if created else 200)


@chat_bp.route('/conversations/<conversation_id>', methods=['GET'])
@handle_errors
@require_auth
def get_conversation(conversation_id, auth_payload):
    return respond_success(get_messaging_service().get_conversation(conversation_id, auth_payload['user_key']))


@chat_bp.route('/conversations/<conversation_id>/archive', methods=['PUT'])
@handle_errors
@require_auth
def toggle_archive(conversation_id, auth_payload):
    archived = get_messaging_service().toggle_archive(conversation_id, auth_payload['user_key'])
    return respond_success({'isArchived': archived},
                           message='Conversation archived' if archived else 'Conversation unarchived')


@chat_bp.route('/conversations/<conversation_id>/mute', methods=['PUT'])
@handle_errors
@require_auth
def toggle_mute(conversation_id, auth_payload):
    muted = get_messaging_service().toggle_mute(conversation_id, auth_payload['user_key'])
    return respond_success({'isMuted': muted},
                           message='Conversation muted' if muted else 'Conversation unmuted')


@chat_bp.route('/conversations/<conversation_id>/read', methods=['PUT'])
@handle_errors
@require_auth
def mark_conversation_read(conversation_id, auth_payload):
    user_key = auth_payload['user_key']
    read = get_messaging_service().mark_conversation_read(conversation_id, user_key)
    handler = get_chat_handler()
    if handler and read:
        handler.notify_read(read, user_key)
    return respond_success({'markedCount': len(read)}, message='Conversation marked as read')


# =============================================================================
# Message Endpoints
# =============================================================================

@chat_bp.route('/conversations/<conversation_id>/messages', methods=['GET'])
@handle_errors
@require_auth
def list_messages(conversation_id, auth_payload):
    """Message history. Page 1 holds the newest messages, each page is oldest first."""
    page, limit = parse_pagination(request.args)
    items, pagination = get_messaging_service().list_messages(conversation_id, auth_payload['user_key'], page, limit)
    return respond_success(items, pagination=pagination)


@chat_bp.route('/conversations/<conversation_id>/messages', methods=['POST'])
@handle_errors
@require_auth
def send_message(conversation_id, auth_payload):
    """Send a message.

    Body:
        content: str - Required for text/system messages
        messageType: str - text (default), file or system
        fileUrl, fileName, fileSize - Required for file messages
        replyTo: str - Optional id of a message in the same conversation
    """
    user_key = auth_payload['user_key']
    message, _ = get_messaging_service().send_message(conversation_id, user_key, get_json_body())
    handler = get_chat_handler()
    if handler:
        message = handler.publish_new_message(message)
    else:
        sender = get_messaging_service().users.get_public_profile(user_key) or {'userKey': user_key}
        get_notification_service().notify_new_message_safely(
            message['recipient'], sender, preview_text(message), message['conversationId'], message_id=message['id']
        )
    return respond_success(message, status=201, message='Message sent')


@chat_bp.route('/mark-delivered', methods=['PUT'])
@handle_errors
@require_auth
def mark_delivered(auth_payload):
    data = get_json_body()
    delivered = get_messaging_service().mark_delivered(data.get('messageIds'), auth_payload['user_key'],
                                                       data.get('conversationId'))
    handler = get_chat_handler()
    if handler and delivered:
        handler.notify_delivered(delivered)
    return respond_success({'modifiedCount': len(delivered), 'messageIds': [m['id'] for m in delivered]})


@chat_bp.route('/mark-read', methods=['PUT'])
@handle_errors
@require_auth
def mark_read(auth_payload):
    user_key = auth_payload['user_key']
    data = get_json_body()
    read = get_messaging_service().mark_read(data.get('messageIds'), user_key, data.get('conversationId'))
    handler = get_chat_handler()
    if handler and read:
        handler.notify_read(read, user_key)
    return respond_success({'modifiedCount': len(read), 'messageIds': [m['id'] for m in read]})


@chat_bp.route('/<message_id>', methods=['PUT'])
@handle_errors
@require_auth
def edit_message(message_id, auth_payload):
    message = get_messaging_service().edit_message(message_id, auth_payload['user_key'], get_json_body().get('content'))
    handler = get_chat_handler()
    if handler:
        handler.notify_edited(message)
    return respond_success(message, message='Message updated')


@chat_bp.route('/<message_id>', methods=['DELETE'])
@handle_errors
@require_auth
def delete_message(message_id, auth_payload):
    user_key = auth_payload['user_key']
    result = get_messaging_service().soft_delete_message(message_id, user_key)
    handler = get_chat_handler()
    if handler:
        handler.notify_deleted(result, user_key)
    return respond_success({'messageId': result['id'], 'deletedForEveryone': result['deletedForEveryone']},
                           message='Message deleted')

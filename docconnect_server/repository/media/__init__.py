from docconnect_server.repository.media.conversation_repository import ConversationRepository
from docconnect_server.repository.media.chat_message_repository import ChatMessageRepository
from docconnect_server.repository.media.user_presence_repository import UserPresenceRepository
from docconnect_server.repository.media.notification_repository import NotificationRepository

__all__ = [
    'ConversationRepository',
    'ChatMessageRepository',
    'UserPresenceRepository',
    'NotificationRepository'
]

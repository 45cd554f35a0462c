import logging

from pymongo import MongoClient, ASCENDING, DESCENDING

from config import config

logger = logging.getLogger(__name__)

# Collection names
CONVERSATIONS = 'conversations'
CHAT_MESSAGES = 'chat_messages'
NOTIFICATIONS = 'notifications'
USERS = 'users'


class MongoRepositorySingleton:
    _db_instance = None

    @classmethod
    def get_db(cls):
        """Singleton utility to get the MongoDB database object.

        Uses config.MONGO_URI and config.MESSAGING_DB_NAME. Tests and
        embedding applications can install their own handle via set_db().
        """
        if cls._db_instance is not None:
            return cls._db_instance
        mongo_uri = config.MONGO_URI
        db_name = config.MESSAGING_DB_NAME
        logger.info("Connecting to MongoDB DB: %s", db_name)
        client = MongoClient(mongo_uri)
        cls._db_instance = client[db_name]
        return cls._db_instance

    @classmethod
    def set_db(cls, db):
        cls._db_instance = db

    @classmethod
    def reset(cls):
        cls._db_instance = None


def ensure_indexes(db):
    """Create the indexes the messaging query paths rely on (idempotent).

    The unique participant_key index is what keeps two users from ever
    ending up with two conversations, so failures here are raised.
    """
    db[CONVERSATIONS].create_index([('participant_key', ASCENDING)], unique=True, name='conversations_participant_key')
    db[CONVERSATIONS].create_index(
        [('participants', ASCENDING), ('last_message.timestamp', DESCENDING)],
        name='conversations_participants_last_message'
    )
    db[CHAT_MESSAGES].create_index([('conversation_id', ASCENDING), ('seq', DESCENDING)], name='chat_messages_conversation_seq')
    db[CHAT_MESSAGES].create_index([('recipient', ASCENDING), ('status', ASCENDING)], name='chat_messages_recipient_status')
    db[NOTIFICATIONS].create_index([('recipient', ASCENDING), ('created_at', DESCENDING)], name='notifications_recipient_created_at')
    logger.info('Ensured messaging DB indexes')

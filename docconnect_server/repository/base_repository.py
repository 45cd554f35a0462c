import logging

logger = logging.getLogger(__name__)


class BaseRepository:
    """Thin wrapper binding a repository to one MongoDB collection."""

    collection_name = None

    def __init__(self, db, collection_name=None):
        self.db = db
        self.collection_name = collection_name or self.collection_name
        self.collection = db[self.collection_name]
        logger.debug("Initializing %s repository", self.collection_name)

"""Migration script: create the messaging indexes.

This script creates:
1. Unique participant_key index on conversations (one conversation per pair)
2. Conversation list and message history indexes
3. Recipient status and notification inbox indexes

Usage:
    python scripts/add_indexes.py [--dry-run]

Ensure MONGO_URI and MONGO_DB environment variables are set.
"""
import argparse
import logging
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from docconnect_server.repository.mongo_helper import MongoRepositorySingleton, ensure_indexes

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def list_indexes(db):
    for name in sorted(db.list_collection_names()):
        logger.info('%s:', name)
        for index in db[name].list_indexes():
            logger.info('  %s %s', index['name'], dict(index['key']))


def main():
    parser = argparse.ArgumentParser(description='Create messaging indexes')
    parser.add_argument('--dry-run', action='store_true', help='Only list existing indexes')
    args = parser.parse_args()

    db = MongoRepositorySingleton.get_db()
    logger.info('Connected to database %s', db.name)

    if not args.dry_run:
        logger.info('Creating indexes...')
        ensure_indexes(db)
        logger.info('Index creation complete')

    list_indexes(db)
    return 0


if __name__ == '__main__':
    sys.exit(main())

"""Migration script: create the indexes the messaging query paths rely on.

This script creates:
1. Pair/time and unread indexes on messages
2. Unique userId index on user_presence, plus a TTL index on lastSeen
3. Role and membership indexes on users and projects
4. Recipient/time index on notifications

Usage:
    python scripts/add_indexes.py [--presence-ttl-hours 24]

Ensure MONGO_URI and MONGO_DB environment variables are set.
"""
import argparse
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pymongo import ASCENDING
from pymongo.errors import OperationFailure, PyMongoError

from relay_server.repository.mongo_helper import MongoRepositorySingleton

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


def create_index_safe(coll, index_spec, **kwargs):
    """Create an index, handling if it already exists."""
    try:
        index_name = coll.create_index(index_spec, **kwargs)
        logger.info('  Created index: %s', index_name)
        return True
    except OperationFailure as e:
        if 'already exists' in str(e).lower():
            logger.info('  Index already exists: %s', index_spec)
            return False
        logger.error('  Error creating index %s: %s', index_spec, e)
        return False


def add_presence_ttl(repos, hours):
    """Expire presence records that have not been touched for ``hours``.

    An expired record reads as "never seen", which is offline either way.
    """
    logger.info('user_presence: Adding TTL index (%s hour expiry)', hours)
    create_index_safe(
        repos.presence.collection,
        [('lastSeen', ASCENDING)],
        expireAfterSeconds=int(hours * 3600),
        name='user_presence_last_seen_ttl',
    )


def main():
    parser = argparse.ArgumentParser(description='Create messaging indexes')
    parser.add_argument('--presence-ttl-hours', type=float, default=24, help='TTL for presence records (0 disables)')
    args = parser.parse_args()

    logger.info('=' * 60)
    logger.info('Starting index migration')
    logger.info('=' * 60)

    try:
        repos = MongoRepositorySingleton.get_instance()
        for repo in repos.repositories():
            logger.info('%s: ensuring indexes', repo.collection_name)
            repo.ensure_indexes()
        if args.presence_ttl_hours > 0:
            add_presence_ttl(repos, args.presence_ttl_hours)
    except PyMongoError as e:
        logger.error('Migration failed: %s', e)
        return 1

    logger.info('=' * 60)
    logger.info('Index migration complete!')
    logger.info('=' * 60)
    return 0


if __name__ == '__main__':
    sys.exit(main())

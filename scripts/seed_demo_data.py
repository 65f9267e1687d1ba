"""Seed script: demo users and projects for local development.

Creates one owner-admin, two coordinators, two clients and two projects, and
prints a signed access token for each user so the REST and Socket.IO
endpoints can be exercised by hand. Existing users (matched by email) are
left untouched.

Usage:
    python scripts/seed_demo_data.py
"""
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import config
from relay_server.repository.mongo_helper import MongoRepositorySingleton
from relay_server.security.authentication import AuthSecurity
from relay_server.security.roles import Role
from relay_server.utils.time_utils import utc_now

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

DEMO_USERS = [
    ('owner', 'Olivia Owner', 'owner@example.com', Role.OWNER_ADMIN),
    ('coord_a', 'Carl Coordinator', 'carl@example.com', Role.COORDINATOR),
    ('coord_b', 'Dana Coordinator', 'dana@example.com', Role.COORDINATOR),
    ('client_a', 'Acme Client', 'acme@example.com', Role.CLIENT),
    ('client_b', 'Globex Client', 'globex@example.com', Role.CLIENT),
]

DEMO_PROJECTS = [
    ('Acme Website', 'client_a', ['coord_a']),
    ('Globex Rebrand', 'client_b', ['coord_b']),
]


def seed_users(users):
    ids = {}
    now = utc_now()
    for key, name, email, role in DEMO_USERS:
        existing = users.find_one({'email': email}, {'_id': 1})
        if existing:
            ids[key] = existing['_id']
            logger.info('  User exists: %s', email)
            continue
        ids[key] = users.create({
            'name': name,
            'email': email,
            'role': role.value,
            'isActive': True,
            'createdAt': now,
        })
        logger.info('  Created user: %s (%s)', email, role.value)
    return ids


def seed_projects(projects, user_ids):
    for title, client_key, manager_keys in DEMO_PROJECTS:
        if projects.find_one({'title': title}, {'_id': 1}):
            logger.info('  Project exists: %s', title)
            continue
        projects.create({
            'title': title,
            'client': user_ids[client_key],
            'managers': [user_ids[k] for k in manager_keys],
            'createdAt': utc_now(),
        })
        logger.info('  Created project: %s', title)


def main():
    if not config.JWT_SECRET:
        logger.error('JWT_SECRET is not configured; cannot mint demo tokens')
        return 1
    AuthSecurity.configure(config.JWT_SECRET, config.JWT_ALGORITHM, config.ACCESS_TOKEN_EXPIRE_MINUTES)

    repos = MongoRepositorySingleton.get_instance()
    logger.info('Seeding users...')
    user_ids = seed_users(repos.user)
    logger.info('Seeding projects...')
    seed_projects(repos.project, user_ids)

    logger.info('Demo tokens:')
    for key, name, _email, role in DEMO_USERS:
        token = AuthSecurity.encode_token({'user_id': str(user_ids[key]), 'role': role.value, 'name': name})
        logger.info('  %-9s %s', key, token)
    return 0


if __name__ == '__main__':
    sys.exit(main())

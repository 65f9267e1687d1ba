"""Who may message whom.

Owner-admins may message and be messaged by anyone. A coordinator and a
client may message each other only while they share a project. Every other
pairing is refused, as is messaging yourself.
"""
import logging
from typing import Any, Dict, List

from relay_server.security.roles import Role

logger = logging.getLogger(__name__)


def can_message(sender_id, recipient_id, sender_role, recipient_role, membership) -> bool:
    """Decide whether ``sender_id`` may message ``recipient_id``.

    ``membership`` must provide ``shares_project(coordinator_id, client_id)``.
    It is consulted on every call; a failing lookup denies the pair.
    """
    if sender_id is None or recipient_id is None or sender_id == recipient_id:
        return False

    sender = Role.parse(sender_role)
    recipient = Role.parse(recipient_role)
    if sender is None or recipient is None:
        return False

    if Role.OWNER_ADMIN in (sender, recipient):
        return True

    if sender is Role.COORDINATOR and recipient is Role.CLIENT:
        coordinator_id, client_id = sender_id, recipient_id
    elif sender is Role.CLIENT and recipient is Role.COORDINATOR:
        coordinator_id, client_id = recipient_id, sender_id
    else:
        return False

    try:
        return bool(membership.shares_project(coordinator_id, client_id))
    except Exception as e:
        logger.warning("Membership lookup failed for %s/%s, denying: %s", coordinator_id, client_id, e)
        return False


def available_contacts(user_id, role, users, projects) -> List[Dict[str, Any]]:
    """Every active user ``user_id`` may message, newest directory entry first.

    ``users`` is a UserRepository and ``projects`` a ProjectRepository.
    """
    parsed = Role.parse(role)
    if parsed is Role.OWNER_ADMIN:
        candidates = users.find_active({'_id': {'$ne': user_id}})
    elif parsed is Role.COORDINATOR:
        client_ids = projects.clients_for_coordinator(user_id)
        candidates = users.find_active({
            '$or': [
                {'_id': {'$in': client_ids}, 'role': Role.CLIENT.value},
                {'role': Role.OWNER_ADMIN.value},
            ]
        })
    elif parsed is Role.CLIENT:
        coordinator_ids = projects.coordinators_for_client(user_id)
        candidates = users.find_active({
            '$or': [
                {'_id': {'$in': coordinator_ids}, 'role': Role.COORDINATOR.value},
                {'role': Role.OWNER_ADMIN.value},
            ]
        })
    else:
        return []

    contacts = []
    seen = set()
    for user in candidates:
        if user['_id'] == user_id or user['_id'] in seen:
            continue
        seen.add(user['_id'])
        contacts.append(user)
    return contacts

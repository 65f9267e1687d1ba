"""Conversation list derived from the message log on every request.

There is no stored conversation entity. For the current user every visible
message is grouped by counterpart, the newest message of each group becomes
the summary, and permitted contacts without history are appended. A failing
step never fails the listing: it is skipped, logged, and the listing is
flagged degraded.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from relay_server.messaging.models import ConversationSummary
from relay_server.messaging.permissions import available_contacts
from relay_server.messaging.presence import get_presence_tracker
from relay_server.repository.mongo_helper import MongoRepositorySingleton
from relay_server.exception.ValidationError import ValidationError
from relay_server.utils.validation import to_object_id

logger = logging.getLogger(__name__)


class ConversationListing:
    """Result of a derivation: the summaries plus which steps failed."""

    def __init__(self):
        self.conversations: List[ConversationSummary] = []
        self.failed_steps: List[str] = []

    @property
    def degraded(self) -> bool:
        return bool(self.failed_steps)

    def degrade(self, step: str, error: Exception):
        logger.warning("Conversation listing degraded at %s: %s", step, error, exc_info=error)
        self.failed_steps.append(step)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'conversations': [c.to_dict() for c in self.conversations],
            'degraded': self.degraded,
        }


class ConversationDeriver:

    def __init__(self, repos=None, presence=None):
        self._repos = repos
        self._presence = presence

    @property
    def repos(self):
        if self._repos is None:
            self._repos = MongoRepositorySingleton.get_instance()
        return self._repos

    @property
    def presence(self):
        if self._presence is None:
            self._presence = get_presence_tracker()
        return self._presence

    def _group_by_counterpart(self, user_id, listing):
        """Return {counterpartId: {'latest': doc, 'unread': int}} in newest-first order."""
        groups = {}
        try:
            # Newest first by (createdAt, _id): the first doc seen per counterpart is its latest
            for doc in self.repos.message.iter_for_participant(user_id):
                counterpart = doc['recipientId'] if doc['senderId'] == user_id else doc['senderId']
                group = groups.get(counterpart)
                if group is None:
                    group = groups[counterpart] = {'latest': doc, 'unread': 0}
                if doc['recipientId'] == user_id and not doc.get('isRead', False):
                    group['unread'] += 1
        except Exception as e:
            listing.degrade('messages', e)
        return groups

    def _resolve_role(self, user_id, role, listing) -> Optional[str]:
        if role:
            return role
        try:
            me = self.repos.user.get_by_id(user_id)
            return me.get('role') if me else None
        except Exception as e:
            listing.degrade('role', e)
            return None

    def list_conversations(self, user_id, role=None) -> ConversationListing:
        listing = ConversationListing()
        try:
            user_oid = to_object_id(user_id, 'userId')
        except ValidationError as e:
            listing.degrade('user', e)
            return listing

        groups = self._group_by_counterpart(user_oid, listing)

        try:
            directory = self.repos.user.map_active_by_ids(list(groups.keys()))
        except Exception as e:
            listing.degrade('directory', e)
            return listing

        summaries = []
        for counterpart_id, group in groups.items():
            participant = directory.get(counterpart_id)
            if participant is None:
                continue
            latest = group['latest']
            summaries.append(ConversationSummary(
                participant=participant,
                last_message=latest.get('content', ''),
                last_message_time=latest.get('createdAt'),
                last_message_id=latest.get('_id'),
                unread_count=group['unread'],
                project_id=latest.get('projectId'),
            ))
        summaries.sort(key=lambda s: (s.last_message_time or datetime.min, s.last_message_id), reverse=True)

        role = self._resolve_role(user_oid, role, listing)
        contacts = []
        if role:
            try:
                contacts = available_contacts(user_oid, role, self.repos.user, self.repos.project)
            except Exception as e:
                listing.degrade('contacts', e)
        known = {s.participant_id for s in summaries}
        for contact in contacts:
            if contact['_id'] not in known:
                known.add(contact['_id'])
                summaries.append(ConversationSummary(participant=contact))

        project_ids = {s.project_id for s in summaries if s.project_id is not None}
        if project_ids:
            try:
                titles = self.repos.project.titles_by_ids(project_ids)
                for summary in summaries:
                    summary.project_title = titles.get(summary.project_id)
            except Exception as e:
                listing.degrade('projects', e)

        if summaries:
            try:
                online = self.presence.online_map([s.participant_id for s in summaries])
                for summary in summaries:
                    summary.is_online = online.get(summary.participant_id, False)
            except Exception as e:
                listing.degrade('presence', e)

        listing.conversations = summaries
        return listing


_deriver = None


def get_conversation_deriver() -> ConversationDeriver:
    """Get singleton conversation deriver instance."""
    global _deriver
    if _deriver is None:
        _deriver = ConversationDeriver()
    return _deriver


def reset_conversation_deriver():
    global _deriver
    _deriver = None

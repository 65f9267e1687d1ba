"""Soft-state presence.

Each user has a single ``lastSeen`` timestamp refreshed by any authenticated
activity. A user is online while that timestamp is younger than
``config.PRESENCE_ONLINE_SECONDS``; there is no offline event.
"""
import logging
from datetime import timedelta
from typing import Dict, Iterable, Optional

from pymongo.errors import PyMongoError

from config import config
from relay_server.repository.mongo_helper import MongoRepositorySingleton
from relay_server.utils.time_utils import utc_now, to_naive_utc
from relay_server.utils.validation import is_object_id, to_object_id

logger = logging.getLogger(__name__)


class PresenceTracker:

    def __init__(self, repo=None, threshold_seconds: Optional[int] = None, clock=utc_now):
        self._repo = repo
        self.threshold = timedelta(seconds=threshold_seconds or config.PRESENCE_ONLINE_SECONDS)
        self.clock = clock

    @property
    def repo(self):
        if self._repo is None:
            self._repo = MongoRepositorySingleton.get_instance().presence
        return self._repo

    def touch(self, user_id) -> bool:
        """Record activity for ``user_id``. Never raises on store failure."""
        if not is_object_id(user_id):
            logger.debug("Ignoring presence touch for non-id user %r", user_id)
            return False
        try:
            self.repo.touch(to_object_id(user_id), self.clock())
            return True
        except PyMongoError as e:
            logger.warning("Presence touch failed for %s: %s", user_id, e)
            return False

    def is_fresh(self, last_seen, now=None) -> bool:
        if last_seen is None:
            return False
        now = now or self.clock()
        return now - to_naive_utc(last_seen) < self.threshold

    def is_online(self, user_id) -> bool:
        last_seen = self.repo.get_last_seen(to_object_id(user_id, 'userId'))
        return self.is_fresh(last_seen)

    def online_map(self, user_ids: Iterable) -> Dict:
        """Return {user_id: bool} for every id given. Store errors propagate."""
        ids = list(user_ids)
        seen = self.repo.last_seen_many(ids)
        now = self.clock()
        return {uid: self.is_fresh(seen.get(uid), now) for uid in ids}

    def last_seen_many(self, user_ids: Iterable) -> Dict:
        return self.repo.last_seen_many(list(user_ids))


_presence_tracker = None


def get_presence_tracker() -> PresenceTracker:
    """Get singleton presence tracker instance."""
    global _presence_tracker
    if _presence_tracker is None:
        _presence_tracker = PresenceTracker()
    return _presence_tracker


def reset_presence_tracker():
    global _presence_tracker
    _presence_tracker = None

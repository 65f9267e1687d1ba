"""Role constants for the messaging permission model."""
from enum import Enum
from typing import Optional


class Role(str, Enum):
    """Platform roles as stored on user documents."""
    OWNER_ADMIN = "super_admin"
    COORDINATOR = "project_manager"
    CLIENT = "client"

    @classmethod
    def parse(cls, value) -> Optional['Role']:
        """Return the Role for ``value`` or None when it is not a known role."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None

    @classmethod
    def is_owner_admin(cls, value) -> bool:
        return cls.parse(value) is cls.OWNER_ADMIN

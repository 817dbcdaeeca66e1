"""
fleet/models.py -- Domain dataclasses for vehicles and administrators.

These are pure data containers with zero logic. Validation lives in
fleet/validators.py and persistence in fleet/repository.py.

id is None before the record is written to the database; the unit of work
fills it in when save_changes() flushes the insert.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    """Permission tier carried in the token's role claim."""

    ADMIN = "Adm"
    EDITOR = "Editor"

    @classmethod
    def parse(cls, value: object) -> Optional["Role"]:
        """Return the Role matching value (case-insensitive name, or index 0/1), or None."""
        if isinstance(value, cls):
            return value
        members = list(cls)
        if isinstance(value, int) and not isinstance(value, bool):
            return members[value] if 0 <= value < len(members) else None
        if not isinstance(value, str):
            return None
        wanted = value.strip().lower()
        for role in members:
            if role.value.lower() == wanted or role.name.lower() == wanted:
                return role
        return None


@dataclass
class Vehicle:
    name: str
    brand: str
    year: int
    id: Optional[int] = None


@dataclass
class Administrator:
    """An account allowed to log in and manage the fleet.

    password_hash always holds a bcrypt hash, never the plaintext password.
    role is stored as the Role value ("Adm" or "Editor").
    """

    email: str
    password_hash: str
    role: str = Role.EDITOR.value
    id: Optional[int] = None

"""
Note Value Objects

Immutable value objects for the note domain.
Provides key validation, TTL clamping and the non-error outcomes of
store operations.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

# 8-4-4-4-12 hex groups, 36 characters, case-insensitive
NOTE_KEY_PATTERN = re.compile(
    r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}",
    re.IGNORECASE,
)


def is_valid_key(key: Optional[str]) -> bool:
    """Return True if ``key`` has the identifier format. Performs no I/O."""
    if not isinstance(key, str):
        return False
    return NOTE_KEY_PATTERN.fullmatch(key) is not None


class DeleteResult(str, Enum):
    """Outcome of a delete operation."""

    DELETED = "deleted"
    NOT_FOUND = "not_found"


class AliasResult(str, Enum):
    """Outcome of an alias creation request."""

    CREATED = "created"
    ALREADY_ALIASED = "already_aliased"


@dataclass(frozen=True)
class TTL:
    """
    Time To Live value object for note expiration.

    Values are whole seconds; ``clamped`` forces a requested TTL into the
    configured bounds instead of rejecting it.
    """

    seconds: int

    def __post_init__(self) -> None:
        """Validate TTL value."""
        if self.seconds <= 0:
            raise ValueError("TTL must be positive")

    @classmethod
    def clamped(cls, seconds: float, min_seconds: int, max_seconds: int) -> "TTL":
        """Create a TTL clamped to ``[min_seconds, max_seconds]``."""
        if min_seconds > max_seconds:
            raise ValueError("min_seconds must not exceed max_seconds")
        return cls(int(min(max(seconds, min_seconds), max_seconds)))

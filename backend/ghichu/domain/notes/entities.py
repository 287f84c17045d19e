"""
Note Domain Entities

Core domain entities for the note store.
Encapsulates lifecycle facts and their invariants.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Optional, Dict, Any

from .value_objects import TTL
from ...constants import (
    RECENT_TITLE_LENGTH,
    RECENT_PREVIEW_LENGTH,
    UNTITLED_NOTE,
    EMPTY_NOTE_PREVIEW,
)


@dataclass(frozen=True)
class NoteMeta:
    """
    Lifecycle metadata of a stored note.

    ``expires_at`` is ``updated_at + ttl`` after every write; ``None`` means
    the note never expires.
    """

    key: str
    ttl_seconds: int
    created_at: datetime
    updated_at: datetime
    expires_at: Optional[datetime]
    last_accessed_at: datetime

    @classmethod
    def create(
        cls,
        key: str,
        ttl: TTL,
        now: datetime,
        previous: Optional["NoteMeta"] = None,
        preserve_created_at: bool = True,
    ) -> "NoteMeta":
        """Build metadata for a write at ``now``.

        When ``previous`` is given and ``preserve_created_at`` is set, the
        original creation time is kept.
        """
        created_at = now
        if previous is not None and preserve_created_at:
            created_at = previous.created_at

        return cls(
            key=key,
            ttl_seconds=ttl.seconds,
            created_at=created_at,
            updated_at=now,
            expires_at=now + timedelta(seconds=ttl.seconds),
            last_accessed_at=now,
        )

    def is_expired(self, now: datetime) -> bool:
        """Check if the note is past its expiry at ``now``."""
        return self.expires_at is not None and self.expires_at < now

    def touched(self, now: datetime) -> "NoteMeta":
        """Return a copy with ``last_accessed_at`` moved to ``now``."""
        return replace(self, last_accessed_at=now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "ttl_seconds": self.ttl_seconds,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "last_accessed_at": self.last_accessed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NoteMeta":
        expires_at = data.get("expires_at")
        return cls(
            key=data["key"],
            ttl_seconds=int(data["ttl_seconds"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
            last_accessed_at=datetime.fromisoformat(data["last_accessed_at"]),
        )


@dataclass(frozen=True)
class Note:
    """A stored note: content and metadata written together."""

    meta: NoteMeta
    content: bytes

    @property
    def key(self) -> str:
        return self.meta.key

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class NoteSummary:
    """Short listing form of a note for the recent-notes view."""

    key: str
    title: str
    preview: str
    updated_at: datetime

    @classmethod
    def from_note(cls, note: Note) -> "NoteSummary":
        text = note.text
        first_line = text.split("\n", 1)[0]
        return cls(
            key=note.key,
            title=first_line[:RECENT_TITLE_LENGTH] or UNTITLED_NOTE,
            preview=text[:RECENT_PREVIEW_LENGTH] or EMPTY_NOTE_PREVIEW,
            updated_at=note.meta.updated_at,
        )

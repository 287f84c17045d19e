"""
Note repository implementations and backend selection.
"""

from ...core.config import Settings
from ...domain.notes.repository_interfaces import NoteRepositories
from .memory_repository import create_memory_repositories
from .file_repository import create_file_repositories
from .redis_repository import create_redis_repositories


def build_repositories(settings: Settings) -> NoteRepositories:
    """Create the collections for the configured STORAGE_BACKEND."""
    if settings.STORAGE_BACKEND == "memory":
        return create_memory_repositories()
    if settings.STORAGE_BACKEND == "redis":
        return create_redis_repositories(
            settings.REDIS_URL,
            settings.REDIS_KEY_PREFIX,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
        )
    return create_file_repositories(settings.NOTES_DIR)


__all__ = [
    "build_repositories",
    "create_memory_repositories",
    "create_file_repositories",
    "create_redis_repositories",
]

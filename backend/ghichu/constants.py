"""
Ghichu Global Constants

Centralized location for all system-wide constants used across the application.
"""

from datetime import datetime, timezone


# Timestamp Functions
def get_current_timestamp() -> datetime:
    """Get current timestamp with UTC timezone.

    Returns:
        datetime: Current UTC timestamp

    Note: Use this function instead of a constant to get real-time timestamps.
    """
    return datetime.now(timezone.utc)


# Application Constants
APP_NAME = "Ghichu"
APP_VERSION = "0.1.0"

# Recent notes summaries
RECENT_TITLE_LENGTH = 50
RECENT_PREVIEW_LENGTH = 100
UNTITLED_NOTE = "Untitled Note"
EMPTY_NOTE_PREVIEW = "No content"

"""Fresh note identifiers."""

from uuid import uuid4


def generate_key() -> str:
    """Return a new random key in the 8-4-4-4-12 hex format."""
    return str(uuid4())

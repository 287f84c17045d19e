"""FastAPI dependencies shared by the endpoint modules."""

from fastapi import Request

from ..services.note_store import NoteStore


async def get_note_store(request: Request) -> NoteStore:
    """FastAPI dependency for the application's note store."""
    return request.app.state.note_store

"""
Notes API endpoints

Thin HTTP transport over the note store:
- GET /            redirect to a fresh note key
- GET /recent      most recently written notes
- GET /{key}       raw note content (fresh key redirect when malformed)
- PUT /{key}       write content, or create an alias with ?raw=<target>
- DELETE /{key}    remove a note
"""

from datetime import datetime
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import PlainTextResponse, RedirectResponse
from pydantic import BaseModel, Field

from ...core.config import get_settings
from ...domain.notes.value_objects import AliasResult, DeleteResult, is_valid_key
from ...domain.notes.exceptions import NoteNotFoundException
from ...services.identifiers import generate_key
from ...services.note_store import NoteStore
from ..dependencies import get_note_store

logger = structlog.get_logger()
router = APIRouter()


class NoteMetaRead(BaseModel):
    """Metadata returned after a write."""

    key: str
    ttl_seconds: int
    created_at: datetime
    updated_at: datetime
    expires_at: Optional[datetime]
    last_accessed_at: datetime
    size_bytes: int = Field(..., ge=0)


class AliasRead(BaseModel):
    """Outcome of an alias request."""

    key: str
    target: str
    result: AliasResult


class NoteSummaryRead(BaseModel):
    """Recent-notes list entry."""

    uuid: str
    title: str
    content: str
    updated_at: datetime


def _new_note_redirect() -> RedirectResponse:
    return RedirectResponse(url=f"/{generate_key()}", status_code=302)


@router.get("/", include_in_schema=False)
async def new_note() -> RedirectResponse:
    """Redirect to a freshly generated note key."""
    return _new_note_redirect()


@router.get("/recent", response_model=List[NoteSummaryRead])
async def recent_notes(
    limit: Optional[int] = Query(None, ge=1, le=100),
    store: NoteStore = Depends(get_note_store),
) -> List[NoteSummaryRead]:
    """List the most recently written notes."""
    summaries = await store.list_recent(limit or get_settings().RECENT_NOTES_LIMIT)
    return [
        NoteSummaryRead(
            uuid=summary.key,
            title=summary.title,
            content=summary.preview,
            updated_at=summary.updated_at,
        )
        for summary in summaries
    ]


@router.get("/{key}")
async def read_note(key: str, store: NoteStore = Depends(get_note_store)) -> Response:
    """Return the raw content served under ``key``."""
    if not is_valid_key(key):
        return _new_note_redirect()

    content = await store.get(key)
    return PlainTextResponse(content, media_type="text/plain; charset=utf-8")


@router.put("/{key}")
async def write_note(
    key: str,
    request: Request,
    raw: Optional[str] = Query(None, description="Alias target key"),
    ttl: Optional[int] = Query(None, description="Requested TTL in seconds"),
    store: NoteStore = Depends(get_note_store),
):
    """Store the request body under ``key``, or alias ``key`` to ``raw``."""
    if raw:
        result = await store.create_alias(key, raw)
        return AliasRead(key=key, target=raw, result=result)

    body = await request.body()
    meta = await store.put(key, body, ttl_seconds=ttl)
    return NoteMetaRead(
        key=meta.key,
        ttl_seconds=meta.ttl_seconds,
        created_at=meta.created_at,
        updated_at=meta.updated_at,
        expires_at=meta.expires_at,
        last_accessed_at=meta.last_accessed_at,
        size_bytes=len(body),
    )


@router.delete("/{key}", status_code=204)
async def delete_note(key: str, store: NoteStore = Depends(get_note_store)) -> Response:
    """Delete the note stored under ``key``."""
    result = await store.delete(key)
    if result is DeleteResult.NOT_FOUND:
        raise NoteNotFoundException(key)
    return Response(status_code=204)

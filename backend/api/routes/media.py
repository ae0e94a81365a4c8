"""
Media index and ledger routes.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from api import state
from db import SessionLocal
from repositories import MediaMetaRepository

router = APIRouter()
ledger = MediaMetaRepository()


class MediaEntryResponse(BaseModel):
    media_id: int
    path: str
    modified_at: Optional[datetime] = None


class MediaIndexResponse(BaseModel):
    total: int
    entries: List[MediaEntryResponse]


class MediaViewResponse(BaseModel):
    filename: str
    media_id: int
    display_count: int
    address: Optional[str] = None
    last_viewed_at: Optional[datetime] = None


@router.get("", response_model=MediaIndexResponse)
def list_media(offset: int = Query(0, ge=0), limit: int = Query(100, ge=1, le=1000)):
    """List the indexed photos in media id order."""
    entries = state.get_photo_frame().library.entries()
    page = entries[offset : offset + limit]
    return MediaIndexResponse(
        total=len(entries),
        entries=[MediaEntryResponse(media_id=e.media_id, path=e.path, modified_at=e.modified_at) for e in page],
    )


@router.post("/refresh", response_model=MediaIndexResponse)
def refresh_media():
    """Rescan the media source."""
    entries = state.get_photo_frame().library.refresh()
    return MediaIndexResponse(total=len(entries), entries=[])


@router.get("/stats", response_model=List[MediaViewResponse])
def media_stats(limit: int = Query(20, ge=1, le=500)):
    """Most viewed photos according to the ledger."""
    with SessionLocal() as session:
        rows = ledger.most_viewed(session, limit)
    return [
        MediaViewResponse(
            filename=r.filename,
            media_id=r.media_id,
            display_count=r.display_count,
            address=r.address,
            last_viewed_at=r.last_viewed_at,
        )
        for r in rows
    ]

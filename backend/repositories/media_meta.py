"""
Per-file view-count ledger backed by SQLAlchemy/SQLite.

The stored address doubles as the reverse-geocoding cache.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from repositories.models import MediaMetaORM


@dataclass
class MediaMeta:
    filename: str
    media_id: int = -1
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    display_count: int = 0
    last_viewed_at: Optional[datetime] = None


def _meta_from_orm(orm: MediaMetaORM) -> MediaMeta:
    return MediaMeta(
        filename=orm.filename,
        media_id=orm.media_id if orm.media_id is not None else -1,
        address=orm.address,
        latitude=orm.latitude,
        longitude=orm.longitude,
        display_count=orm.display_count or 0,
        last_viewed_at=orm.last_viewed_at,
    )


class MediaMetaRepository:
    """Lookups and view bookkeeping for media files."""

    def get(self, session: Session, filename: str) -> Optional[MediaMeta]:
        orm = session.get(MediaMetaORM, filename)
        return _meta_from_orm(orm) if orm else None

    def record_view(
        self,
        session: Session,
        filename: str,
        *,
        media_id: int = -1,
        address: Optional[str] = None,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
    ) -> MediaMeta:
        """Insert or update the entry and count one more view."""
        orm = session.get(MediaMetaORM, filename)
        if orm is None:
            orm = MediaMetaORM(filename=filename, display_count=0)
        orm.media_id = media_id
        # keep a previously resolved address when this view had none
        if address:
            orm.address = address
        if latitude is not None:
            orm.latitude = latitude
        if longitude is not None:
            orm.longitude = longitude
        orm.display_count = (orm.display_count or 0) + 1
        orm.last_viewed_at = datetime.utcnow()
        session.add(orm)
        session.commit()
        session.refresh(orm)
        return _meta_from_orm(orm)

    def most_viewed(self, session: Session, limit: int = 20) -> List[MediaMeta]:
        rows = (
            session.query(MediaMetaORM)
            .order_by(MediaMetaORM.display_count.desc(), MediaMetaORM.filename)
            .limit(limit)
            .all()
        )
        return [_meta_from_orm(r) for r in rows]

    def count(self, session: Session) -> int:
        return session.query(MediaMetaORM).count()

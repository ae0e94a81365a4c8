"""
Media library: the index of available photos plus per-photo enrichment.

Combines the media source (bytes and listing), EXIF facts, the view-count
ledger and optional reverse geocoding into `MediaRecord`s for the composer.
"""
from __future__ import annotations

import logging
import random
import threading
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from domain.models import MediaEntry, MediaRecord
from repositories.media_meta import MediaMetaRepository
from services.metadata_extractor import extract_media_facts
from storage.media_source import LocalMediaSource

logger = logging.getLogger(__name__)

Geocoder = Callable[[float, float], Optional[str]]


class MediaLibrary:
    def __init__(
        self,
        source: LocalMediaSource,
        *,
        session_factory: Optional[Callable] = None,
        ledger: Optional[MediaMetaRepository] = None,
        geocoder: Optional[Geocoder] = None,
        rng: Optional[random.Random] = None,
    ):
        self.source = source
        self.session_factory = session_factory
        self.ledger = ledger or MediaMetaRepository()
        self.geocoder = geocoder
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._entries: Optional[List[MediaEntry]] = None
        self._by_path: Dict[str, MediaEntry] = {}

    def refresh(self) -> List[MediaEntry]:
        """Rescan the media source."""
        with self._lock:
            return self._scan()

    def entries(self) -> List[MediaEntry]:
        """The index, scanned once on first use even under concurrent first requests."""
        with self._lock:
            if self._entries is None:
                return self._scan()
            return self._entries

    def _scan(self) -> List[MediaEntry]:
        # caller holds self._lock
        entries = self.source.list_entries()
        self._entries = entries
        self._by_path = {e.path: e for e in entries}
        logger.info("Total images found: %d", len(entries))
        return entries

    def random_entry(self) -> Optional[MediaEntry]:
        """Uniformly random photo, or None when the library is empty."""
        entries = self.entries()
        if not entries:
            logger.warning("No images available in %s", self.source.media_root)
            return None
        return self._rng.choice(entries)

    def entry_by_id(self, media_id: int) -> Optional[MediaEntry]:
        entries = self.entries()
        if 0 <= media_id < len(entries) and entries[media_id].media_id == media_id:
            return entries[media_id]
        return next((e for e in entries if e.media_id == media_id), None)

    def entry_by_path(self, path: str) -> Optional[MediaEntry]:
        self.entries()
        return self._by_path.get(path)

    def fetch(self, path: str) -> Optional[MediaRecord]:
        """Download a photo and gather what the caption needs. None when it doesn't exist."""
        data = self.source.read_bytes(path)
        if data is None:
            logger.error("Failed to find %s", path)
            return None

        logger.info("Downloading %s", path)
        facts = extract_media_facts(data)
        if facts.created_at is None:
            logger.warning("No EXIF capture date found for %s", path)

        entry = self.entry_by_path(path)
        record = MediaRecord(
            path=path,
            data=data,
            width=facts.width or 0,
            height=facts.height or 0,
            created_at=facts.created_at,
            orientation=facts.orientation,
            media_id=entry.media_id if entry else -1,
            latitude=facts.latitude,
            longitude=facts.longitude,
        )
        self._enrich(record)
        return record

    def _enrich(self, record: MediaRecord) -> None:
        """Fill location and view count from the ledger, geocoding unseen places."""
        if self.session_factory is None:
            record.location = self._geocode(record)
            return

        try:
            with self.session_factory() as session:
                meta = self.ledger.get(session, record.path)
                if meta is not None and meta.address:
                    record.location = meta.address
                    logger.info("Using cached location: %s", record.location)
                else:
                    record.location = self._geocode(record)
                meta = self.ledger.record_view(
                    session,
                    record.path,
                    media_id=record.media_id,
                    address=record.location,
                    latitude=record.latitude,
                    longitude=record.longitude,
                )
                record.display_count = meta.display_count
        except SQLAlchemyError:
            logger.exception("Error updating media ledger for %s", record.path)
            if record.location is None:
                record.location = self._geocode(record)

    def _geocode(self, record: MediaRecord) -> Optional[str]:
        if self.geocoder is None or record.latitude is None or record.longitude is None:
            return None
        return self.geocoder(record.latitude, record.longitude)

"""
Entry points consumed by the HTTP layer, and their wiring from settings.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from domain.models import ComposedImage, ComposeOptions, CropThresholds
from services.caption import CaptionCompositor, CaptionFont
from services.face_detector import FaceDetectorClient
from services.geocoding import reverse_geocode_address
from services.image_composer import ImageComposer
from services.lookahead_cache import LookAheadCache
from services.media_library import MediaLibrary
from storage.media_source import LocalMediaSource

logger = logging.getLogger(__name__)


@dataclass
class PhotoFrame:
    library: MediaLibrary
    composer: ImageComposer
    cache: LookAheadCache

    def compose_image(
        self,
        filename: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        debug: bool = False,
        media_id: Optional[int] = None,
    ) -> Optional[Tuple[bytes, str]]:
        """Compose a named (or random) photo. None means not found."""
        image = self.composer.compose(
            ComposeOptions(filename=filename, media_id=media_id, width=width, height=height, debug=debug)
        )
        return _as_result(image)

    def get_cached_image(self, width: Optional[int] = None, height: Optional[int] = None) -> Optional[Tuple[bytes, str]]:
        return _as_result(self.cache.get(width, height))

    def warm(self, width: Optional[int] = None, height: Optional[int] = None) -> bool:
        """Fill the look-ahead slot before serving traffic, for the size the frame will ask for."""
        return self.cache.refill(width, height)

    def close(self) -> None:
        self.cache.shutdown(wait=False)


def _as_result(image: Optional[ComposedImage]) -> Optional[Tuple[bytes, str]]:
    if image is None:
        return None
    return image.data, image.filename


def build_photo_frame(settings, session_factory=None) -> PhotoFrame:
    """Wire the services from settings. Loads the caption font eagerly so a bad font fails startup."""
    font = CaptionFont(settings.CAPTION_FONT_PATH)
    if not settings.FACE_API_URL:
        logger.warning("FACE_API_URL not set, crops will always be centered")
    if not settings.GEOCODING_ENABLED:
        logger.warning("GEOCODING_ENABLED not set, location lookups will be disabled")

    library = MediaLibrary(
        LocalMediaSource(settings.MEDIA_ROOT, settings.MEDIA_PATHS, settings.MEDIA_EXTENSIONS),
        session_factory=session_factory,
        geocoder=reverse_geocode_address if settings.GEOCODING_ENABLED else None,
    )
    composer = ImageComposer(
        library,
        FaceDetectorClient(settings.FACE_API_URL, timeout=settings.FACE_API_TIMEOUT),
        CaptionCompositor(font),
        CropThresholds(
            ratio_tolerance=settings.IMAGE_RATIO_TOLERANCE,
            min_confidence=settings.MIN_CONFIDENCE,
            min_avg_confidence=settings.MIN_CONFIDENCE_MULTIPLIER,
            min_avg_height=settings.MIN_AVG_FACE_HEIGHT,
            min_height=settings.MIN_FACE_HEIGHT,
        ),
        jpeg_quality=settings.JPEG_QUALITY,
    )
    cache = LookAheadCache(composer.compose, ttl_seconds=settings.CACHE_TTL_SECONDS)
    return PhotoFrame(library=library, composer=composer, cache=cache)

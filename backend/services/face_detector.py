"""Client for the external face detection service.

The service accepts an image as multipart form data (one field named `file`)
and answers with a JSON array of `{x, y, width, height, confidence}` boxes in
source pixels. Every failure mode folds into a `FaceDetection` value so the
composer can carry on with a centered crop.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional

import requests

from domain.models import Face, FaceDetection

logger = logging.getLogger(__name__)

_FIELDS = ("x", "y", "width", "height", "confidence")


def _lookup(item: dict, name: str) -> Any:
    """Read a field regardless of the casing the service used."""
    if name in item:
        return item[name]
    for key, value in item.items():
        if isinstance(key, str) and key.lower() == name:
            return value
    raise KeyError(name)


def parse_faces(payload: Any) -> List[Face]:
    """Convert a decoded JSON payload into faces. Raises ValueError when malformed."""
    if not isinstance(payload, list):
        raise ValueError(f"Expected a JSON array, got {type(payload).__name__}")
    faces: List[Face] = []
    for item in payload:
        if not isinstance(item, dict):
            raise ValueError(f"Expected a JSON object per face, got {type(item).__name__}")
        try:
            values = {name: _lookup(item, name) for name in _FIELDS}
            faces.append(
                Face(
                    x=int(values["x"]),
                    y=int(values["y"]),
                    width=int(values["width"]),
                    height=int(values["height"]),
                    confidence=float(values["confidence"]),
                )
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Malformed face entry {item!r}: {exc}") from exc
    return faces


def looks_suspicious(faces: List[Face]) -> bool:
    """The detector answers with a zeroed first box when it could not really decode the image."""
    first = faces[0]
    return first.x == 0 and (first.y == 0 or first.width == 0 or first.height == 0)


class FaceDetectorClient:
    """Stateless, thread-safe wrapper around the face detection endpoint."""

    def __init__(self, url: Optional[str], *, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def detect(self, image_bytes: bytes, filename: str = "image.jpg") -> FaceDetection:
        if not self.url:
            return FaceDetection.unavailable("face detection disabled")

        try:
            resp = self._session.post(
                self.url,
                files={"file": (filename, image_bytes, "application/octet-stream")},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.Timeout:
            logger.warning("Face detector timed out after %.1fs for %s", self.timeout, filename)
            return FaceDetection.unavailable("timeout")
        except requests.RequestException as exc:
            logger.warning("Face detector request failed for %s: %s", filename, exc)
            return FaceDetection.unavailable(str(exc))

        body = resp.text
        try:
            faces = parse_faces(resp.json())
        except ValueError as exc:
            logger.error("Failed to deserialize face detector response: %s (%s)", body[:200], exc)
            return FaceDetection.unavailable("malformed response")

        logger.info("Discovered %d faces in %s", len(faces), filename)
        if not faces:
            return FaceDetection.none("empty response")
        if looks_suspicious(faces):
            logger.warning("Unexpected face detector response: %s", body[:200])
            return FaceDetection.none("suspicious response")
        return FaceDetection.found(faces)

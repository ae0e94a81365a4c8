"""
Image API routes.

Handlers are plain functions so FastAPI runs them on its thread pool; the
composition work blocks on network and image codecs.
"""
import logging
from email.utils import formatdate
from typing import Optional, Tuple

from fastapi import APIRouter, HTTPException, Query, Response

from api import state
from services.image_composer import CompositionError

logger = logging.getLogger(__name__)

router = APIRouter()


def _image_response(result: Optional[Tuple[bytes, str]], not_found: str) -> Response:
    if result is None:
        raise HTTPException(status_code=404, detail=not_found)
    data, filename = result
    return Response(
        content=data,
        media_type="image/jpeg",
        headers={"X-Image-Filename": filename.encode("ascii", "backslashreplace").decode("ascii")},
    )


def _compose(
    filename: Optional[str] = None,
    media_id: Optional[int] = None,
    width: Optional[int] = None,
    height: Optional[int] = None,
    debug: bool = False,
) -> Response:
    try:
        result = state.get_photo_frame().compose_image(
            filename=filename, width=width, height=height, debug=debug, media_id=media_id
        )
    except CompositionError as exc:
        logger.error("Failed to retrieve image: %s - mediaId: %s (%s)", filename, media_id, exc)
        raise HTTPException(status_code=500, detail="Failed to compose image")
    if filename:
        not_found = filename
    elif media_id is not None:
        not_found = f"media id {media_id}"
    else:
        not_found = "No image available"
    return _image_response(result, not_found)


def _cached(width: Optional[int], height: Optional[int], debug: bool) -> Response:
    if debug:
        # Debug overlays are never cached
        return _compose(width=width, height=height, debug=True)
    try:
        result = state.get_photo_frame().get_cached_image(width, height)
    except CompositionError as exc:
        logger.error("Failed to retrieve random image: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to compose image")
    return _image_response(result, "No image available")


@router.head("")
def head_image():
    """Tell clients a new image is always available."""
    return Response(status_code=200, headers={"Last-Modified": formatdate(usegmt=True)})


@router.get("")
def get_random_image(
    width: Optional[int] = Query(None, gt=0),
    height: Optional[int] = Query(None, gt=0),
    debug: bool = False,
):
    """Next random photo, served from the look-ahead cache."""
    return _cached(width, height, debug)


@router.get("/id/{media_id}")
def get_image_by_id(
    media_id: int,
    width: Optional[int] = Query(None, gt=0),
    height: Optional[int] = Query(None, gt=0),
    debug: bool = False,
):
    """Compose the photo with the given media id."""
    return _compose(media_id=media_id, width=width, height=height, debug=debug)


@router.get("/file/{filename:path}")
def get_image_by_filename(
    filename: str,
    width: Optional[int] = Query(None, gt=0),
    height: Optional[int] = Query(None, gt=0),
    debug: bool = False,
):
    """Compose the photo at the given media path."""
    return _compose(filename=filename, width=width, height=height, debug=debug)


@router.get("/{width}/{height}")
def get_random_image_sized(width: int, height: int, debug: bool = False):
    """Next random photo at the given frame size, served from the look-ahead cache."""
    if width <= 0 or height <= 0:
        raise HTTPException(status_code=400, detail="width and height must be positive")
    return _cached(width, height, debug)

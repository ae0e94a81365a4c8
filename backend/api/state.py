"""
Process-wide service instances shared by the routers.
"""
import threading
from typing import Optional

from db import SessionLocal
from services.photo_frame import PhotoFrame, build_photo_frame
from settings import settings

_frame: Optional[PhotoFrame] = None
_frame_lock = threading.Lock()


def get_photo_frame() -> PhotoFrame:
    """Return the shared PhotoFrame, building it on first use."""
    global _frame
    with _frame_lock:
        if _frame is None:
            _frame = build_photo_frame(settings, session_factory=SessionLocal)
        return _frame


def set_photo_frame(frame: Optional[PhotoFrame]) -> None:
    global _frame
    with _frame_lock:
        _frame = frame


def peek_photo_frame() -> Optional[PhotoFrame]:
    """The shared PhotoFrame if one was built, without building it."""
    return _frame

from .media_meta import MediaMeta, MediaMetaRepository
from . import models

__all__ = ["MediaMeta", "MediaMetaRepository", "models"]

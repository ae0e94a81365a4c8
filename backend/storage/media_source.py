"""
Media source abstraction.

Provides a narrow interface for enumerating and reading photos.
Currently uses the local filesystem (e.g. a mounted NAS share).
"""
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional

from domain.models import MediaEntry


class LocalMediaSource:
    """
    Local filesystem media source.

    Photos are addressed by their POSIX path relative to `media_root`:
    - {media_root}/{folder}/IMG_0001.jpg -> "folder/IMG_0001.jpg"

    Only `paths` (sub-directories of the root) are scanned when given,
    otherwise the whole root.
    """

    def __init__(
        self,
        media_root: str = "media",
        paths: Optional[Iterable[str]] = None,
        extensions: Iterable[str] = (".jpg", ".jpeg"),
    ):
        self.media_root = Path(media_root)
        self.paths = [p for p in (paths or []) if p]
        self.extensions = {e.lower() if e.startswith(".") else f".{e.lower()}" for e in extensions}

    def _scan_roots(self) -> List[Path]:
        if not self.paths:
            return [self.media_root]
        return [self.media_root / p.strip("/") for p in self.paths]

    def list_entries(self) -> List[MediaEntry]:
        """
        Enumerate all photos, oldest first.

        Media ids are assigned in (modification time, path) order, so they
        stay stable while the share is unchanged.
        """
        found = {}
        for root in self._scan_roots():
            if not root.is_dir():
                continue
            for file_path in root.rglob("*"):
                if not file_path.is_file() or file_path.suffix.lower() not in self.extensions:
                    continue
                rel = file_path.relative_to(self.media_root).as_posix()
                found[rel] = datetime.fromtimestamp(file_path.stat().st_mtime)

        ordered = sorted(found.items(), key=lambda item: (item[1], item[0]))
        return [MediaEntry(path=path, media_id=i, modified_at=mtime) for i, (path, mtime) in enumerate(ordered)]

    def get_absolute_path(self, relative_path: str) -> Optional[Path]:
        """Convert a relative path to absolute; None when it escapes the media root."""
        root = self.media_root.resolve()
        candidate = (root / relative_path.lstrip("/")).resolve()
        if candidate != root and root not in candidate.parents:
            return None
        return candidate

    def file_exists(self, relative_path: str) -> bool:
        """Check if a file exists."""
        path = self.get_absolute_path(relative_path)
        return path is not None and path.is_file()

    def read_bytes(self, relative_path: str) -> Optional[bytes]:
        """Return the raw file content, or None when there is no such photo."""
        if not self.file_exists(relative_path):
            return None
        return self.get_absolute_path(relative_path).read_bytes()

"""
Single-slot look-ahead cache for random photos.

Composing a photo (download, face detection, caption) takes seconds, so one
composed photo is always kept ready. Reading it hands it out immediately and
kicks off a background refill so the next read is a hit too.

Concurrency model:
- At most one refill runs at a time. The gate is a non-blocking
  `Lock.acquire`, a single atomic test-and-set; the caller that wins the gate
  owns it until its refill finishes, even when the work runs on the executor
  thread.
- The slot is one reference to a frozen `CacheEntry`; refills swap the
  reference, so readers never see a half-updated entry.
- A failed refill keeps the previous entry.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional

from domain.models import ComposedImage, ComposeOptions

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 3600

ComposeFn = Callable[[ComposeOptions], Optional[ComposedImage]]


@dataclass(frozen=True)
class CacheEntry:
    image: ComposedImage
    expires_at: float
    width: Optional[int] = None
    height: Optional[int] = None

    def matches(self, width: Optional[int], height: Optional[int]) -> bool:
        return self.width == width and self.height == height


class LookAheadCache:
    def __init__(
        self,
        compose: ComposeFn,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        executor: Optional[ThreadPoolExecutor] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._compose = compose
        self.ttl_seconds = ttl_seconds
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="cache-refill")
        self._owns_executor = executor is None
        self._clock = clock
        self._refill_gate = threading.Lock()
        self._entry: Optional[CacheEntry] = None

    @property
    def refill_in_progress(self) -> bool:
        return self._refill_gate.locked()

    def peek(self) -> Optional[CacheEntry]:
        """Current slot content when it is still fresh."""
        entry = self._entry
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry

    def get(self, width: Optional[int] = None, height: Optional[int] = None) -> Optional[ComposedImage]:
        """Serve the ready photo and refill in the background; compose on the spot on a miss."""
        entry = self.peek()
        if entry is not None and entry.matches(width, height):
            logger.info("Cache hit: %s", entry.image.filename)
            self.schedule_refill(width, height)
            return entry.image

        logger.warning("Cache miss :-(")
        image = self._compose(ComposeOptions(width=width, height=height))
        self.schedule_refill(width, height)
        return image

    def refill(self, width: Optional[int] = None, height: Optional[int] = None) -> bool:
        """Synchronously compose a new photo into the slot. No-op when a refill is already running."""
        if not self._refill_gate.acquire(blocking=False):
            logger.info("Caching already in progress, skipping...")
            return False
        return self._run_refill(width, height)

    def schedule_refill(self, width: Optional[int] = None, height: Optional[int] = None) -> Optional[Future]:
        """Start a refill on the background executor unless one is already running."""
        if not self._refill_gate.acquire(blocking=False):
            logger.debug("Caching already in progress, not scheduling another refill")
            return None
        try:
            return self._executor.submit(self._run_refill, width, height)
        except RuntimeError:
            self._refill_gate.release()
            logger.exception("Could not schedule cache refill")
            return None

    def _run_refill(self, width: Optional[int], height: Optional[int]) -> bool:
        """Must only be called while holding the refill gate; always releases it."""
        try:
            image = self._compose(ComposeOptions(width=width, height=height))
            if image is None:
                logger.error("Failed to cache image: nothing was composed")
                return False
            self._entry = CacheEntry(
                image=image,
                expires_at=self._clock() + self.ttl_seconds,
                width=width,
                height=height,
            )
            logger.info("Cached an image: %s", image.filename)
            return True
        except Exception:
            logger.exception("Failed to cache image")
            return False
        finally:
            self._refill_gate.release()

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

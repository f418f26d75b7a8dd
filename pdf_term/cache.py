# cache.py
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Optional

from PIL import Image

from pdf_term.config import CACHE_BYTE_BUDGET, CACHE_SIZE_LIMIT
from pdf_term.models import RenderKey

logger = logging.getLogger(__name__)


@dataclass
class CachedBitmap:
    key: RenderKey
    image: Image.Image
    generation: int

    @property
    def nbytes(self) -> int:
        return image_nbytes(self.image)


def image_nbytes(image: Image.Image) -> int:
    return image.width * image.height * len(image.getbands())


class PageCache:
    """
    Least-recently-used store of rendered bitmaps keyed by ``RenderKey``.

    Bounded both by entry count and by pixel bytes. Every entry carries the
    cache generation it was produced under; ``invalidate_document`` bumps the
    generation, and inserts from an older generation are refused, so nothing
    rendered against a previous document version can come back.

    The lock only ever covers dictionary operations. Producers passed to
    ``get_or_insert`` run outside of it.
    """

    def __init__(self, max_entries: int = CACHE_SIZE_LIMIT, max_bytes: int = CACHE_BYTE_BUDGET):
        self.max_entries = max(1, max_entries)
        self.max_bytes = max_bytes
        self._entries: "OrderedDict[RenderKey, CachedBitmap]" = OrderedDict()
        self._nbytes = 0
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def nbytes(self) -> int:
        return self._nbytes

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: RenderKey) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: RenderKey) -> Optional[Image.Image]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            self._entries.move_to_end(key)
            return entry.image

    def put(self, key: RenderKey, image: Image.Image, generation: int) -> bool:
        """Insert ``image``; refused (False) if ``generation`` is stale."""
        with self._lock:
            if generation != self._generation:
                logger.debug("Dropping stale bitmap for %s (gen %d != %d)", key, generation, self._generation)
                return False
            old = self._entries.pop(key, None)
            if old is not None:
                self._nbytes -= old.nbytes
            entry = CachedBitmap(key, image, generation)
            self._entries[key] = entry
            self._nbytes += entry.nbytes
            self._evict()
            return True

    def get_or_insert(self, key: RenderKey, producer: Callable[[], Image.Image]) -> Image.Image:
        """
        Return the cached bitmap for ``key`` or produce and cache it.

        If the document was invalidated while ``producer`` ran, the fresh
        bitmap is returned to this caller but not cached.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._entries.move_to_end(key)
                return entry.image
            generation = self._generation

        image = producer()
        self.put(key, image, generation)
        return image

    def invalidate_document(self) -> int:
        """Drop every entry and start a new generation."""
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
            self._nbytes = 0
            self._generation += 1
        logger.info("Cache invalidated (%d entries dropped, generation %d)", dropped, self._generation)
        return dropped

    def _evict(self):
        # The newest entry is never evicted, even if it alone exceeds the budget.
        while len(self._entries) > 1 and (
            len(self._entries) > self.max_entries or self._nbytes > self.max_bytes
        ):
            key, entry = self._entries.popitem(last=False)
            self._nbytes -= entry.nbytes
            logger.debug("Evicted %s from cache", key)

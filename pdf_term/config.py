# config.py

import os
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

# --- Theme Configuration ---
THEMES: Dict[str, Dict[str, Tuple[int, int, int]]] = {
    "dark": {
        "highlight": (0, 122, 204),
        "focus": (255, 200, 0),
        "placeholder": (58, 58, 58),
    },
}

# --- Application Constants ---
# Limit for how many rendered bitmaps to keep in memory cache
CACHE_SIZE_LIMIT: int = 64

# Upper bound for the pixel bytes held by the cache
CACHE_BYTE_BUDGET: int = 256 * 1024 * 1024

# Number of pages to render ahead of/behind the visible viewport
RENDER_BUFFER_PAGES: int = 2

# Concurrent calls into the rendering engine
MAX_RENDER_WORKERS: int = 2

# Pages scanned per search chunk before yielding to page rendering
SEARCH_CHUNK_PAGES: int = 8

# Quiet period after the last file change before reloading (seconds)
RELOAD_QUIET_PERIOD: float = 0.3

# How often the file watcher checks the document on disk (seconds)
WATCH_POLL_INTERVAL: float = 0.1

# How long the input loop waits for a key before servicing queues (seconds)
INPUT_POLL_INTERVAL: float = 0.05

ZOOM_STEP: float = 1.2
MIN_ZOOM: float = 0.1
MAX_ZOOM: float = 5.0

# Cells moved by one pan command
PAN_STEP: int = 4

# Fallback cell size when the terminal does not report its pixel size
DEFAULT_CELL_SIZE: Tuple[int, int] = (8, 16)


@dataclass
class ViewerSettings:
    """Runtime settings; defaults come from the module constants above."""

    cache_entries: int = CACHE_SIZE_LIMIT
    cache_bytes: int = CACHE_BYTE_BUDGET
    prefetch_pages: int = RENDER_BUFFER_PAGES
    workers: int = MAX_RENDER_WORKERS
    search_chunk_pages: int = SEARCH_CHUNK_PAGES
    reload_quiet_period: float = RELOAD_QUIET_PERIOD
    watch_interval: float = WATCH_POLL_INTERVAL
    max_across: int = 0
    right_to_left: bool = False
    graphics: Optional[str] = None
    theme: str = "dark"
    # Page ink and paper colors; None keeps the document's own
    fg: Optional[Tuple[int, int, int]] = None
    bg: Optional[Tuple[int, int, int]] = None

    @property
    def worker_count(self) -> int:
        return max(1, min(self.workers, os.cpu_count() or 1))

    @property
    def colors(self) -> Dict[str, Tuple[int, int, int]]:
        return THEMES.get(self.theme, THEMES["dark"])

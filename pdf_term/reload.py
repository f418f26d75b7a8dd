# reload.py
import logging
import os
import queue
import threading
import time
from typing import Callable, Optional, Tuple

from pdf_term.config import RELOAD_QUIET_PERIOD, WATCH_POLL_INTERVAL
from pdf_term.errors import FatalOpenError, TransientIOError, ViewerError

logger = logging.getLogger(__name__)

Signature = Optional[Tuple[float, int, int]]


class ReloadDebouncer:
    """
    Coalesces bursts of file-change events into a single reload.

    Every event (re)starts the quiet window; ``poll`` triggers one reload
    once ``quiet_period`` seconds have passed since the last event. A failed
    reload keeps the current document and is only retried on the next event.
    """

    def __init__(
        self,
        reopen: Callable[[], object],
        on_reloaded: Callable[[object], None],
        on_failed: Callable[[ViewerError], None],
        quiet_period: float = RELOAD_QUIET_PERIOD,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._reopen = reopen
        self._on_reloaded = on_reloaded
        self._on_failed = on_failed
        self.quiet_period = quiet_period
        self._clock = clock
        self.pending = False
        self.last_event: Optional[float] = None

    @property
    def deadline(self) -> Optional[float]:
        if not self.pending:
            return None
        return self.last_event + self.quiet_period

    def on_fs_event(self, path: str):
        self.pending = True
        self.last_event = self._clock()
        logger.debug("Change detected on %s", path)

    def poll(self, now: Optional[float] = None) -> bool:
        """Trigger the reload if the quiet period has elapsed. Returns True if it fired."""
        if not self.pending:
            return False
        now = self._clock() if now is None else now
        if now - self.last_event < self.quiet_period:
            return False
        self.pending = False
        self.trigger_reload()
        return True

    def trigger_reload(self):
        try:
            document = self._reopen()
        except (TransientIOError, FatalOpenError) as e:
            logger.warning("Reload failed, keeping previous document: %s", e)
            self._on_failed(e)
            return
        logger.info("Document reloaded")
        self._on_reloaded(document)


def file_signature(path: str) -> Signature:
    try:
        st = os.stat(path)
    except OSError:
        return None
    return st.st_mtime, st.st_size, st.st_ino


class FileWatcher(threading.Thread):
    """
    Polls ``path`` and posts ``("fs_event", path)`` on ``events`` whenever its
    (mtime, size, inode) signature changes, including when it disappears.
    """

    def __init__(self, path: str, events: queue.Queue, interval: float = WATCH_POLL_INTERVAL):
        super().__init__(daemon=True, name="file-watcher")
        self.path = path
        self.events = events
        self.interval = interval
        self._stop_event = threading.Event()
        self._signature = file_signature(path)

    def check(self) -> bool:
        signature = file_signature(self.path)
        if signature == self._signature:
            return False
        self._signature = signature
        self.events.put(("fs_event", self.path))
        return True

    def run(self):
        while not self._stop_event.wait(self.interval):
            self.check()

    def stop(self):
        self._stop_event.set()

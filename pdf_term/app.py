# app.py
import logging
import os
import queue
import time
from typing import Callable, Dict, Optional

from PIL import Image, ImageDraw

from pdf_term.cache import PageCache
from pdf_term.config import ViewerSettings
from pdf_term.errors import EngineFailure, ViewerError
from pdf_term.layout import compute
from pdf_term.models import (
    ColorTransform,
    LayoutEntry,
    LayoutResult,
    ReadingDirection,
    RenderKey,
    ScreenRect,
    TerminalSize,
)
from pdf_term.pdf_model import PDFModel
from pdf_term.reload import FileWatcher, ReloadDebouncer
from pdf_term.renderer import RenderHandle, RenderScheduler
from pdf_term.search import SCAN_COMPLETE, SearchCoordinator, SearchState
from pdf_term.view import HideHelp, NextMatch, PrevMatch, Quit, Resize, Search, ShowHelp, ToggleDirection
from pdf_term.viewport import SetReadingDirection, Viewport, ViewportState

logger = logging.getLogger(__name__)

HIGHLIGHT_ALPHA = 96


class PdfApplication:
    """
    The coordinating task of the viewer.
    Owns the viewport, cache, scheduler, search and reload machinery and is
    the only place where their state is mutated. Worker threads and the file
    watcher talk to it through ``events``.
    """

    def __init__(
        self,
        filepath: str,
        settings: Optional[ViewerSettings] = None,
        document=None,
        view=None,
        graphics=None,
        terminal: Optional[TerminalSize] = None,
        opener: Callable[[str, int], object] = PDFModel.open,
        clock: Callable[[], float] = time.monotonic,
        watch: bool = True,
    ):
        self.filepath = filepath
        self.settings = settings or ViewerSettings()
        self.events: queue.Queue = queue.Queue()
        self._opener = opener
        self.view = view
        self.graphics = graphics
        self.terminal = terminal or (view.page_area() if view is not None else TerminalSize(80, 24, 8, 16))

        self.pdf_model = document if document is not None else opener(filepath, 0)
        self.version = self.pdf_model.version

        self.cache = PageCache(self.settings.cache_entries, self.settings.cache_bytes)
        workers = self.settings.worker_count if self.settings.workers > 0 else 0
        self.renderer = RenderScheduler(self.pdf_model, self.cache, self.events, workers=workers)

        direction = ReadingDirection.LEFT_TO_RIGHT
        if self.settings.right_to_left or (
            self.pdf_model.pages and self.pdf_model.pages[0].direction_hint is ReadingDirection.RIGHT_TO_LEFT
        ):
            direction = ReadingDirection.RIGHT_TO_LEFT
        self.viewport = Viewport(
            ViewportState(
                direction=direction,
                max_across=self.settings.max_across,
                color=ColorTransform(fg=self.settings.fg, bg=self.settings.bg),
            ),
            self.pdf_model.page_count,
        )

        self.search = SearchCoordinator(
            self.renderer, self.pdf_model, emit=self.apply, chunk_pages=self.settings.search_chunk_pages
        )
        self.debouncer = ReloadDebouncer(
            self._reopen,
            self._on_reloaded,
            self._on_reload_failed,
            quiet_period=self.settings.reload_quiet_period,
            clock=clock,
        )
        self.watcher = FileWatcher(filepath, self.events, self.settings.watch_interval) if watch else None

        self.layout = LayoutResult()
        self.handles: Dict[RenderKey, RenderHandle] = {}
        self.failures: Dict[RenderKey, EngineFailure] = {}
        self.notice = ""
        self.error = ""
        self.running = False
        self.dirty = True
        self.needs_redraw = True
        self.show_help = False
        self._clear_screen = True
        self._reported = None
        self._progress = -1
        # What each screen slot currently shows
        self._drawn: Dict[ScreenRect, tuple] = {}

    # --- Input ---

    def apply(self, action) -> bool:
        """Apply a key action or viewport command. Returns True if anything changed."""
        if isinstance(action, Quit):
            self.running = False
            return True
        if isinstance(action, Resize):
            if self.view is not None:
                self.resize(self.view.page_area())
            return True
        if isinstance(action, (ShowHelp, HideHelp)):
            self.show_help = isinstance(action, ShowHelp)
            self._clear_screen = True
            self.needs_redraw = True
            return True
        if isinstance(action, Search):
            return self._start_search(action.query)
        if isinstance(action, NextMatch):
            return self._step_match(self.search.next_match)
        if isinstance(action, PrevMatch):
            return self._step_match(self.search.prev_match)
        if isinstance(action, ToggleDirection):
            current = self.viewport.state.direction
            action = SetReadingDirection(
                ReadingDirection.LEFT_TO_RIGHT
                if current is ReadingDirection.RIGHT_TO_LEFT
                else ReadingDirection.RIGHT_TO_LEFT
            )

        self.notice = ""
        if self.viewport.apply(action):
            self.dirty = True
            return True
        return False

    def resize(self, terminal: TerminalSize):
        if terminal != self.terminal:
            self.terminal = terminal
            self.dirty = True
            self._clear_screen = True

    def _start_search(self, query: str) -> bool:
        self.search.start(query)
        self.notice = f"Searching for '{query}'" if query else ""
        self.dirty = True
        return True

    def _step_match(self, step) -> bool:
        if step(from_page=self.viewport.state.page) is None:
            self.notice = "No matches" if self.search.session else "No active search"
            self.needs_redraw = True
            return False
        # Focus moved even if the page did not change
        self.dirty = True
        return True

    # --- Event loop ---

    def run(self):
        self.running = True
        if self.watcher is not None:
            self.watcher.start()
        try:
            while self.running:
                prompt = self.view.keys.prompt
                action = self.view.read_action()
                if action is not None:
                    self.apply(action)
                if self.view.keys.prompt != prompt:
                    self.needs_redraw = True
                self.tick()
        finally:
            self.stop()

    def tick(self, now: Optional[float] = None):
        """One pass of the coordinating loop: events, reload, search, layout, draw."""
        self._drain_events()
        self.debouncer.poll(now)
        self._advance_search()
        if self.dirty:
            self.relayout()
        if self.needs_redraw and self.view is not None:
            self.draw()

    def _drain_events(self):
        while True:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return
            kind = event[0]
            if kind == "fs_event":
                self.debouncer.on_fs_event(event[1])
            elif kind == "rendered":
                if event[1] in self.layout.visible_keys:
                    self.needs_redraw = True
            elif kind == "render_failed":
                key, error = event[1], event[2]
                self.failures[key] = error
                if key in self.layout.visible_keys:
                    self.needs_redraw = True

    def _advance_search(self):
        session = self.search.session
        if session is None:
            return
        while True:
            result = self.search.advance()
            if result is None:
                break
            if result is SCAN_COMPLETE:
                if session.cursor is None and session.matches:
                    self.search.next_match(from_page=self.viewport.state.page)
                break
            self.dirty = True
            if session.cursor is None and result.page >= self.viewport.state.page:
                self.search.next_match(from_page=self.viewport.state.page)

        if session.state is SearchState.COMPLETED:
            if self._reported is not session:
                self._reported = session
                self.notice = "" if session.matches else f"No matches for '{session.query}'"
                self.needs_redraw = True
        elif session.progress() != self._progress:
            self._progress = session.progress()
            self.needs_redraw = True

    def relayout(self):
        state = self.viewport.state
        self.layout = compute(
            state,
            self.terminal,
            self.pdf_model.pages,
            highlights=self.search.highlights(),
            focus=self.search.focus(),
            prefetch=self.settings.prefetch_pages,
        )
        self.viewport.clamp_pan(self.layout.max_pan_x, self.layout.max_pan_y, self.layout.pages_shown)
        self.handles = self.renderer.on_viewport_change(self.layout.visible_keys, self.layout.prefetch)
        self.dirty = False
        self.needs_redraw = True

    # --- Reloading ---

    def _reopen(self):
        return self._opener(self.filepath, self.version + 1)

    def _on_reloaded(self, document):
        old = self.pdf_model
        self.pdf_model = document
        self.version = document.version
        self.renderer.set_document(document)
        self.cache.invalidate_document()
        self.failures.clear()
        self.viewport.set_page_count(document.page_count)
        self.search.set_document(document)
        old.close()
        self.notice = "Document reloaded"
        self.error = ""
        self.dirty = True
        self._clear_screen = True

    def _on_reload_failed(self, error: ViewerError):
        self.error = f"Reload failed: {error}"
        self.needs_redraw = True

    # --- Drawing ---

    def image_for(self, entry: LayoutEntry) -> Optional[Image.Image]:
        image = self.cache.get(entry.key)
        if image is not None:
            return image
        handle = self.handles.get(entry.key)
        if handle is not None and handle.done() and handle.exception() is None:
            return handle.result()
        return None

    def draw(self):
        slots = {entry.rect for entry in self.layout.entries}
        if self._clear_screen or any(rect not in slots for rect in self._drawn):
            self.graphics.clear()
            self.view.clear_pages(self.terminal.rows)
            self._drawn.clear()
            self._clear_screen = False

        if self.show_help:
            self.view.draw_help(self.terminal)
        else:
            self._draw_pages()

        self.view.draw_status(
            os.path.basename(self.filepath), self.page_info(), self.search_info(), self.error or self.notice
        )
        self.view.flush()
        self.needs_redraw = False

    def _draw_pages(self):
        for entry in self.layout.entries:
            image = self.image_for(entry)
            shown = (entry, id(image)) if image is not None else (entry, entry.key in self.failures)
            if self._drawn.get(entry.rect) == shown:
                continue
            if image is not None:
                self.graphics.display(highlight(image, entry, self.settings.colors), entry.rect)
            elif entry.key in self.failures:
                self.view.draw_placeholder(entry.rect, f"Page {entry.page + 1} failed to render")
            else:
                self.view.draw_placeholder(entry.rect, f"Loading page {entry.page + 1}...")
            self._drawn[entry.rect] = shown

    def page_info(self) -> str:
        state = self.viewport.state
        count = self.pdf_model.page_count
        if count == 0:
            return "Empty document"
        shown = self.layout.pages_shown or 1
        last = min(state.page + shown, count)
        pages = f"{state.page + 1}" if last <= state.page + 1 else f"{state.page + 1}-{last}"
        info = f"Page {pages}/{count} | Zoom {state.zoom * 100:.0f}% | Fit {state.fit_mode.value}"
        if state.direction is ReadingDirection.RIGHT_TO_LEFT:
            info += " | RTL"
        if state.color.inverted:
            info += " | Inverted"
        return info

    def search_info(self) -> str:
        session = self.search.session
        if session is None:
            return ""
        if session.matches:
            index = session.cursor + 1 if session.cursor is not None else 0
            info = f"Match {index}/{len(session.matches)}"
        else:
            info = "No matches" if session.finished else "Searching"
        if not session.finished:
            info += f" (searched {session.progress()}%)"
        if session.unscannable:
            info += f" ({len(session.unscannable)} pages unsearchable)"
        return info

    def stop(self):
        self.running = False
        if self.watcher is not None:
            self.watcher.stop()
        self.search.cancel()
        self.renderer.stop()
        self.pdf_model.close()


def highlight(image: Image.Image, entry: LayoutEntry, colors) -> Image.Image:
    """Overlay the search matches of ``entry`` on a copy of its bitmap."""
    if not entry.highlights and entry.focus is None:
        return image
    overlay = Image.new("RGBA", image.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    for rect in entry.highlights:
        draw.rectangle(_box(rect), fill=colors["highlight"] + (HIGHLIGHT_ALPHA,))
    if entry.focus is not None:
        draw.rectangle(_box(entry.focus), fill=colors["focus"] + (HIGHLIGHT_ALPHA,), outline=colors["focus"], width=2)
    return Image.alpha_composite(image.convert("RGBA"), overlay).convert("RGB")


def _box(rect):
    x0, y0 = int(rect.x0), int(rect.y0)
    return [x0, y0, max(x0, int(rect.x1) - 1), max(y0, int(rect.y1) - 1)]

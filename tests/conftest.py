import queue
import threading
from pathlib import Path

import fitz
import pytest
from PIL import Image

from pdf_term.cache import PageCache
from pdf_term.errors import EngineFailure
from pdf_term.models import PageDescriptor, ReadingDirection
from pdf_term.renderer import RenderScheduler


class FakeEngine:
    """
    Stand-in for ``PDFModel``: blank pages of a fixed size, text matches
    given up front, and hooks for slow or failing pages.
    """

    def __init__(
        self,
        page_count=10,
        size=(612, 792),
        version=0,
        texts=None,
        failing=(),
        failing_search=(),
        gate=None,
        direction=ReadingDirection.LEFT_TO_RIGHT,
    ):
        self.page_count = page_count
        self.version = version
        self.pages = tuple(
            PageDescriptor(i, size[0], size[1], direction, version) for i in range(page_count)
        )
        self.texts = texts or {}
        self.failing = set(failing)
        self.failing_search = set(failing_search)
        self.gate = gate
        self.started = threading.Event()
        self.rasterized = []
        self.searched = []
        self.closed = False
        self._lock = threading.Lock()

    @property
    def rasterized_pages(self):
        return [key.page for key in self.rasterized]

    def rasterize(self, key):
        with self._lock:
            self.rasterized.append(key)
        self.started.set()
        if self.gate is not None:
            self.gate.wait(5)
        if key.page in self.failing:
            raise EngineFailure(key.page, "broken page")
        return Image.new("RGB", (key.width, key.height), "white")

    def extract_text_matches(self, page, query):
        with self._lock:
            self.searched.append(page)
        if page in self.failing_search:
            raise EngineFailure(page, "no text layer")
        return list(self.texts.get(page, []))

    def close(self):
        self.closed = True


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def cache():
    return PageCache(max_entries=32)


@pytest.fixture
def events():
    return queue.Queue()


@pytest.fixture
def scheduler(engine, cache, events):
    """A scheduler without worker threads; call ``run_pending`` to render."""
    sched = RenderScheduler(engine, cache, events, workers=0)
    yield sched
    sched.stop()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sample_pdf(tmp_path: Path) -> Path:
    """A three page A4 document with some text on pages 1 and 3."""
    path = tmp_path / "sample.pdf"
    doc = fitz.open()
    for text in ("Hello world", "", "Another world"):
        page = doc.new_page(width=595, height=842)
        if text:
            page.insert_text((72, 100), text, fontsize=14)
    doc.save(str(path))
    doc.close()
    return path


def drain_events(events):
    found = []
    while True:
        try:
            found.append(events.get_nowait())
        except queue.Empty:
            return found

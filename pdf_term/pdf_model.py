# pdf_model.py
import logging
import os
import threading
from typing import List, Optional, Tuple

import fitz  # PyMuPDF
from PIL import Image, ImageOps

from pdf_term.errors import EngineFailure, FatalOpenError, TransientIOError
from pdf_term.models import ColorTransform, PageDescriptor, ReadingDirection, Rect, RenderKey

logger = logging.getLogger(__name__)


class PDFModel:
    """
    The Model class responsible for handling the PDF document.
    It encapsulates all interactions with the PyMuPDF (fitz) library.

    The file is read into memory once, so a model is a snapshot of one
    version of the document; reloading creates a new model. MuPDF is not
    safe to call from several threads at once, so every call into ``fitz``
    holds ``_lock``. Pixel post-processing happens outside of it.
    """

    def __init__(self, filepath: str, data: bytes, version: int = 0):
        self.filepath = filepath
        self.version = version
        self._lock = threading.RLock()
        try:
            self.doc: Optional[fitz.Document] = fitz.open(stream=data, filetype="pdf")
        except Exception as e:
            raise FatalOpenError(f"Failed to open {filepath}: {e}") from e
        if self.doc.needs_pass:
            self.doc.close()
            raise FatalOpenError(f"{filepath} is password protected")
        self.page_count = self.doc.page_count
        direction = self._reading_direction()
        self.pages: Tuple[PageDescriptor, ...] = tuple(
            PageDescriptor(i, rect.width, rect.height, direction, version)
            for i, rect in enumerate(self._page_rects())
        )

    @classmethod
    def open(cls, filepath: str, version: int = 0) -> "PDFModel":
        """
        Read and open ``filepath``. Missing, unreadable or empty files raise
        ``TransientIOError`` (an editor may be halfway through saving);
        anything MuPDF rejects raises ``FatalOpenError``.
        """
        try:
            with open(filepath, "rb") as f:
                data = f.read()
        except (FileNotFoundError, PermissionError, IsADirectoryError) as e:
            raise TransientIOError(f"Cannot read {filepath}: {e.strerror}") from e
        except OSError as e:
            raise TransientIOError(f"Cannot read {filepath}: {e}") from e
        if not data:
            raise TransientIOError(f"{os.path.basename(filepath)} is empty")
        return cls(filepath, data, version)

    def _page_rects(self) -> List[fitz.Rect]:
        rects = []
        for i in range(self.page_count):
            try:
                rects.append(self.doc.load_page(i).rect)
            except Exception as e:
                # A broken page still gets a slot; rendering it reports the error.
                logger.warning("Could not read size of page %d: %s", i + 1, e)
                rects.append(fitz.Rect(0, 0, 612, 792))
        return rects

    def _reading_direction(self) -> ReadingDirection:
        try:
            kind, value = self.doc.xref_get_key(self.doc.pdf_catalog(), "ViewerPreferences/Direction")
        except Exception:
            return ReadingDirection.LEFT_TO_RIGHT
        if kind == "name" and value == "/R2L":
            return ReadingDirection.RIGHT_TO_LEFT
        return ReadingDirection.LEFT_TO_RIGHT

    def get_page(self, page_num: int):
        """Returns a page object from the document."""
        if self.doc is not None and 0 <= page_num < self.page_count:
            return self.doc.load_page(page_num)
        return None

    def get_page_size(self, page_num: int) -> Optional[PageDescriptor]:
        """Returns the dimensions of a specific page."""
        if 0 <= page_num < self.page_count:
            return self.pages[page_num]
        return None

    def rasterize(self, key: RenderKey) -> Image.Image:
        """Render the region ``key.crop`` of page ``key.page`` to a ``key.width`` x ``key.height`` image."""
        descriptor = self.get_page_size(key.page)
        if descriptor is None:
            raise EngineFailure(key.page, "no such page")
        crop = key.crop or Rect(0, 0, descriptor.width, descriptor.height)
        if crop.is_empty or key.width <= 0 or key.height <= 0:
            raise EngineFailure(key.page, "empty render area")

        mat = fitz.Matrix(key.width / crop.width, key.height / crop.height)
        try:
            with self._lock:
                page = self.get_page(key.page)
                if page is None:
                    raise EngineFailure(key.page, "document is closed")
                clip = fitz.Rect(crop.x0, crop.y0, crop.x1, crop.y1)
                pix = page.get_pixmap(matrix=mat, clip=clip, alpha=False)
                img = Image.frombytes("RGB", (pix.width, pix.height), pix.samples)
        except EngineFailure:
            raise
        except Exception as e:
            raise EngineFailure(key.page, f"rendering failed: {e}") from e

        if img.size != (key.width, key.height):
            img = img.resize((key.width, key.height))
        return apply_color_transform(img, key.color)

    def extract_text_matches(self, page_num: int, query: str) -> List[Rect]:
        """Bounding boxes of ``query`` on the page, in reading order."""
        try:
            with self._lock:
                page = self.get_page(page_num)
                if page is None:
                    raise EngineFailure(page_num, "no such page")
                hits = page.search_for(query)
        except EngineFailure:
            raise
        except Exception as e:
            raise EngineFailure(page_num, f"text search failed: {e}") from e
        rects = [Rect(h.x0, h.y0, h.x1, h.y1) for h in hits]
        rects.sort(key=lambda r: (r.y0, r.x0))
        return rects

    def close(self):
        """Closes the PDF document."""
        with self._lock:
            if self.doc is not None:
                self.doc.close()
                self.doc = None


def apply_color_transform(img: Image.Image, color: ColorTransform) -> Image.Image:
    if color.is_identity:
        return img
    if color.fg is not None or color.bg is not None:
        fg = color.fg or (0, 0, 0)
        bg = color.bg or (255, 255, 255)
        if color.inverted:
            fg, bg = bg, fg
        return ImageOps.colorize(ImageOps.grayscale(img), black=fg, white=bg)
    return ImageOps.invert(img)

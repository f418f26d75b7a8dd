# search.py
"""
Incremental full-document text search.

A search session scans the document in chunks of pages submitted to the
render scheduler at ``Priority.SEARCH``. After each chunk the session pauses
and only resumes once no visible or prefetch rendering is pending, so a long
scan never holds up the pages on screen.

Pages can finish out of order on the worker pool. Their results are held back
until every earlier page is in, so ``matches`` only ever grows in document
order and ``scanned_through`` only moves forward.
"""

import logging
from concurrent.futures import Future
from enum import Enum
from functools import partial
from typing import Callable, Dict, List, Optional, Set, Tuple, Union

from pdf_term.config import SEARCH_CHUNK_PAGES
from pdf_term.models import Priority, Rect, SearchMatch
from pdf_term.viewport import Command, GotoPage

logger = logging.getLogger(__name__)


class SearchState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class _ScanComplete:
    def __repr__(self):
        return "SCAN_COMPLETE"


SCAN_COMPLETE = _ScanComplete()


class SearchSession:
    def __init__(self, query: str, page_count: int):
        self.query = query
        self.page_count = page_count
        self.state = SearchState.IDLE
        self.matches: List[SearchMatch] = []
        self.cursor: Optional[int] = None
        self.scanned_through = -1
        self.unscannable: Set[int] = set()
        self._next_page = 0
        self._outstanding: Dict[int, Future] = {}
        self._results: Dict[int, List[Rect]] = {}
        self._delivered = 0

    @property
    def finished(self) -> bool:
        return self.state in (SearchState.COMPLETED, SearchState.CANCELLED)

    @property
    def current(self) -> Optional[SearchMatch]:
        if self.cursor is None or not self.matches:
            return None
        return self.matches[self.cursor]

    def progress(self) -> int:
        """Percentage of pages scanned."""
        if self.page_count <= 0:
            return 100
        return (self.scanned_through + 1) * 100 // self.page_count


class SearchCoordinator:
    """Starts, drives and cancels search sessions against the current document."""

    def __init__(
        self,
        scheduler,
        document,
        emit: Optional[Callable[[Command], object]] = None,
        chunk_pages: int = SEARCH_CHUNK_PAGES,
    ):
        self._scheduler = scheduler
        self._document = document
        self._emit = emit
        self.chunk_pages = max(1, chunk_pages)
        self.session: Optional[SearchSession] = None

    def start(self, query: str) -> Optional[SearchSession]:
        """Supersede any running session with a search for ``query``."""
        self.clear()
        if not query:
            return None
        session = SearchSession(query, self._document.page_count)
        self.session = session
        session.state = SearchState.SCANNING
        self._dispatch_chunk(session)
        logger.info("Search started for %r over %d pages", query, session.page_count)
        return session

    def cancel(self, session: Optional[SearchSession] = None):
        session = session or self.session
        if session is None or session.finished:
            return
        session.state = SearchState.CANCELLED
        for future in session._outstanding.values():
            future.cancel()
        session._outstanding.clear()
        logger.debug("Search for %r cancelled", session.query)

    def clear(self):
        """Cancel the current session and forget it (clears highlights)."""
        self.cancel()
        self.session = None

    def set_document(self, document) -> Optional[SearchSession]:
        """Restart the current query against a reloaded document."""
        query = self.session.query if self.session else ""
        self.cancel()
        self._document = document
        if query:
            return self.start(query)
        self.session = None
        return None

    def advance(self) -> Union[SearchMatch, _ScanComplete, None]:
        """
        Fold finished scans into the session and return the next match not yet
        reported, ``SCAN_COMPLETE`` once everything has been reported, or None
        while the scan is still running (or paused).
        """
        session = self.session
        if session is None or session.state is SearchState.CANCELLED:
            return None

        self._collect(session)

        if session.state is SearchState.PAUSED and not self._scheduler.has_pending(Priority.PREFETCH):
            session.state = SearchState.SCANNING
            self._dispatch_chunk(session)

        if session._delivered < len(session.matches):
            match = session.matches[session._delivered]
            session._delivered += 1
            return match
        if session.state is SearchState.COMPLETED:
            return SCAN_COMPLETE
        return None

    def next_match(self, from_page: int = 0) -> Optional[SearchMatch]:
        session = self.session
        if session is None or not session.matches:
            return None
        if session.cursor is None:
            session.cursor = next(
                (i for i, m in enumerate(session.matches) if m.page >= from_page), 0
            )
        else:
            session.cursor = (session.cursor + 1) % len(session.matches)
        return self._focus(session)

    def prev_match(self, from_page: int = 0) -> Optional[SearchMatch]:
        session = self.session
        if session is None or not session.matches:
            return None
        if session.cursor is None:
            before = [i for i, m in enumerate(session.matches) if m.page <= from_page]
            session.cursor = before[-1] if before else len(session.matches) - 1
        else:
            session.cursor = (session.cursor - 1) % len(session.matches)
        return self._focus(session)

    def highlights(self) -> Dict[int, Tuple[Rect, ...]]:
        if self.session is None:
            return {}
        grouped: Dict[int, List[Rect]] = {}
        for match in self.session.matches:
            grouped.setdefault(match.page, []).append(match.rect)
        return {page: tuple(rects) for page, rects in grouped.items()}

    def focus(self) -> Optional[Tuple[int, Rect]]:
        match = self.session.current if self.session else None
        if match is None:
            return None
        return match.page, match.rect

    def _focus(self, session: SearchSession) -> SearchMatch:
        match = session.matches[session.cursor]
        if self._emit is not None:
            self._emit(GotoPage(match.page))
        return match

    def _dispatch_chunk(self, session: SearchSession):
        start = session._next_page
        end = min(start + self.chunk_pages, session.page_count)
        document = self._document
        for page in range(start, end):
            session._outstanding[page] = self._scheduler.submit(
                partial(self._scan, session, document, page), Priority.SEARCH
            )
        session._next_page = end
        if start == end:
            session.state = SearchState.COMPLETED

    @staticmethod
    def _scan(session: SearchSession, document, page: int) -> List[Rect]:
        if session.state is SearchState.CANCELLED:
            return []
        return document.extract_text_matches(page, session.query)

    def _collect(self, session: SearchSession):
        for page, future in list(session._outstanding.items()):
            if not future.done():
                continue
            del session._outstanding[page]
            try:
                rects = future.result()
            except Exception as exc:
                logger.warning("Page %d could not be searched: %s", page + 1, exc)
                session.unscannable.add(page)
                rects = []
            session._results[page] = rects

        while session.scanned_through + 1 in session._results:
            page = session.scanned_through + 1
            rects = session._results.pop(page)
            session.matches.extend(sorted(SearchMatch.at(page, rect) for rect in rects))
            session.scanned_through = page

        if session.state is SearchState.SCANNING and not session._outstanding:
            if session._next_page >= session.page_count:
                session.state = SearchState.COMPLETED
                logger.info(
                    "Search for %r complete: %d matches, %d unscannable pages",
                    session.query, len(session.matches), len(session.unscannable),
                )
            else:
                session.state = SearchState.PAUSED

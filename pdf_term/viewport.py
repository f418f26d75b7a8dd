# viewport.py
"""
Viewport/input state.

The viewport owns the scroll position, zoom, pan, fit mode, reading direction
and color transform. It is mutated only through ``Viewport.apply`` with one of
the command objects below, on the coordinating thread.
"""

from dataclasses import dataclass, replace
from typing import Union

from pdf_term.config import MAX_ZOOM, MIN_ZOOM, ZOOM_STEP
from pdf_term.models import ColorTransform, FitMode, ReadingDirection


@dataclass(frozen=True)
class ViewportState:
    page: int = 0
    zoom: float = 1.0
    pan_x: int = 0
    pan_y: int = 0
    fit_mode: FitMode = FitMode.FIT_PAGE
    direction: ReadingDirection = ReadingDirection.LEFT_TO_RIGHT
    max_across: int = 0
    color: ColorTransform = ColorTransform.NORMAL


# --- Commands ---

@dataclass(frozen=True)
class Scroll:
    pages: int


@dataclass(frozen=True)
class ScrollScreen:
    screens: int


@dataclass(frozen=True)
class ZoomIn:
    pass


@dataclass(frozen=True)
class ZoomOut:
    pass


@dataclass(frozen=True)
class ZoomReset:
    pass


@dataclass(frozen=True)
class Pan:
    dx: int
    dy: int


@dataclass(frozen=True)
class SetFitMode:
    mode: FitMode


@dataclass(frozen=True)
class GotoPage:
    page: int


@dataclass(frozen=True)
class SetReadingDirection:
    direction: ReadingDirection


@dataclass(frozen=True)
class SetMaxAcross:
    pages: int


@dataclass(frozen=True)
class ToggleInvert:
    pass


Command = Union[
    Scroll, ScrollScreen, ZoomIn, ZoomOut, ZoomReset, Pan, SetFitMode,
    GotoPage, SetReadingDirection, SetMaxAcross, ToggleInvert,
]


class Viewport:
    """Holds the current ``ViewportState`` and applies commands to it."""

    def __init__(self, state: ViewportState = None, page_count: int = 0):
        self.state = state or ViewportState()
        self.page_count = page_count
        # Bounds reported by the last layout pass
        self.max_pan_x = 0
        self.max_pan_y = 0
        self.pages_shown = 1

    def apply(self, command: Command) -> bool:
        """Apply ``command``; return True if the state changed."""
        new_state = self._next_state(command)
        if new_state == self.state:
            return False
        self.state = new_state
        return True

    def set_page_count(self, page_count: int) -> bool:
        self.page_count = page_count
        return self._replace(page=self._clamp_page(self.state.page))

    def clamp_pan(self, max_pan_x: int, max_pan_y: int, pages_shown: int = None) -> bool:
        """Record layout bounds and pull the pan offset back inside them."""
        self.max_pan_x = max(0, max_pan_x)
        self.max_pan_y = max(0, max_pan_y)
        if pages_shown is not None:
            self.pages_shown = max(1, pages_shown)
        return self._replace(
            pan_x=min(max(self.state.pan_x, 0), self.max_pan_x),
            pan_y=min(max(self.state.pan_y, 0), self.max_pan_y),
        )

    def _replace(self, **changes) -> bool:
        new_state = replace(self.state, **changes)
        if new_state == self.state:
            return False
        self.state = new_state
        return True

    def _clamp_page(self, page: int) -> int:
        if self.page_count <= 0:
            return 0
        return min(max(page, 0), self.page_count - 1)

    def _scroll_to(self, page: int) -> ViewportState:
        page = self._clamp_page(page)
        if page == self.state.page:
            return self.state
        return replace(self.state, page=page, pan_y=0)

    def _zoom_to(self, zoom: float) -> ViewportState:
        zoom = min(max(zoom, MIN_ZOOM), MAX_ZOOM)
        if abs(zoom - self.state.zoom) < 1e-9:
            return self.state
        # Keep the same relative position; the next layout pass clamps it.
        ratio = zoom / self.state.zoom
        return replace(
            self.state,
            zoom=zoom,
            pan_x=int(self.state.pan_x * ratio),
            pan_y=int(self.state.pan_y * ratio),
        )

    def _next_state(self, command: Command) -> ViewportState:
        state = self.state
        if isinstance(command, Scroll):
            delta = command.pages
            if state.direction is ReadingDirection.RIGHT_TO_LEFT:
                delta = -delta
            return self._scroll_to(state.page + delta)
        if isinstance(command, ScrollScreen):
            screens = command.screens
            if state.direction is ReadingDirection.RIGHT_TO_LEFT:
                screens = -screens
            return self._scroll_to(state.page + screens * self.pages_shown)
        if isinstance(command, GotoPage):
            return self._scroll_to(command.page)
        if isinstance(command, ZoomIn):
            return self._zoom_to(state.zoom * ZOOM_STEP)
        if isinstance(command, ZoomOut):
            return self._zoom_to(state.zoom / ZOOM_STEP)
        if isinstance(command, ZoomReset):
            return replace(state, zoom=1.0, pan_x=0, pan_y=0)
        if isinstance(command, Pan):
            return replace(
                state,
                pan_x=min(max(state.pan_x + command.dx, 0), self.max_pan_x),
                pan_y=min(max(state.pan_y + command.dy, 0), self.max_pan_y),
            )
        if isinstance(command, SetFitMode):
            if command.mode is state.fit_mode:
                return state
            return replace(state, fit_mode=command.mode, pan_x=0, pan_y=0)
        if isinstance(command, SetReadingDirection):
            return replace(state, direction=command.direction)
        if isinstance(command, SetMaxAcross):
            return replace(state, max_across=max(0, command.pages))
        if isinstance(command, ToggleInvert):
            return replace(state, color=state.color.toggled())
        raise TypeError(f"Unknown viewport command: {command!r}")

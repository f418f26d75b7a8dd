# models.py
"""
Value types shared by the viewport, layout, cache, scheduler and search.

Everything here is immutable and hashable so that it can be used as a cache
key or compared between two layout passes.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import ClassVar, Optional, Tuple

RGB = Tuple[int, int, int]


class FitMode(Enum):
    FIT_WIDTH = "width"
    FIT_HEIGHT = "height"
    FIT_PAGE = "page"
    ACTUAL_SIZE = "actual"


class ReadingDirection(Enum):
    LEFT_TO_RIGHT = "ltr"
    RIGHT_TO_LEFT = "rtl"


class Priority(IntEnum):
    """Lower values are dispatched first."""

    VISIBLE = 0
    PREFETCH = 1
    SEARCH = 2


@dataclass(frozen=True)
class ColorTransform:
    """
    How a rendered page is recolored. ``inverted`` flips every channel;
    ``fg``/``bg`` map dark ink and paper to custom colors.
    """

    inverted: bool = False
    fg: Optional[RGB] = None
    bg: Optional[RGB] = None

    NORMAL: ClassVar["ColorTransform"]

    @property
    def is_identity(self) -> bool:
        return not self.inverted and self.fg is None and self.bg is None

    def toggled(self) -> "ColorTransform":
        return ColorTransform(not self.inverted, self.fg, self.bg)


ColorTransform.NORMAL = ColorTransform()


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle, origin top-left. Page space uses PDF points."""

    x0: float
    y0: float
    x1: float
    y1: float

    @property
    def width(self) -> float:
        return self.x1 - self.x0

    @property
    def height(self) -> float:
        return self.y1 - self.y0

    @property
    def is_empty(self) -> bool:
        return self.x1 <= self.x0 or self.y1 <= self.y0

    def intersect(self, other: "Rect") -> "Rect":
        return Rect(
            max(self.x0, other.x0),
            max(self.y0, other.y0),
            min(self.x1, other.x1),
            min(self.y1, other.y1),
        )


@dataclass(frozen=True)
class PageDescriptor:
    index: int
    width: float
    height: float
    direction_hint: ReadingDirection = ReadingDirection.LEFT_TO_RIGHT
    version: int = 0


@dataclass(frozen=True)
class RenderKey:
    """
    Identity of one rendering request. ``width``/``height`` are the pixel size
    of the produced bitmap and ``crop`` the page-space region it covers
    (``None`` for the whole page).
    """

    page: int
    width: int
    height: int
    crop: Optional[Rect] = None
    color: ColorTransform = ColorTransform.NORMAL
    version: int = 0


@dataclass(frozen=True)
class TerminalSize:
    columns: int
    rows: int
    cell_width: int
    cell_height: int

    @property
    def pixel_width(self) -> int:
        return self.columns * self.cell_width

    @property
    def pixel_height(self) -> int:
        return self.rows * self.cell_height


@dataclass(frozen=True)
class ScreenRect:
    column: int
    row: int
    columns: int
    rows: int


@dataclass(frozen=True)
class LayoutEntry:
    page: int
    rect: ScreenRect
    key: RenderKey
    highlights: Tuple[Rect, ...] = ()
    focus: Optional[Rect] = None


@dataclass(frozen=True)
class LayoutResult:
    entries: Tuple[LayoutEntry, ...] = ()
    prefetch: Tuple[RenderKey, ...] = ()
    pan_x: int = 0
    pan_y: int = 0
    max_pan_x: int = 0
    max_pan_y: int = 0
    pages_shown: int = 0

    @property
    def visible_keys(self) -> Tuple[RenderKey, ...]:
        return tuple(entry.key for entry in self.entries)


@dataclass(frozen=True, order=True)
class SearchMatch:
    """One occurrence of the query. Sorts by page, then top, then left."""

    page: int
    top: float
    left: float
    rect: Rect = field(compare=False)

    @classmethod
    def at(cls, page: int, rect: Rect) -> "SearchMatch":
        return cls(page, rect.y0, rect.x0, rect)

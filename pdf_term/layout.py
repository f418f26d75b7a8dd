# layout.py
"""
Layout engine.

``compute`` turns the viewport state, the terminal size and the page
descriptors into the list of pages to show, where to show them (in terminal
cells) and the render key each needs. It is a pure function: the same inputs
always give an equal ``LayoutResult``, so the coordinator can treat "the
layout changed" as the only reason to schedule rendering.

All placement happens on the cell grid. A page occupies a whole number of
cells and its bitmap is rendered at exactly that many pixels, so adjacent
pages never overlap. Pan offsets are in cells as well.
"""

import math
from typing import Dict, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from pdf_term.config import RENDER_BUFFER_PAGES
from pdf_term.models import (
    FitMode,
    LayoutEntry,
    LayoutResult,
    PageDescriptor,
    ReadingDirection,
    Rect,
    RenderKey,
    ScreenRect,
    TerminalSize,
)
from pdf_term.viewport import ViewportState


class _Slot(NamedTuple):
    page: PageDescriptor
    columns: int
    rows: int


def page_scale(page: PageDescriptor, state: ViewportState, terminal: TerminalSize) -> float:
    """Pixels per page point for ``page`` under the current fit mode and zoom."""
    avail_w = terminal.pixel_width
    avail_h = terminal.pixel_height
    if page.width <= 0 or page.height <= 0:
        return state.zoom

    if state.fit_mode is FitMode.FIT_WIDTH:
        base = avail_w / page.width
    elif state.fit_mode is FitMode.FIT_HEIGHT:
        base = avail_h / page.height
    elif state.fit_mode is FitMode.FIT_PAGE:
        base = min(avail_w / page.width, avail_h / page.height)
    else:
        base = 1.0
    return base * state.zoom


def _slot(page: PageDescriptor, state: ViewportState, terminal: TerminalSize) -> _Slot:
    scale = page_scale(page, state, terminal)
    columns = max(1, math.ceil(round(page.width * scale, 6) / terminal.cell_width))
    rows = max(1, math.ceil(round(page.height * scale, 6) / terminal.cell_height))
    return _Slot(page, columns, rows)


def _build_row(
    pages: Sequence[PageDescriptor], start: int, state: ViewportState, terminal: TerminalSize
) -> List[_Slot]:
    row: List[_Slot] = []
    used = 0
    for page in pages[start:]:
        slot = _slot(page, state, terminal)
        if row:
            if used + slot.columns > terminal.columns:
                break
            if state.max_across and len(row) >= state.max_across:
                break
        row.append(slot)
        used += slot.columns
    return row


def _full_key(slot: _Slot, state: ViewportState, terminal: TerminalSize) -> RenderKey:
    return RenderKey(
        page=slot.page.index,
        width=slot.columns * terminal.cell_width,
        height=slot.rows * terminal.cell_height,
        crop=None,
        color=state.color,
        version=slot.page.version,
    )


def _to_bitmap(
    rect: Rect, crop: Rect, width: int, height: int
) -> Optional[Rect]:
    """Map a page-space rectangle into pixel coordinates of a bitmap of ``crop``."""
    visible = rect.intersect(crop)
    if visible.is_empty:
        return None
    sx = width / crop.width
    sy = height / crop.height
    return Rect(
        int((visible.x0 - crop.x0) * sx),
        int((visible.y0 - crop.y0) * sy),
        int(math.ceil((visible.x1 - crop.x0) * sx)),
        int(math.ceil((visible.y1 - crop.y0) * sy)),
    )


def _place(
    slot: _Slot,
    column: int,
    row: int,
    state: ViewportState,
    terminal: TerminalSize,
    highlights: Mapping[int, Sequence[Rect]],
    focus: Optional[Tuple[int, Rect]],
) -> Optional[LayoutEntry]:
    page = slot.page
    placed = Rect(column, row, column + slot.columns, row + slot.rows)
    visible = placed.intersect(Rect(0, 0, terminal.columns, terminal.rows))
    if visible.is_empty:
        return None

    vis_cols = int(visible.width)
    vis_rows = int(visible.height)
    width = vis_cols * terminal.cell_width
    height = vis_rows * terminal.cell_height

    full_page = Rect(0, 0, page.width, page.height)
    if visible == placed:
        crop = None
        area = full_page
    else:
        points_per_col = page.width / slot.columns
        points_per_row = page.height / slot.rows
        area = Rect(
            round((visible.x0 - column) * points_per_col, 3),
            round((visible.y0 - row) * points_per_row, 3),
            round((visible.x1 - column) * points_per_col, 3),
            round((visible.y1 - row) * points_per_row, 3),
        )
        crop = area

    marks = []
    for rect in highlights.get(page.index, ()):
        mapped = _to_bitmap(rect, area, width, height)
        if mapped is not None:
            marks.append(mapped)

    focus_rect = None
    if focus is not None and focus[0] == page.index:
        focus_rect = _to_bitmap(focus[1], area, width, height)

    key = RenderKey(
        page=page.index,
        width=width,
        height=height,
        crop=crop,
        color=state.color,
        version=page.version,
    )
    return LayoutEntry(
        page=page.index,
        rect=ScreenRect(int(visible.x0), int(visible.y0), vis_cols, vis_rows),
        key=key,
        highlights=tuple(marks),
        focus=focus_rect,
    )


def compute(
    state: ViewportState,
    terminal: TerminalSize,
    pages: Sequence[PageDescriptor],
    highlights: Optional[Mapping[int, Sequence[Rect]]] = None,
    focus: Optional[Tuple[int, Rect]] = None,
    prefetch: int = RENDER_BUFFER_PAGES,
) -> LayoutResult:
    """Lay out the pages starting at ``state.page`` inside ``terminal``."""
    if not pages or terminal.columns <= 0 or terminal.rows <= 0:
        return LayoutResult()

    highlights = highlights or {}
    first = min(max(state.page, 0), len(pages) - 1)

    rows: List[List[_Slot]] = [_build_row(pages, first, state, terminal)]
    first_row_rows = max(slot.rows for slot in rows[0])
    max_pan_y = max(0, first_row_rows - terminal.rows)
    pan_y = min(max(state.pan_y, 0), max_pan_y)

    # Wrap rows until the viewport is filled or the document ends.
    filled = first_row_rows - pan_y
    index = first + len(rows[0])
    while index < len(pages) and filled < terminal.rows:
        row = _build_row(pages, index, state, terminal)
        rows.append(row)
        filled += max(slot.rows for slot in row)
        index += len(row)

    widest = max(sum(slot.columns for slot in row) for row in rows)
    max_pan_x = max(0, widest - terminal.columns)
    pan_x = min(max(state.pan_x, 0), max_pan_x)

    offset_y = 0
    if filled < terminal.rows:
        offset_y = (terminal.rows - filled) // 2

    entries: List[LayoutEntry] = []
    top = offset_y - pan_y
    for row in rows:
        row_cols = sum(slot.columns for slot in row)
        row_rows = max(slot.rows for slot in row)
        if row_cols <= terminal.columns:
            left = (terminal.columns - row_cols) // 2
        else:
            left = -pan_x

        ordered = row
        if state.direction is ReadingDirection.RIGHT_TO_LEFT:
            ordered = list(reversed(row))

        column = left
        for slot in ordered:
            entry = _place(
                slot,
                column,
                top + (row_rows - slot.rows) // 2,
                state,
                terminal,
                highlights,
                focus,
            )
            if entry is not None:
                entries.append(entry)
            column += slot.columns
        top += row_rows

    entries.sort(key=lambda entry: entry.page)
    shown = [entry.page for entry in entries]
    last = max(shown) if shown else first

    ahead: Dict[int, RenderKey] = {}
    for distance in range(1, prefetch + 1):
        for neighbour in (last + distance, first - distance):
            if 0 <= neighbour < len(pages) and neighbour not in ahead:
                ahead[neighbour] = _full_key(_slot(pages[neighbour], state, terminal), state, terminal)

    return LayoutResult(
        entries=tuple(entries),
        prefetch=tuple(ahead.values()),
        pan_x=pan_x,
        pan_y=pan_y,
        max_pan_x=max_pan_x,
        max_pan_y=max_pan_y,
        pages_shown=len(set(shown)) or 1,
    )

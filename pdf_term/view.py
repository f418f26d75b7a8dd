# view.py
import curses
import fcntl
import os
import struct
import sys
import termios
from dataclasses import dataclass
from typing import List, Optional, TextIO, Tuple, Union

from pdf_term.config import DEFAULT_CELL_SIZE, INPUT_POLL_INTERVAL, PAN_STEP
from pdf_term.errors import TerminalUnusable
from pdf_term.models import FitMode, ScreenRect, TerminalSize
from pdf_term import viewport as vp

# key bindings
NEXT_PAGE = {ord("l"), curses.KEY_RIGHT}
PREV_PAGE = {ord("h"), curses.KEY_LEFT}
NEXT_SCREEN = {ord("j"), curses.KEY_DOWN, curses.KEY_NPAGE, ord(" ")}
PREV_SCREEN = {ord("k"), curses.KEY_UP, curses.KEY_PPAGE}
ZOOM_IN = {ord("+"), ord("=")}
ZOOM_OUT = {ord("-")}
ZOOM_RESET = {ord("0")}
PAN_LEFT = {ord("H")}
PAN_DOWN = {ord("J")}
PAN_UP = {ord("K")}
PAN_RIGHT = {ord("L")}
FIT_KEYS = {
    ord("w"): FitMode.FIT_WIDTH,
    ord("e"): FitMode.FIT_HEIGHT,
    ord("p"): FitMode.FIT_PAGE,
    ord("a"): FitMode.ACTUAL_SIZE,
}
GOTO = {ord("g")}
SEARCH = {ord("/")}
NEXT_MATCH = {ord("n")}
PREV_MATCH = {ord("N")}
DIRECTION = {ord("r")}
INVERT = {ord("i")}
HELP = {ord("?")}
QUIT = {ord("q"), 27, 3}

ENTER = {10, 13, curses.KEY_ENTER}
BACKSPACE = {8, 127, curses.KEY_BACKSPACE}
ESCAPE = 27

ESC = "\x1b"

HELP_TEXT = """\
l, h, right, left    next / previous page
j, k, down, up       next / previous screen of pages
g <number> Enter     go to page
/ <text> Enter       search
n, N                 next / previous match
+, -, 0              zoom in / out / reset
H, J, K, L           pan left / down / up / right
w, e, p, a           fit width / height / page, actual size
r                    toggle right-to-left
i                    invert colors
?                    show this help
q, Esc               quit"""


# --- Application actions (not viewport commands) ---

@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class Search:
    query: str


@dataclass(frozen=True)
class NextMatch:
    pass


@dataclass(frozen=True)
class PrevMatch:
    pass


@dataclass(frozen=True)
class ToggleDirection:
    pass


@dataclass(frozen=True)
class Resize:
    pass


@dataclass(frozen=True)
class ShowHelp:
    pass


@dataclass(frozen=True)
class HideHelp:
    pass


Action = Union[vp.Command, Quit, Search, NextMatch, PrevMatch, ToggleDirection, Resize, ShowHelp, HideHelp]


class KeyHandler:
    """
    Resolves key codes into actions. ``g`` and ``/`` open a small prompt
    (page number or search text) that is closed by Enter or Esc. ``?`` shows
    the key list until Esc, ``q`` or ``?`` is pressed.
    """

    def __init__(self):
        self.mode: Optional[str] = None
        self.buffer = ""

    @property
    def prompt(self) -> Optional[str]:
        if self.mode == "goto":
            return f"Go to page: {self.buffer}"
        if self.mode == "search":
            return f"/{self.buffer}"
        return None

    def handle(self, key: int) -> Optional[Action]:
        if key == curses.KEY_RESIZE:
            return Resize()
        if self.mode == "help":
            if key == ESCAPE or key in HELP or key == ord("q"):
                self.mode = None
                return HideHelp()
            return None
        if self.mode is not None:
            return self._handle_prompt(key)

        if key in NEXT_PAGE:
            return vp.Scroll(1)
        if key in PREV_PAGE:
            return vp.Scroll(-1)
        if key in NEXT_SCREEN:
            return vp.ScrollScreen(1)
        if key in PREV_SCREEN:
            return vp.ScrollScreen(-1)
        if key in ZOOM_IN:
            return vp.ZoomIn()
        if key in ZOOM_OUT:
            return vp.ZoomOut()
        if key in ZOOM_RESET:
            return vp.ZoomReset()
        if key in PAN_LEFT:
            return vp.Pan(-PAN_STEP, 0)
        if key in PAN_RIGHT:
            return vp.Pan(PAN_STEP, 0)
        if key in PAN_UP:
            return vp.Pan(0, -PAN_STEP)
        if key in PAN_DOWN:
            return vp.Pan(0, PAN_STEP)
        if key in FIT_KEYS:
            return vp.SetFitMode(FIT_KEYS[key])
        if key in NEXT_MATCH:
            return NextMatch()
        if key in PREV_MATCH:
            return PrevMatch()
        if key in DIRECTION:
            return ToggleDirection()
        if key in INVERT:
            return vp.ToggleInvert()
        if key in HELP:
            self.mode = "help"
            return ShowHelp()
        if key in GOTO:
            self.mode, self.buffer = "goto", ""
            return None
        if key in SEARCH:
            self.mode, self.buffer = "search", ""
            return None
        if key in QUIT:
            return Quit()
        return None

    def _handle_prompt(self, key: int) -> Optional[Action]:
        if key == ESCAPE:
            self.mode, self.buffer = None, ""
            return None
        if key in BACKSPACE:
            self.buffer = self.buffer[:-1]
            return None
        if key in ENTER:
            mode, text = self.mode, self.buffer
            self.mode, self.buffer = None, ""
            if mode == "goto":
                return vp.GotoPage(int(text) - 1) if text.isdigit() and int(text) > 0 else None
            return Search(text)
        if 32 <= key < 127:
            char = chr(key)
            if self.mode == "goto" and not char.isdigit():
                return None
            self.buffer += char
        return None


def status_line(filename: str, left: str, right: str, width: int) -> str:
    """Fit ``filename  left ... right`` into ``width`` columns."""
    text = f" {filename} | {left}" if filename else f" {left}"
    room = width - len(right) - 1
    if room <= 0:
        return right[:width]
    return text[:room].ljust(room) + right + " "


def help_box(columns: int, rows: int) -> Tuple[int, int, List[str]]:
    """The framed key list and its top-left cell, centred in a ``columns`` x ``rows`` area."""
    lines = HELP_TEXT.splitlines()
    inner = max(len(line) for line in lines) + 2
    title = " Help "
    box = ["╭─" + title + "─" * (inner - len(title) - 1) + "╮"]
    box += ["│ " + line.ljust(inner - 2) + " │" for line in lines]
    box.append("╰" + "─" * inner + "╯")
    box = [line[:columns] for line in box[:rows]]
    column = max(0, (columns - len(box[0])) // 2) if box else 0
    row = max(0, (rows - len(box)) // 2)
    return column, row, box


def query_terminal_size(fd: int) -> Tuple[int, int, int, int]:
    """(columns, rows, cell width, cell height) of the terminal on ``fd``."""
    try:
        packed = fcntl.ioctl(fd, termios.TIOCGWINSZ, b"\0" * 8)
        rows, columns, xpixel, ypixel = struct.unpack("HHHH", packed)
    except OSError:
        size = os.get_terminal_size(fd)
        columns, rows, xpixel, ypixel = size.columns, size.lines, 0, 0
    cell_w, cell_h = DEFAULT_CELL_SIZE
    if columns and rows and xpixel and ypixel:
        cell_w = max(1, xpixel // columns)
        cell_h = max(1, ypixel // rows)
    return columns, rows, cell_w, cell_h


class TerminalView:
    """
    The terminal user interface: key input and the status line go through
    curses; page images and placeholders are written straight to ``out``
    as escape sequences, since curses cannot draw pixels.
    """

    def __init__(self, stdscr, out: TextIO = None, colors=None):
        self.stdscr = stdscr
        self.out = out or sys.stdout
        self.colors = colors or {}
        self.keys = KeyHandler()
        self._setup_screen()

    def _setup_screen(self):
        curses.curs_set(0)
        try:
            curses.use_default_colors()
        except curses.error:
            pass
        self.stdscr.keypad(True)
        self.stdscr.timeout(int(INPUT_POLL_INTERVAL * 1000))

    def page_area(self) -> TerminalSize:
        """The part of the terminal used for pages (everything but the status line)."""
        columns, rows, cell_w, cell_h = query_terminal_size(self.out.fileno())
        if columns <= 0 or rows <= 1:
            raise TerminalUnusable(f"terminal too small ({columns}x{rows})")
        return TerminalSize(columns, rows - 1, cell_w, cell_h)

    def read_action(self) -> Optional[Action]:
        """Wait up to ``INPUT_POLL_INTERVAL`` for a key and resolve it."""
        key = self.stdscr.getch()
        if key == -1:
            return None
        if key == curses.KEY_RESIZE:
            curses.update_lines_cols()
        return self.keys.handle(key)

    def clear_pages(self, rows: int):
        out = [f"{ESC}[{row + 1};1H{ESC}[2K" for row in range(rows)]
        self.out.write("".join(out))

    def draw_placeholder(self, rect: ScreenRect, label: str):
        r, g, b = self.colors.get("placeholder", (58, 58, 58))
        label = label[: rect.columns]
        label_row = rect.row + rect.rows // 2
        out = [f"{ESC}[48;2;{r};{g};{b}m"]
        for row in range(rect.row, rect.row + rect.rows):
            out.append(f"{ESC}[{row + 1};{rect.column + 1}H")
            if row == label_row:
                pad = rect.columns - len(label)
                out.append(" " * (pad // 2) + label + " " * (pad - pad // 2))
            else:
                out.append(" " * rect.columns)
        out.append(f"{ESC}[0m")
        self.out.write("".join(out))

    def draw_help(self, area: TerminalSize):
        column, row, box = help_box(area.columns, area.rows)
        out = [f"{ESC}[{row + i + 1};{column + 1}H{line}" for i, line in enumerate(box)]
        self.out.write("".join(out))

    def draw_status(self, filename: str, left: str, right: str, message: str = ""):
        height, width = self.stdscr.getmaxyx()
        prompt = self.keys.prompt
        if prompt is not None:
            text = status_line("", prompt, "", width)
        else:
            text = status_line(filename, message or left, right, width)
        try:
            self.stdscr.addnstr(height - 1, 0, text.ljust(width), width - 1, curses.A_REVERSE)
        except curses.error:
            pass
        self.stdscr.noutrefresh()

    def flush(self):
        curses.doupdate()
        self.out.flush()

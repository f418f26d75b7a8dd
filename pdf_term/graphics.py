# graphics.py
"""
Output of page bitmaps to the terminal.

Two backends are provided: the kitty graphics protocol (kitty, WezTerm,
ghostty) which transmits PNG data, and a universal fallback that draws two
pixel rows per cell with the upper half block character and truecolor
escapes.
"""

import base64
import io
import itertools
import os
from abc import ABC, abstractmethod
from typing import Dict, Mapping, Optional, TextIO

from PIL import Image

from pdf_term.models import ScreenRect

ESC = "\x1b"
KITTY_CHUNK_SIZE = 4096
UPPER_HALF_BLOCK = "▀"


def move_cursor(rect: ScreenRect, row_offset: int = 0) -> str:
    return f"{ESC}[{rect.row + row_offset + 1};{rect.column + 1}H"


class GraphicsBackend(ABC):
    name = "base"

    def __init__(self, stream: TextIO):
        self.stream = stream

    @abstractmethod
    def display(self, image: Image.Image, rect: ScreenRect):
        """Draw ``image`` scaled into the cells covered by ``rect``."""

    def clear(self):
        pass

    def flush(self):
        self.stream.flush()


class KittyGraphics(GraphicsBackend):
    """
    Each screen slot shows one image id at a time; drawing into a slot
    again deletes the image it showed before.
    """

    name = "kitty"

    def __init__(self, stream: TextIO):
        super().__init__(stream)
        self._ids = itertools.count(1)
        self._shown: Dict[ScreenRect, int] = {}

    def display(self, image: Image.Image, rect: ScreenRect):
        if rect.columns <= 0 or rect.rows <= 0:
            return
        image_id = next(self._ids)
        previous = self._shown.get(rect)
        self._shown[rect] = image_id
        buf = io.BytesIO()
        image.convert("RGB").save(buf, format="PNG")
        payload = base64.standard_b64encode(buf.getvalue()).decode("ascii")

        out = []
        if previous is not None:
            out.append(f"{ESC}_Ga=d,d=I,i={previous},q=2{ESC}\\")
        out.append(move_cursor(rect))
        chunks = [payload[i:i + KITTY_CHUNK_SIZE] for i in range(0, len(payload), KITTY_CHUNK_SIZE)] or [""]
        for i, chunk in enumerate(chunks):
            more = 1 if i < len(chunks) - 1 else 0
            if i == 0:
                control = f"a=T,f=100,i={image_id},c={rect.columns},r={rect.rows},C=1,q=2,m={more}"
            else:
                control = f"m={more}"
            out.append(f"{ESC}_G{control};{chunk}{ESC}\\")
        self.stream.write("".join(out))

    def clear(self):
        # Delete every image and free its data
        self._shown.clear()
        self.stream.write(f"{ESC}_Ga=d,d=A,q=2{ESC}\\")


class HalfBlockGraphics(GraphicsBackend):
    name = "halfblock"

    def display(self, image: Image.Image, rect: ScreenRect):
        if rect.columns <= 0 or rect.rows <= 0:
            return
        small = image.convert("RGB").resize((rect.columns, rect.rows * 2), Image.BILINEAR)
        px = small.load()
        out = []
        for row in range(rect.rows):
            line = [move_cursor(rect, row)]
            for col in range(rect.columns):
                tr, tg, tb = px[col, row * 2]
                br, bg, bb = px[col, row * 2 + 1]
                line.append(f"{ESC}[38;2;{tr};{tg};{tb};48;2;{br};{bg};{bb}m{UPPER_HALF_BLOCK}")
            line.append(f"{ESC}[0m")
            out.append("".join(line))
        self.stream.write("".join(out))


BACKENDS = {
    KittyGraphics.name: KittyGraphics,
    HalfBlockGraphics.name: HalfBlockGraphics,
}


def supports_kitty(env: Mapping[str, str]) -> bool:
    if "kitty" in env.get("TERM", ""):
        return True
    if env.get("KITTY_WINDOW_ID"):
        return True
    return env.get("TERM_PROGRAM", "").lower() in ("wezterm", "ghostty")


def select_backend(stream: TextIO, name: Optional[str] = None, env: Mapping[str, str] = None) -> GraphicsBackend:
    """Pick a backend by ``name`` or, if not given, from the terminal environment."""
    if name:
        try:
            return BACKENDS[name](stream)
        except KeyError:
            raise ValueError(f"Unknown graphics backend: {name}") from None
    env = os.environ if env is None else env
    if supports_kitty(env):
        return KittyGraphics(stream)
    return HalfBlockGraphics(stream)

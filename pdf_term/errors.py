# errors.py


class ViewerError(Exception):
    """Base class for every error the viewer raises on purpose."""


class TransientIOError(ViewerError):
    """
    The file is temporarily unavailable (missing, locked or half-written).
    Retried on the next file event, never on a timer.
    """


class FatalOpenError(ViewerError):
    """The document cannot be opened at all."""


class EngineFailure(ViewerError):
    """A single page failed to rasterize or to be scanned for text."""

    def __init__(self, page: int, message: str):
        super().__init__(f"page {page + 1}: {message}")
        self.page = page


class RenderCancelled(ViewerError):
    """Set on a render handle whose job was cancelled before it completed."""


class TerminalUnusable(ViewerError):
    """The terminal is not a tty or has no room to draw in."""

# main.py
import argparse
import curses
import logging
import sys

from PIL import ImageColor

from pdf_term import __version__
from pdf_term.app import PdfApplication
from pdf_term.config import THEMES, ViewerSettings
from pdf_term.errors import FatalOpenError, TerminalUnusable, TransientIOError
from pdf_term.graphics import BACKENDS, select_backend
from pdf_term.pdf_model import PDFModel
from pdf_term.view import TerminalView

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_OPEN_FAILED = 1
EXIT_BAD_TERMINAL = 2


def parse_color(value: str):
    """argparse type for colors given as names or hex codes ('white', '#1e1e1e')."""
    try:
        return ImageColor.getrgb(value)[:3]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid color: {value!r}") from None


def parse_args(argv=None) -> argparse.Namespace:
    defaults = ViewerSettings()
    parser = argparse.ArgumentParser(prog="pdf-term", description="View a PDF in the terminal.")
    parser.add_argument("file", help="PDF file to open; it is reloaded when it changes on disk")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-m", "--max-across", type=int, default=defaults.max_across,
                        help="maximum number of pages shown side by side (0 = as many as fit)")
    parser.add_argument("-r", "--right-to-left", action="store_true",
                        help="lay pages out and page through them right to left")
    parser.add_argument("--graphics", choices=sorted(BACKENDS), default=defaults.graphics,
                        help="terminal graphics backend (detected by default)")
    parser.add_argument("--theme", choices=sorted(THEMES), default=defaults.theme)
    parser.add_argument("--fg", type=parse_color, help="color for page text and lines (name or #rrggbb)")
    parser.add_argument("--bg", type=parse_color, help="color for the page background (name or #rrggbb)")
    parser.add_argument("--workers", type=int, default=defaults.workers,
                        help="number of rendering threads")
    parser.add_argument("--prefetch", type=int, default=defaults.prefetch_pages,
                        help="pages to render ahead of and behind the visible ones")
    parser.add_argument("--cache-size", type=int, default=defaults.cache_entries,
                        help="maximum number of rendered pages kept in memory")
    parser.add_argument("--reload-delay", type=float, default=defaults.reload_quiet_period,
                        help="seconds without file changes before reloading")
    parser.add_argument("--log-file", help="write a debug log to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="log at debug level")
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> ViewerSettings:
    return ViewerSettings(
        cache_entries=args.cache_size,
        prefetch_pages=max(0, args.prefetch),
        workers=max(1, args.workers),
        reload_quiet_period=max(0.0, args.reload_delay),
        max_across=max(0, args.max_across),
        right_to_left=args.right_to_left,
        graphics=args.graphics,
        theme=args.theme,
        fg=args.fg,
        bg=args.bg,
    )


def configure_logging(log_file=None, verbose=False):
    # The terminal belongs to the viewer, so logs only ever go to a file.
    if log_file:
        logging.basicConfig(
            filename=log_file,
            level=logging.DEBUG if verbose else logging.INFO,
            format="%(asctime)s %(threadName)s %(name)s %(levelname)s: %(message)s",
            force=True,
        )
    else:
        logging.getLogger().addHandler(logging.NullHandler())


def _run(stdscr, filepath: str, document: PDFModel, settings: ViewerSettings):
    view = TerminalView(stdscr, colors=settings.colors)
    graphics = select_backend(sys.stdout, settings.graphics)
    logger.info("Using %s graphics", graphics.name)
    app = PdfApplication(filepath, settings, document=document, view=view, graphics=graphics)
    app.run()


def main(argv=None) -> int:
    """Main function to run the PDF Viewer application."""
    args = parse_args(argv)
    configure_logging(args.log_file, args.verbose)
    settings = settings_from_args(args)

    if not (sys.stdin.isatty() and sys.stdout.isatty()):
        print("pdf-term: needs an interactive terminal", file=sys.stderr)
        return EXIT_BAD_TERMINAL

    try:
        document = PDFModel.open(args.file)
    except (FatalOpenError, TransientIOError) as e:
        logger.error("Cannot open %s: %s", args.file, e)
        print(f"pdf-term: {e}", file=sys.stderr)
        return EXIT_OPEN_FAILED

    try:
        curses.wrapper(_run, args.file, document, settings)
    except TerminalUnusable as e:
        document.close()
        print(f"pdf-term: {e}", file=sys.stderr)
        return EXIT_BAD_TERMINAL
    except KeyboardInterrupt:
        pass
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())

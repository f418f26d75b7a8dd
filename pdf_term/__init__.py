# __init__.py
"""Terminal PDF viewer with asynchronous rendering and incremental search."""

__version__ = "0.1.0"

"""Glint - language intelligence for editors.

An LSP session client for a single open document plus an incremental
syntax highlight cache for large buffers.
"""

__version__ = "0.1.0"


def __getattr__(name: str):
    """Lazy import of the public components."""
    if name in ("Bus", "BusEvent", "GlobalPath"):
        from . import core
        return getattr(core, name)
    if name in ("LSPSession", "StdioTransport", "SocketTransport", "Transport"):
        from . import lsp
        return getattr(lsp, name)
    if name in ("HighlightCache", "Span", "Tokenizer"):
        from . import highlight
        return getattr(highlight, name)
    if name == "Log":
        from .util.log import Log
        return Log
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "__version__",
    "Bus",
    "BusEvent",
    "GlobalPath",
    "LSPSession",
    "StdioTransport",
    "SocketTransport",
    "Transport",
    "HighlightCache",
    "Span",
    "Tokenizer",
    "Log",
]

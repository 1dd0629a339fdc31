"""Incremental syntax highlighting."""

from .cache import DEFAULT_BATCH_THRESHOLD, HighlightCache, HighlightedLine
from .tokenizer import Span, TokenizeError, Tokenizer

__all__ = [
    "DEFAULT_BATCH_THRESHOLD",
    "HighlightCache",
    "HighlightedLine",
    "Span",
    "TokenizeError",
    "Tokenizer",
]

"""Batch highlighting that runs in a separate worker.

Everything crossing the worker boundary is plain data: the batch goes in as
language id, theme name and ``{line_index: text}``, and comes back as
``{line_index: span_dict}``. The worker builds its own tokenizer, so nothing
mutable is shared with the cache that submitted the batch.
"""

from functools import lru_cache
from typing import Any, Dict, Optional

from .tokenizer import Span, TokenizeError, Tokenizer


@lru_cache(maxsize=8)
def _tokenizer(language_id: str, theme: str) -> Tokenizer:
    return Tokenizer(language_id, theme)


def highlight_batch(language_id: str, theme: str, lines: Dict[int, str]) -> Dict[int, Optional[Dict[str, Any]]]:
    """Tokenize a batch of lines; empty lines map to None.

    A line the lexer fails on comes back as a single unstyled span.
    """
    tokenizer = _tokenizer(language_id, theme)
    results: Dict[int, Optional[Dict[str, Any]]] = {}
    for index, text in lines.items():
        if not text:
            results[index] = None
            continue
        try:
            span = tokenizer.highlight(text)
        except TokenizeError:
            span = Span(text=text)
        results[index] = span.model_dump()
    return results

"""Per-line syntax highlight cache for large documents.

Records are keyed by line index and stamped with the cache generation they
were produced at. A record is served only when both its text and its
generation match, so bumping the generation invalidates everything in O(1)
while explicit removal frees the lines known to have changed. Line shifts
after inserts or deletes are caught by the text comparison even when an old
record survives at a moved index.

Large batches of stale lines are tokenized in a worker (a process pool by
default) and merged back when done; small batches are tokenized inline.
"""

import asyncio
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, Literal, Optional

from ..util.log import Log
from .tokenizer import DEFAULT_THEME, Span, TokenizeError, Tokenizer
from .worker import highlight_batch

log = Log.create({"service": "highlight.cache"})

# Batches this size or larger go to the worker.
DEFAULT_BATCH_THRESHOLD = 50

HighlightPath = Literal["sync", "offload"]


@dataclass
class HighlightedLine:
    """Cached highlight for one line."""
    text: str
    span: Optional[Span]
    generation: int


class HighlightCache:
    """Highlight cache for one document in one language.

    All methods must be called from the owning event loop; there is no
    internal locking.
    """

    def __init__(
        self,
        language_id: str,
        theme: str = DEFAULT_THEME,
        *,
        batch_threshold: int = DEFAULT_BATCH_THRESHOLD,
        executor: Optional[Executor] = None,
        worker: Literal["process", "thread"] = "process",
        on_highlight_complete: Optional[Callable[[], None]] = None,
    ):
        """Create a cache.

        Args:
            language_id: LSP language id used to pick the lexer
            theme: Pygments style name
            batch_threshold: Stale-line count from which batches are offloaded
            executor: Worker for offloaded batches; one is created on demand
                (and shut down by dispose()) when omitted
            worker: Kind of executor to create on demand
            on_highlight_complete: Called after each pre-highlight merge
        """
        self.language_id = language_id
        self.theme = theme
        self.batch_threshold = batch_threshold
        self.on_highlight_complete = on_highlight_complete
        self._tokenizer = Tokenizer(language_id, theme)
        self._cache: Dict[int, HighlightedLine] = {}
        self._dirty_lines: set[int] = set()
        self._generation = 0
        self._executor = executor
        self._owns_executor = False
        self._worker = worker
        self._disposed = False

    @classmethod
    def from_config(cls, language_id: str, config: Any, **kwargs: Any) -> "HighlightCache":
        """Create a cache from a ``HighlightConfig`` section."""
        return cls(
            language_id,
            config.theme,
            batch_threshold=config.batch_threshold,
            worker=config.worker,
            **kwargs,
        )

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def dirty_lines(self) -> FrozenSet[int]:
        return frozenset(self._dirty_lines)

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, index: object) -> bool:
        return index in self._cache

    # -- invalidation --

    def invalidate_all(self) -> None:
        """Forget every line, e.g. after a language switch."""
        self._cache.clear()
        self._generation += 1

    def invalidate_lines(self, lines: Iterable[int]) -> None:
        """Forget specific lines and mark them dirty."""
        for line in lines:
            self._cache.pop(line, None)
            self._dirty_lines.add(line)
        self._generation += 1

    def invalidate_range(self, start: int, end: int) -> None:
        """Forget lines ``start..end`` and every line after ``end``.

        Lines after an insert or delete have moved, so their records no longer
        belong to their index.
        """
        for line in range(start, end + 1):
            self._cache.pop(line, None)
            self._dirty_lines.add(line)
        for line in [key for key in self._cache if key > end]:
            del self._cache[line]
        self._generation += 1

    # -- lookup --

    def _is_valid(self, cached: Optional[HighlightedLine], text: str) -> bool:
        return cached is not None and cached.text == text and cached.generation == self._generation

    def _highlight_line(self, text: str) -> Optional[Span]:
        if not text:
            return None
        try:
            return self._tokenizer.highlight(text)
        except TokenizeError as e:
            log.warn("tokenize failed, rendering plain", {"language": self.language_id, "error": str(e)})
            return Span(text=text)

    def get_line_span(self, index: int, text: str) -> Optional[Span]:
        """Highlighted span for ``text`` at line ``index``; None for empty lines.

        Served from cache when valid, tokenized and stored otherwise.
        """
        cached = self._cache.get(index)
        if self._is_valid(cached, text):
            return cached.span

        span = self._highlight_line(text)
        self._cache[index] = HighlightedLine(text, span, self._generation)
        self._dirty_lines.discard(index)
        return span

    # -- batches --

    def _get_executor(self) -> Executor:
        if self._executor is None:
            if self._worker == "thread":
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="glint-highlight")
            else:
                self._executor = ProcessPoolExecutor(max_workers=1)
            self._owns_executor = True
        return self._executor

    def _store(self, index: int, text: str, span: Optional[Span], generation: int) -> None:
        self._cache[index] = HighlightedLine(text, span, generation)
        if generation == self._generation:
            self._dirty_lines.discard(index)

    async def _offload(self, pending: Dict[int, str]) -> Dict[int, Optional[Span]]:
        loop = asyncio.get_running_loop()
        try:
            results = await loop.run_in_executor(
                self._get_executor(),
                highlight_batch,
                self.language_id,
                self.theme,
                pending,
            )
        except Exception as e:
            log.warn("highlight worker failed, tokenizing inline", {"lines": len(pending), "error": str(e)})
            return {index: self._highlight_line(text) for index, text in pending.items()}

        return {
            index: Span.model_validate(data) if data is not None else None
            for index, data in results.items()
        }

    async def _process(self, pending: Dict[int, str]) -> Optional[HighlightPath]:
        if not pending:
            return None

        generation = self._generation
        if len(pending) < self.batch_threshold:
            for index, text in pending.items():
                self._store(index, text, self._highlight_line(text), generation)
            path: HighlightPath = "sync"
        else:
            with log.time("offloaded highlight batch", {"lines": len(pending)}):
                spans = await self._offload(pending)
            if self._disposed:
                return None
            # Stored at the batch's generation; later invalidations make these stale.
            for index, span in spans.items():
                current = self._cache.get(index)
                if current is not None and current.generation > generation:
                    # Re-highlighted while the batch ran.
                    continue
                self._store(index, pending[index], span, generation)
            path = "offload"

        self._notify_complete()
        return path

    def _notify_complete(self) -> None:
        if self.on_highlight_complete is None:
            return
        try:
            self.on_highlight_complete()
        except Exception as e:
            log.error("highlight complete callback failed", {"error": str(e)})

    async def pre_highlight_lines(
        self,
        start: int,
        end: int,
        get_line_text: Callable[[int], str],
    ) -> Optional[HighlightPath]:
        """Make sure lines ``start..end`` are highlighted, e.g. ahead of scrolling.

        Returns the path taken (``"sync"`` or ``"offload"``), or None when
        every line was already valid. The completion callback fires once per
        call that had work to do.
        """
        pending: Dict[int, str] = {}
        for index in range(start, end + 1):
            text = get_line_text(index)
            if not self._is_valid(self._cache.get(index), text):
                pending[index] = text
        return await self._process(pending)

    async def rehighlight_dirty(
        self,
        get_line_text: Callable[[int], str],
        line_count: int,
    ) -> Optional[HighlightPath]:
        """Re-highlight the dirty lines that still exist in a ``line_count`` document."""
        for index in [line for line in self._dirty_lines if line >= line_count]:
            self._dirty_lines.discard(index)
        pending = {index: get_line_text(index) for index in sorted(self._dirty_lines)}
        return await self._process(pending)

    def dispose(self) -> None:
        """Drop all cached state. The cache must not be used afterwards."""
        self._disposed = True
        self._cache.clear()
        self._dirty_lines.clear()
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
        self._executor = None

"""``glint highlight``: print a file through the highlight cache."""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.text import Text

from ...core.config import ConfigManager
from ...highlight import HighlightCache, Span
from ...lsp.language import language_for_path

console = Console(highlight=False)


def render_line(span: Optional[Span], text: str) -> Text:
    """Convert a cached span tree into a rich Text line."""
    line = Text()
    if span is None:
        line.append(text)
        return line

    def walk(node: Span, inherited: Optional[str]) -> None:
        style = node.style or inherited
        if node.text:
            line.append(node.text, style=style or "")
        for child in node.children:
            walk(child, style)

    walk(span, None)
    return line


async def highlight_file(
    lines: List[str],
    cache: HighlightCache,
    start: int,
    end: int,
) -> List[Text]:
    """Warm the cache for ``start..end`` and render those lines."""
    await cache.pre_highlight_lines(start, end, lambda index: lines[index])
    return [render_line(cache.get_line_span(index, lines[index]), lines[index]) for index in range(start, end + 1)]


def highlight_command(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to highlight"),
    language: Optional[str] = typer.Option(None, "--language", "-l", help="Language id (default: from extension)"),
    theme: Optional[str] = typer.Option(None, "--theme", "-t", help="Pygments style name"),
    start: int = typer.Option(0, "--start", min=0, help="First line (0-based)"),
    end: Optional[int] = typer.Option(None, "--end", min=0, help="Last line (inclusive)"),
    line_numbers: bool = typer.Option(False, "--line-numbers", "-n", help="Prefix line numbers"),
) -> None:
    """Print a file with syntax highlighting."""
    config = ConfigManager.load(str(file.parent)).highlight
    if theme:
        config = config.model_copy(update={"theme": theme})

    lines = file.read_text(encoding="utf-8").split("\n")
    last = len(lines) - 1 if end is None else min(end, len(lines) - 1)
    if start > last:
        raise typer.BadParameter(f"start line {start} is past the end of the file")

    cache = HighlightCache.from_config(language or language_for_path(str(file)), config)
    try:
        rendered = asyncio.run(highlight_file(lines, cache, start, last))
    finally:
        cache.dispose()

    width = len(str(last + 1))
    for offset, text in enumerate(rendered):
        if line_numbers:
            prefix = Text(f"{start + offset + 1:>{width}} ", style="dim")
            console.print(prefix + text, soft_wrap=True)
        else:
            console.print(text, soft_wrap=True)

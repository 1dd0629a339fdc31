"""``glint lsp``: run a single query against a language server."""

import asyncio
import json
import shlex
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import BaseModel

from ...core.config import ConfigError, ConfigManager
from ...lsp import LSPError, LSPSession, Transport
from ...util.error import format_error

app = typer.Typer(help="Run one LSP query against a language server")

QUERIES = {
    "hover": "get_hover",
    "definition": "get_definition",
    "references": "get_references",
    "completions": "get_completions",
}


def _json_default(value: object) -> object:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


async def run_query(
    query: str,
    file: str,
    line: int,
    character: int,
    *,
    command: Optional[str] = None,
    socket: Optional[str] = None,
    language: Optional[str] = None,
) -> Any:
    """Start a session, open ``file``, run one query and tear the session down."""
    target = Path(file).resolve()
    updates: dict[str, Any] = {}
    if command:
        updates.update(command=shlex.split(command), socket=None)
    if socket:
        updates.update(socket=socket, command=None)
    if language:
        updates["language_id"] = language
    config = ConfigManager.load(str(target.parent)).lsp
    if updates:
        config = type(config).model_validate({**config.model_dump(), **updates})

    transport = Transport.from_config(config, cwd=str(target.parent))
    session = LSPSession.from_config(transport, str(target), config)
    try:
        await session.initialize()
        await session.open_document()
        return await getattr(session, QUERIES[query])(line, character)
    finally:
        await session.dispose()


def _query_command(query: str):
    def command(
        file: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to query"),
        line: int = typer.Argument(..., min=0, help="0-based line"),
        character: int = typer.Argument(..., min=0, help="0-based character"),
        server: Optional[str] = typer.Option(None, "--command", "-c", help="Server command line (stdio)"),
        socket: Optional[str] = typer.Option(None, "--socket", "-s", help="Server address host:port"),
        language: Optional[str] = typer.Option(None, "--language", "-l", help="Language id"),
    ) -> None:
        try:
            result = asyncio.run(run_query(
                query,
                str(file),
                line,
                character,
                command=server,
                socket=socket,
                language=language,
            ))
        except (LSPError, ConfigError, ValueError) as e:
            typer.echo(format_error(e) or str(e), err=True)
            raise typer.Exit(1)
        typer.echo(json.dumps(result, indent=2, ensure_ascii=False, default=_json_default))

    command.__doc__ = f"Print {query} at a position as JSON."
    return command


for _name in QUERIES:
    app.command(_name)(_query_command(_name))

"""CLI entry point for Glint."""

from typing import Optional

import typer
from rich.console import Console

from .. import __version__
from ..core.config import ConfigError, ConfigManager
from ..util.log import Log, LogFormat, LogLevel
from .cmd.highlight import highlight_command
from .cmd.lsp import app as lsp_app

app = typer.Typer(
    name="glint",
    help="Glint - language server queries and incremental highlighting",
    no_args_is_help=True,
    add_completion=False,
)
app.add_typer(lsp_app, name="lsp", help="Run one LSP query against a language server")
app.command("highlight")(highlight_command)

console = Console()


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        console.print(f"glint {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Log level: debug, info, warn, error",
    ),
    print_logs: bool = typer.Option(
        False,
        "--print-logs",
        help="Print logs to stderr",
    ),
):
    """Glint - language server queries and incremental highlighting."""
    try:
        config = ConfigManager.load(".")
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    Log.configure_from(config.logging)
    if log_level or print_logs:
        Log.configure(
            level=LogLevel.parse(log_level) if log_level else None,
            format=LogFormat.PRETTY if print_logs else None,
            console=True if print_logs else None,
        )


def cli() -> None:
    """Console script entry point."""
    app()


if __name__ == "__main__":
    cli()

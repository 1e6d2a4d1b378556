"""Shared CLI utilities — Rich console, logging, error handling, parsing helpers."""

from __future__ import annotations

import functools
import logging
import traceback
from typing import Any, Callable

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

console = Console()

# Set by the --verbose flag on the top-level CLI group.
verbose: bool = False


def configure_logging(debug: bool = False) -> None:
    """Route library log records through Rich on the shared console."""
    handler = RichHandler(console=console, show_path=False, rich_tracebacks=debug)
    root = logging.getLogger("hemocount")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def error_handler(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator wrapping CLI commands with standard error handling.

    Catches HemocountError (exit 1) and unexpected exceptions (exit 2).
    With --verbose, unexpected errors include the full traceback.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        from hemocount.core.exceptions import HemocountError

        try:
            return func(*args, **kwargs)
        except SystemExit:
            raise
        except (click.ClickException, click.exceptions.Exit):
            raise
        except HemocountError as e:
            console.print(f"[red]Error:[/red] {e}")
            raise SystemExit(1)
        except Exception as e:
            if verbose:
                console.print(f"[red]Internal error:[/red] {e}")
                console.print(traceback.format_exc())
            else:
                console.print(
                    f"[red]Internal error:[/red] {type(e).__name__}: {e}\n"
                    "[dim]Use --verbose for the full traceback.[/dim]"
                )
            raise SystemExit(2)

    return wrapper


def make_progress() -> Progress:
    """Create a Rich progress bar for CLI operations."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    )


def parse_squares(value: str) -> tuple[int, ...]:
    """Parse a comma-separated list of square indices, e.g. ``"0,2,6,8"``.

    Raises:
        click.BadParameter: If an entry is not a non-negative integer.
    """
    squares = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit():
            raise click.BadParameter(f"not a square index: {part!r}", param_hint="--squares")
        squares.append(int(part))
    if not squares:
        raise click.BadParameter("at least one square is required", param_hint="--squares")
    return tuple(squares)

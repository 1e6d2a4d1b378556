"""hemocount init-config — write a settings file with the default values."""

from __future__ import annotations

from pathlib import Path

import click

from hemocount.cli.utils import console, error_handler


@click.command("init-config")
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--overwrite", is_flag=True, help="Overwrite the file if it exists.")
@error_handler
def init_config(path: str, overwrite: bool) -> None:
    """Write default counter settings to PATH as YAML."""
    from hemocount.config import CounterSettings, settings_to_yaml

    out_path = Path(path).expanduser()
    if out_path.exists() and not overwrite:
        console.print(
            f"[red]Error:[/red] File already exists: {out_path}\n"
            "Use --overwrite to replace it."
        )
        raise SystemExit(1)

    settings_to_yaml(CounterSettings(), out_path)
    console.print(f"[green]Wrote default settings to {out_path}[/green]")

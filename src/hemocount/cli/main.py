"""hemocount CLI — top-level Click group."""

from __future__ import annotations

import click


@click.group()
@click.version_option(package_name="hemocount")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging and full tracebacks on errors.")
def cli(verbose: bool) -> None:
    """hemocount — hemocytometer cell counting and trypan-blue viability."""
    from hemocount.cli import utils

    utils.verbose = verbose
    utils.configure_logging(debug=verbose)


def _register_commands() -> None:
    """Attach the subcommands; each defers its heavy imports to run time."""
    from hemocount.cli.count import count
    from hemocount.cli.init_config import init_config
    from hemocount.cli.seed import seed

    cli.add_command(count)
    cli.add_command(init_config)
    cli.add_command(seed)


_register_commands()

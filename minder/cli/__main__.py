"""Main file for minder CLI."""

import logging
from importlib import metadata

import click

from minder.config import DEFAULT_CONFIG_PATH

from .context import CliContext
from .logs import logs
from .run import run

LOG_LEVELS = ["error", "warning", "info", "debug"]

_LOGGER = logging.getLogger(__name__)


@click.group()
@click.option("--log-level", type=click.Choice(LOG_LEVELS), default="warning")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=DEFAULT_CONFIG_PATH,
    envvar="MINDER_CONFIG",
    show_default=True,
    help="JSON configuration file",
)
@click.pass_context
def cli(ctx: click.Context, log_level: str, config_path: str) -> None:
    """Zone monitoring alarm engine."""
    logging.getLogger().setLevel(getattr(logging, log_level.upper()))
    ctx.obj = CliContext(config_path=config_path)
    _LOGGER.debug("minder %s using config %s", get_version(), config_path)


@cli.command()
def version() -> None:
    """Print the installed minder version."""
    print(get_version())  # noqa: T201 # Valid CLI print


def get_version() -> str:
    """Get the version of the minder package."""
    return metadata.version("minder")


cli.add_command(run)
cli.add_command(logs)

if __name__ == "__main__":
    cli()

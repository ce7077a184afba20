"""Shared state handed from the minder CLI group to its commands."""

from dataclasses import dataclass

import click

from minder.config import Config, load_config
from minder.errors import ConfigError


@dataclass
class CliContext:
    """Options given to the CLI group which every command needs."""

    config_path: str

    def load_config(self) -> Config:
        """Load the configuration, reporting problems as a CLI error."""
        try:
            return load_config(self.config_path)
        except ConfigError as e:
            raise click.ClickException(str(e)) from e


pass_cli_context = click.make_pass_decorator(CliContext)

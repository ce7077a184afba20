"""Provide the 'logs' minder CLI command."""

import click

from minder.audit import AuditLog

from .context import CliContext, pass_cli_context


@click.command(help="Print the most recent events from the event log")
@click.option("--lines", type=int, default=AuditLog.DEFAULT_TAIL_LINES)
@pass_cli_context
def logs(cli_context: CliContext, lines: int) -> None:
    """Add the 'logs' CLI command which prints the tail of the event log."""
    config = cli_context.load_config()
    if config.log_file is None:
        msg = "No log_file configured"
        raise click.ClickException(msg)

    for line in AuditLog(config.log_file).tail(lines):
        print(line)  # noqa: T201 # Valid CLI print

"""Provide the 'run' minder CLI command."""

import logging

import click

from minder.alert import build_channels
from minder.audit import AuditLog
from minder.config import ConfigStore
from minder.engine import Engine
from minder.sensor import GpioSensor, Sensor, SimulatedSensor

from .console import Console
from .context import CliContext, pass_cli_context

_LOGGER = logging.getLogger(__name__)

logging.basicConfig(
    format="%(asctime)s.%(msecs)03d %(threadName)-25s %(levelname)-8s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


@click.command(help="Run the alarm engine")
@click.option("--simulate/--no-simulate", help="Use simulated sensors instead of GPIO")
@click.option("--interactive/--no-interactive", default=True)
@pass_cli_context
def run(cli_context: CliContext, *, simulate: bool, interactive: bool) -> None:
    """Add the 'run' CLI command which runs the engine until quit."""
    config = cli_context.load_config()

    sensor: Sensor = SimulatedSensor() if simulate else GpioSensor()
    try:
        sensor.setup()
    except ImportError as e:
        msg = "GPIO support requires the 'gpio' extra (gpiozero) - or use --simulate"
        raise click.ClickException(msg) from e

    audit = AuditLog(config.log_file)
    engine = Engine(
        ConfigStore(config),
        sensor,
        channels=build_channels(config.alerts, audit),
        audit=audit,
    )
    _LOGGER.info(
        "Starting with %s zones, profiles %s",
        len(config.zones),
        [p.name for p in config.arm_profiles],
    )
    console = Console(engine, sensor)
    try:
        console.start(interactive=interactive)
        if not interactive:
            console.wait()
    except KeyboardInterrupt:
        _LOGGER.info("Interrupted - shutting down")
        console.stop()
    finally:
        sensor.close()

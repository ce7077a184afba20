"""Implements an interactive operator console for a running alarm engine."""

import asyncio
import concurrent.futures
import logging
import threading

from minder.engine import Engine
from minder.errors import MinderError
from minder.sensor import Sensor, SimulatedSensor

_LOGGER = logging.getLogger(__name__)

HIGH_LEVELS = ("1", "H", "HIGH", "ON")
LOW_LEVELS = ("0", "L", "LOW", "OFF")


class Console:
    """
    Serves operator commands read from stdin.

    The engine poll loop runs on a background asyncio event loop.
    """

    engine: Engine
    sensor: Sensor
    loop: asyncio.AbstractEventLoop
    _loop_thread: threading.Thread
    _run_future: concurrent.futures.Future[None] | None

    DEFAULT_LOG_LINES = 20

    def __init__(self, engine: Engine, sensor: Sensor) -> None:
        """Create a console for engine, reading zones from sensor."""
        self.engine = engine
        self.sensor = sensor
        self.loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self.loop.run_forever, name="asyncio event loop"
        )
        self._run_future = None

    def start(self, *, interactive: bool = True) -> None:
        """Start the poll loop, then serve commands if interactive."""
        self._loop_thread.start()
        self._run_future = asyncio.run_coroutine_threadsafe(
            self.engine.run(), self.loop
        )

        if interactive:
            while True:
                try:
                    command = input("Command: ")
                except EOFError:
                    _LOGGER.debug("End of input - stopping")
                    self.stop()
                    break
                if not self.interactive_command(command):
                    _LOGGER.debug("Stopping interactive commands")
                    break

    def wait(self) -> None:
        """Block until the poll loop ends."""
        if self._run_future is not None:
            self._run_future.result()

    def interactive_command(self, command: str) -> bool:  # noqa: PLR0912 # One branch per command
        """Handle an operator command. Returns False once the console should exit."""
        verb, _, arg = command.strip().partition(" ")
        verb = verb.upper()
        arg = arg.strip()
        try:
            if verb == "A":
                state = self.engine.arm(arg, user="console")
                print(f"Mode: {state.name}")  # noqa: T201 # Valid CLI print
            elif verb == "D":
                self.engine.disarm(user="console")
                print("Mode: Disarmed")  # noqa: T201 # Valid CLI print
            elif verb == "T":
                delivered = asyncio.run_coroutine_threadsafe(
                    self.engine.trigger_manually(int(arg), user="console"), self.loop
                ).result()
                result = "triggered" if delivered else "ignored (latched or disabled)"
                print(f"Zone {arg} {result}")  # noqa: T201 # Valid CLI print
            elif verb == "S":
                self._print_status()
            elif verb == "P":
                self._set_pin(arg)
            elif verb == "L":
                lines = int(arg) if arg else self.DEFAULT_LOG_LINES
                for line in self.engine.audit.tail(lines):
                    print(line)  # noqa: T201 # Valid CLI print
            elif verb == "Q":
                self.stop()
                return False
            else:
                self._print_help()
        except MinderError as e:
            print(f"Error: {e}")  # noqa: T201 # Valid CLI print
        except ValueError as e:
            print(f"Invalid argument: {e}")  # noqa: T201 # Valid CLI print

        return True

    def _print_status(self) -> None:
        status = self.engine.snapshot()
        print(f"Mode: {status.state.name}")  # noqa: T201 # Valid CLI print
        for zone_id, latched in status.latched.items():
            print(  # noqa: T201 # Valid CLI print
                f"  Zone {zone_id}: {'TRIGGERED' if latched else 'ok'}"
            )

    def _set_pin(self, arg: str) -> None:
        if not isinstance(self.sensor, SimulatedSensor):
            print("Pin levels can only be set with --simulate")  # noqa: T201 # Valid CLI print
            return
        pin, _, level = arg.partition(" ")
        level = level.strip().upper()
        if level not in HIGH_LEVELS + LOW_LEVELS:
            msg = f"level must be one of {HIGH_LEVELS + LOW_LEVELS}"
            raise ValueError(msg)
        self.sensor.set_level(int(pin), level in HIGH_LEVELS)
        print(f"Pin {int(pin)} set {'high' if level in HIGH_LEVELS else 'low'}")  # noqa: T201 # Valid CLI print

    @staticmethod
    def _print_help() -> None:
        print("Commands:")  # noqa: T201 # Valid CLI print
        print("  A <profile>   : Arm (or TestSoft / TestWiring)")  # noqa: T201 # Valid CLI print
        print("  D             : Disarm")  # noqa: T201 # Valid CLI print
        print("  T <zone>      : Trigger zone manually (TestSoft)")  # noqa: T201 # Valid CLI print
        print("  S             : Status")  # noqa: T201 # Valid CLI print
        print("  P <pin> <0|1> : Set simulated pin level")  # noqa: T201 # Valid CLI print
        print("  L [lines]     : Show the event log")  # noqa: T201 # Valid CLI print
        print("  Q             : Quit")  # noqa: T201 # Valid CLI print

    def stop(self) -> None:
        """Stop the poll loop and the background event loop."""
        _LOGGER.debug("Stopping Console")
        if not self._loop_thread.is_alive():
            return
        asyncio.run_coroutine_threadsafe(self.engine.close(), self.loop).result()
        self.wait()
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._loop_thread.join()
        self.loop.close()

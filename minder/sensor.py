"""Provides the sensor read capability used by the alarm engine."""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any

_LOGGER = logging.getLogger(__name__)


class Sensor(ABC):
    """
    Reads the logic level of a zone input pin.

    Implementations must be fast and non-blocking. An unreadable pin reports
    a stable default level instead of raising.
    """

    def setup(self) -> None:  # noqa: B027 # Optional hook
        """Prepare the underlying driver before the first read."""

    def close(self) -> None:  # noqa: B027 # Optional hook
        """Release any resources held by the driver."""

    @abstractmethod
    def read_level(self, pin: int) -> bool:
        """Return True if the pin is high."""


class StubSensor(Sensor):
    """Sensor for hosts without GPIO hardware - every pin reads low."""

    def read_level(self, pin: int) -> bool:
        """Return False for every pin."""
        return False


class SimulatedSensor(Sensor):
    """Deterministic sensor whose pin levels are set by the caller."""

    def __init__(
        self, levels: dict[int, bool] | None = None, *, default: bool = False
    ) -> None:
        """Create a simulated sensor with optional initial pin levels."""
        self._lock = threading.Lock()
        self._levels = dict(levels or {})
        self._default = default
        self.reads = 0

    def set_level(self, pin: int, level: bool) -> None:  # noqa: FBT001 # Level is a plain bool reading
        """Set the level reported for a pin."""
        _LOGGER.debug("Simulated pin %s set to %s", pin, level)
        with self._lock:
            self._levels[pin] = level

    def read_level(self, pin: int) -> bool:
        """Return the level last set for the pin, or the default."""
        with self._lock:
            self.reads += 1
            return self._levels.get(pin, self._default)


class GpioSensor(Sensor):
    """
    Reads BCM-numbered Raspberry Pi pins through gpiozero.

    Requires the optional ``gpio`` extra. Pins are opened lazily on their
    first read; a pin which cannot be opened reads low.
    """

    def __init__(self, *, pull_up: bool | None = None) -> None:
        """Create a GPIO sensor; pull_up=None leaves the pins floating."""
        self._pull_up = pull_up
        self._devices: dict[int, Any] = {}
        self._failed: set[int] = set()
        self._lock = threading.Lock()

    def setup(self) -> None:
        """Check that gpiozero is importable."""
        import gpiozero  # noqa: F401, PLC0415 # Optional dependency

    def _device(self, pin: int) -> Any:
        from gpiozero import DigitalInputDevice  # noqa: PLC0415 # Optional dependency
        from gpiozero.exc import GPIOZeroError  # noqa: PLC0415 # Optional dependency

        with self._lock:
            if pin in self._failed:
                return None
            device = self._devices.get(pin)
            if device is None:
                try:
                    device = DigitalInputDevice(
                        pin,
                        pull_up=self._pull_up,
                        active_state=True if self._pull_up is None else None,
                    )
                except GPIOZeroError:
                    _LOGGER.warning("Cannot open GPIO%s - reading low", pin)
                    self._failed.add(pin)
                    return None
                self._devices[pin] = device
            return device

    def read_level(self, pin: int) -> bool:
        """Return True if the pin is high."""
        device = self._device(pin)
        if device is None:
            return False
        return bool(device.pin.state)

    def close(self) -> None:
        """Close every opened pin."""
        with self._lock:
            for device in self._devices.values():
                device.close()
            self._devices.clear()

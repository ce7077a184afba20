"""Module file for minder."""

from .alert import AlertChannel, EmailChannel, LogChannel, build_channels
from .audit import AuditLog
from .config import AlertConfig, Config, ConfigProvider, ConfigStore, load_config
from .engine import Engine, Mode, OperatingState, Status
from .errors import (
    ChannelDeliveryError,
    ConfigError,
    MinderError,
    NotInTestSoftModeError,
    UnknownProfileError,
    UnknownZoneError,
)
from .sensor import GpioSensor, Sensor, SimulatedSensor, StubSensor
from .zone import ArmProfile, SensorKind, WiringMode, Zone, activated

__all__ = [
    "AlertChannel",
    "AlertConfig",
    "ArmProfile",
    "AuditLog",
    "ChannelDeliveryError",
    "Config",
    "ConfigError",
    "ConfigProvider",
    "ConfigStore",
    "EmailChannel",
    "Engine",
    "GpioSensor",
    "LogChannel",
    "MinderError",
    "Mode",
    "NotInTestSoftModeError",
    "OperatingState",
    "SensorKind",
    "Sensor",
    "SimulatedSensor",
    "Status",
    "StubSensor",
    "UnknownProfileError",
    "UnknownZoneError",
    "WiringMode",
    "Zone",
    "activated",
    "build_channels",
    "load_config",
]
__version__ = "0.0.0-dev"

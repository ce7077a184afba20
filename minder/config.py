"""Provides the configuration model and a read-only provider for the engine."""

import json
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, StrictBool, ValidationError, field_validator

from .errors import ConfigError
from .zone import ArmProfile, SensorKind, WiringMode, Zone

_LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_LOG_FILE = "events.log"
DEFAULT_POLL_INTERVAL = 0.2
DEFAULT_SEND_TIMEOUT = 30.0
DEFAULT_SMTP_PORT = 587


class AlertConfig(BaseModel):
    """Settings for a single alert channel."""

    model_config = {"frozen": True, "extra": "ignore", "populate_by_name": True}

    type: str = ""
    smtp_server: str = ""
    smtp_port: int = Field(default=DEFAULT_SMTP_PORT, gt=0, le=65535)
    username: str = ""
    password: str = ""
    from_addr: str = Field(default="", alias="from")
    to: str = ""
    subject: str = ""
    retries: int = Field(
        default=0,
        description="Extra delivery attempts after the first one fails",
        ge=0,
    )

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("smtp_port", mode="before")
    @classmethod
    def _default_port(cls, value: Any) -> Any:
        # 0 and null mean "use the submission port"
        if value is None or (isinstance(value, int) and value == 0):
            return DEFAULT_SMTP_PORT
        return value


class ZoneSettings(BaseModel):
    """A zone entry of the configuration file."""

    model_config = {"frozen": True, "extra": "ignore"}

    id: int
    name: str = ""
    pin: int = Field(ge=0)
    type: SensorKind = SensorKind.CONTACT
    enabled: StrictBool = True
    mode: WiringMode = WiringMode.NORMALLY_OPEN

    @field_validator("type", mode="before")
    @classmethod
    def _parse_kind(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return SensorKind.parse(value)
        return value

    @field_validator("mode", mode="before")
    @classmethod
    def _parse_wiring(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return WiringMode.parse(value)
        return value

    def to_zone(self) -> Zone:
        """Convert to the engine's Zone."""
        return Zone(
            id=self.id,
            name=self.name,
            pin=self.pin,
            kind=self.type,
            enabled=self.enabled,
            wiring=self.mode,
        )


class ArmModeSettings(BaseModel):
    """An arm profile entry of the configuration file."""

    model_config = {"frozen": True, "extra": "ignore"}

    name: str
    active_zones: list[int] | None = None

    def to_profile(self) -> ArmProfile:
        """Convert to the engine's ArmProfile."""
        return ArmProfile(name=self.name, zone_ids=tuple(self.active_zones or ()))


class ConfigDocument(BaseModel):
    """
    The JSON configuration file.

    Unknown top-level keys are allowed and kept, so that settings owned by
    other components (users, TLS, HTTP port) survive a reload.
    """

    model_config = {"frozen": True, "extra": "allow"}

    zones: list[ZoneSettings] | None = None
    arm_modes: list[ArmModeSettings] | None = None
    alerts: list[AlertConfig] | None = None
    log_file: str | None = None
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    send_timeout: float = Field(default=DEFAULT_SEND_TIMEOUT, gt=0)


@dataclass(frozen=True)
class Config:
    """Point-in-time view of the zones, arm profiles and alert settings."""

    zones: tuple[Zone, ...] = ()
    arm_profiles: tuple[ArmProfile, ...] = ()
    alerts: tuple[AlertConfig, ...] = ()
    log_file: str | None = DEFAULT_LOG_FILE
    poll_interval: float = DEFAULT_POLL_INTERVAL
    send_timeout: float = DEFAULT_SEND_TIMEOUT
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    def find_zone(self, zone_id: int) -> Zone | None:
        """Return the zone with the given ID, if configured."""
        return next((z for z in self.zones if z.id == zone_id), None)

    def find_profile(self, name: str) -> ArmProfile | None:
        """Return the arm profile matching name (case-insensitive)."""
        return next((p for p in self.arm_profiles if p.matches(name)), None)

    @staticmethod
    def default() -> "Config":
        """Return the configuration used when no file exists yet."""
        return Config(
            arm_profiles=(ArmProfile("Away"), ArmProfile("Home")),
            alerts=(AlertConfig(type="log"),),
        )

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Config":
        """
        Create a Config from its JSON representation.

        :raises ConfigError: if the data does not validate
        """
        try:
            document = ConfigDocument.model_validate(data)
        except ValidationError as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigError(msg) from e

        return Config(
            zones=tuple(z.to_zone() for z in document.zones or ()),
            arm_profiles=tuple(p.to_profile() for p in document.arm_modes or ()),
            alerts=tuple(document.alerts or ()),
            log_file=document.log_file or None,
            poll_interval=document.poll_interval,
            send_timeout=document.send_timeout,
            extra=dict(document.model_extra or {}),
        )


def _resolve_log_file(config: Config, base: Path) -> Config:
    if config.log_file is None or Path(config.log_file).is_absolute():
        return config
    return replace(config, log_file=str(base / config.log_file))


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> Config:
    """
    Load the JSON configuration file at path.

    A missing file yields Config.default(); the engine never writes
    configuration, so the default is not persisted here. A relative
    log_file is taken relative to the directory holding the file.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        _LOGGER.warning("Config file %s not found - using defaults", path)
        return _resolve_log_file(Config.default(), path.parent)
    except OSError as e:
        msg = f"Unable to read config {path}: {e}"
        raise ConfigError(msg) from e

    try:
        data = json.loads(text)
    except ValueError as e:
        msg = f"Invalid JSON in {path}: {e}"
        raise ConfigError(msg) from e
    if not isinstance(data, dict):
        msg = f"Invalid configuration in {path}: expected a JSON object"
        raise ConfigError(msg)

    config = _resolve_log_file(Config.from_dict(data), path.parent)
    _LOGGER.debug(
        "Loaded %s zones, %s arm profiles, %s alerts from %s",
        len(config.zones),
        len(config.arm_profiles),
        len(config.alerts),
        path,
    )
    return config


class ConfigProvider(ABC):
    """Read-only, point-in-time access to the current configuration."""

    @abstractmethod
    def get(self) -> Config:
        """Return the current configuration."""


class ConfigStore(ConfigProvider):
    """
    Holds the current configuration in memory.

    The control surface swaps in edited configurations with replace(); the
    engine only ever calls get().
    """

    def __init__(self, config: Config | None = None) -> None:
        """Create a store holding config (defaults if None)."""
        self._lock = threading.Lock()
        self._config = config if config is not None else Config.default()

    def get(self) -> Config:
        """Return the current configuration."""
        with self._lock:
            return self._config

    def replace(self, config: Config) -> None:
        """Swap in a new configuration."""
        _LOGGER.debug("Replacing configuration")
        with self._lock:
            self._config = config

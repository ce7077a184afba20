"""Zone and arm profile definitions, plus the zone trigger interpreter."""

from dataclasses import dataclass, field
from enum import Enum


class SensorKind(Enum):
    """The kind of sensor wired to a zone."""

    CONTACT = "contact"
    MOTION = "motion"

    @classmethod
    def parse(cls, value: str | None) -> "SensorKind":
        """Convert a configuration string into a SensorKind."""
        text = (value or "").strip().lower()
        if text in ("pir", "motion"):
            return cls.MOTION
        if text in ("", "contact"):
            return cls.CONTACT
        msg = f"Unknown sensor kind: {value}"
        raise ValueError(msg)


class WiringMode(Enum):
    """How the sensor circuit of a zone is wired."""

    NORMALLY_OPEN = "NO"
    NORMALLY_CLOSED = "NC"
    END_OF_LINE = "EOL"

    @classmethod
    def parse(cls, value: "WiringMode | str | None") -> "WiringMode":
        """
        Convert a configuration string into a WiringMode.

        Unrecognised or empty values fall back to NORMALLY_OPEN.
        """
        if isinstance(value, WiringMode):
            return value
        try:
            return cls((value or "").strip().upper())
        except ValueError:
            return cls.NORMALLY_OPEN


@dataclass(frozen=True)
class Zone:
    """A monitored sensor input."""

    id: int
    name: str
    pin: int
    kind: SensorKind = SensorKind.CONTACT
    enabled: bool = True
    wiring: WiringMode = WiringMode.NORMALLY_OPEN


@dataclass(frozen=True)
class ArmProfile:
    """A named set of zones which are monitored while the profile is armed."""

    name: str
    zone_ids: tuple[int, ...] = field(default_factory=tuple)

    def matches(self, name: str) -> bool:
        """Return True if name selects this profile (case-insensitive)."""
        return self.name.strip().casefold() == name.strip().casefold()


def activated(raw_level: bool, wiring: WiringMode | str | None) -> bool:  # noqa: FBT001 # Level is a plain bool reading
    """
    Interpret a raw sensor level according to the zone wiring.

    NC circuits activate when the level is low (circuit broken), NO circuits
    when it is high. EOL is treated like NO: the tamper band of a resistive
    end-of-line circuit is not distinguished.
    """
    if WiringMode.parse(wiring) is WiringMode.NORMALLY_CLOSED:
        return not raw_level
    return raw_level

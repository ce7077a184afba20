"""Exceptions raised by the minder alarm engine and its collaborators."""


class MinderError(Exception):
    """Base class for all minder errors."""


class UnknownProfileError(MinderError):
    """Arm requested with a name matching no profile or built-in test mode."""


class NotInTestSoftModeError(MinderError):
    """Manual trigger attempted while the engine is not in TestSoft mode."""


class UnknownZoneError(MinderError):
    """A zone ID does not match any configured zone."""


class ChannelDeliveryError(MinderError):
    """An alert channel failed to deliver a notification."""

    def __init__(self, channel: str, cause: str) -> None:
        """Create a delivery error for a named channel."""
        super().__init__(f"{channel}: {cause}")
        self.channel = channel
        self.cause = cause


class ConfigError(MinderError):
    """The configuration file could not be read or is invalid."""

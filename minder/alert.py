"""Provides the pluggable alert channels invoked when a zone latches."""

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from email.message import EmailMessage

from justbackoff import Backoff

from .audit import AuditLog
from .config import AlertConfig
from .errors import ChannelDeliveryError
from .zone import Zone

_LOGGER = logging.getLogger(__name__)


class AlertChannel(ABC):
    """
    A notification sink for latched zones.

    send() signals failure by raising; the exception text is the
    human-readable cause recorded in the audit trail. Any retry policy
    belongs to the channel itself.
    """

    name: str

    @abstractmethod
    async def send(self, zone: Zone) -> None:
        """Deliver a notification that zone has been triggered."""


class LogChannel(AlertChannel):
    """Writes the alert to the audit trail."""

    name = "log"

    def __init__(self, audit: AuditLog) -> None:
        """Create a log channel writing to audit."""
        self._audit = audit

    async def send(self, zone: Zone) -> None:
        """Record the triggered zone."""
        self._audit.record("alert: zone %d (%s) triggered", zone.id, zone.name)


class EmailChannel(AlertChannel):
    """Sends a plain-text email over SMTP."""

    name = "email"

    DEFAULT_SUBJECT = "Minder alert"
    SMTP_TIMEOUT = 20.0

    def __init__(
        self,
        settings: AlertConfig,
        *,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP,
    ) -> None:
        """Create an email channel from its alert settings."""
        if not settings.smtp_server or not settings.to:
            msg = "Email alerts require smtp_server and to"
            raise ValueError(msg)
        self._settings = settings
        self._smtp_factory = smtp_factory

    def build_message(self, zone: Zone) -> EmailMessage:
        """Compose the notification email for zone."""
        message = EmailMessage()
        message["From"] = self._settings.from_addr or self._settings.username
        message["To"] = self._settings.to
        message["Subject"] = self._settings.subject or self.DEFAULT_SUBJECT
        message.set_content(f"Zone {zone.name} (ID {zone.id}) has been triggered")
        return message

    def _deliver(self, message: EmailMessage) -> None:
        """Send message - blocking, runs in a worker thread."""
        settings = self._settings
        with self._smtp_factory(
            settings.smtp_server, settings.smtp_port, timeout=self.SMTP_TIMEOUT
        ) as smtp:
            smtp.ehlo()
            if smtp.has_extn("starttls"):
                smtp.starttls()
                smtp.ehlo()
            if settings.username:
                smtp.login(settings.username, settings.password)
            smtp.send_message(message)

    async def send(self, zone: Zone) -> None:
        """Send the email, retrying with backoff up to the configured count."""
        message = self.build_message(zone)
        backoff = Backoff()
        attempts = max(self._settings.retries, 0) + 1
        for attempt in range(1, attempts + 1):
            try:
                await asyncio.to_thread(self._deliver, message)
            except (smtplib.SMTPException, OSError) as e:
                if attempt == attempts:
                    raise ChannelDeliveryError(self.name, str(e)) from e
                delay = backoff.duration()
                _LOGGER.warning(
                    "Email attempt %s/%s failed: %s - retrying in %s",
                    attempt,
                    attempts,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
            else:
                _LOGGER.debug("Email sent for zone %s to %s", zone.id, message["To"])
                return


def build_channels(
    alerts: Iterable[AlertConfig], audit: AuditLog
) -> list[AlertChannel]:
    """
    Create the alert channels named by the configuration, in order.

    Unknown or unusable entries are skipped. If nothing usable remains, a
    single LogChannel is returned so that an audit trail always exists.
    """
    channels: list[AlertChannel] = []
    for settings in alerts:
        if settings.type == "log":
            channels.append(LogChannel(audit))
        elif settings.type == "email":
            try:
                channels.append(EmailChannel(settings))
            except ValueError as e:
                _LOGGER.warning("Skipping email alert: %s", e)
        else:
            _LOGGER.warning("Skipping unknown alert type %r", settings.type)

    if not channels:
        channels.append(LogChannel(audit))
    _LOGGER.debug("Alert channels: %s", [c.name for c in channels])
    return channels

"""Provides the alarm engine: operating state, sensor polling, latching and alerts."""

import asyncio
import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from .alert import AlertChannel, LogChannel
from .audit import AuditLog
from .config import Config, ConfigProvider
from .errors import (
    ChannelDeliveryError,
    NotInTestSoftModeError,
    UnknownProfileError,
    UnknownZoneError,
)
from .sensor import Sensor
from .zone import Zone, activated

_LOGGER = logging.getLogger(__name__)


class Mode(Enum):
    """The kinds of operating state."""

    DISARMED = "Disarmed"
    ARMED = "Armed"
    TEST_SOFT = "TestSoft"
    TEST_WIRING = "TestWiring"


@dataclass(frozen=True)
class OperatingState:
    """The current operating state. profile is only set when ARMED."""

    mode: Mode
    profile: str | None = None

    @property
    def name(self) -> str:
        """Display name - the armed profile name, or the mode name."""
        if self.mode is Mode.ARMED and self.profile is not None:
            return self.profile
        return self.mode.value


DISARMED = OperatingState(Mode.DISARMED)

# Built-in diagnostic modes, keyed by their lower-case, space-free names
TEST_MODES = {
    "testsoft": Mode.TEST_SOFT,
    "testwiring": Mode.TEST_WIRING,
}


@dataclass(frozen=True)
class Status:
    """Consistent snapshot of the operating state and the zone latches."""

    state: OperatingState
    latched: dict[int, bool] = field(default_factory=dict)

    @property
    def triggered(self) -> list[int]:
        """IDs of the zones currently latched."""
        return [zone_id for zone_id, is_set in self.latched.items() if is_set]


class Engine:
    """
    The alarm engine.

    Owns the operating state and the latch set, runs the polling loop and
    fans latched zones out to the alert channels. The state and the latches
    are guarded by a single lock which is never held across sensor reads or
    alert delivery, so the control entry points may be called from any
    thread while run() is active on the event loop.
    """

    def __init__(  # noqa: PLR0913 # Collaborators are injected explicitly
        self,
        config: ConfigProvider,
        sensor: Sensor,
        *,
        channels: Iterable[AlertChannel] | None = None,
        audit: AuditLog | None = None,
        poll_interval: float | None = None,
        send_timeout: float | None = None,
    ) -> None:
        """
        Create an alarm engine in the Disarmed state.

        :param channels: Alert channels in delivery order. Defaults to a
            single LogChannel writing to the audit log.
        :param poll_interval: Seconds between sensor polls. Defaults to the
            configured value.
        :param send_timeout: Seconds a single channel may spend on one
            notification. Defaults to the configured value.
        """
        current = config.get()
        self._config = config
        self._sensor = sensor
        self._audit = audit if audit is not None else AuditLog()
        self._channels: tuple[AlertChannel, ...] = tuple(channels or ())
        if not self._channels:
            self._channels = (LogChannel(self._audit),)
        self._poll_interval = (
            poll_interval if poll_interval is not None else current.poll_interval
        )
        self._send_timeout = (
            send_timeout if send_timeout is not None else current.send_timeout
        )

        self._lock = threading.Lock()
        self._state = DISARMED
        self._latched: set[int] = set()
        self._generation = 0

        self._closed = False
        self._deliveries: set[asyncio.Task[int]] = set()
        self.tick_count = 0
        self.failed_ticks = 0

    @property
    def audit(self) -> AuditLog:
        """The audit log events are recorded to."""
        return self._audit

    @property
    def channels(self) -> tuple[AlertChannel, ...]:
        """The alert channels, in delivery order."""
        return self._channels

    @property
    def state(self) -> OperatingState:
        """The current operating state."""
        with self._lock:
            return self._state

    def arm(self, name: str, user: str | None = None) -> OperatingState:
        """
        Arm with the named profile, or enter a test mode.

        "TestSoft" and "TestWiring" are always available; they are matched
        ignoring case and whitespace. Any other name must match a configured
        arm profile (ignoring case), else UnknownProfileError is raised and
        the state is left unchanged.
        """
        mode = TEST_MODES.get("".join(name.split()).casefold())
        if mode is not None:
            state = OperatingState(mode)
        else:
            profile = self._config.get().find_profile(name)
            if profile is None:
                msg = f"Unknown arm profile: {name!r}"
                raise UnknownProfileError(msg)
            state = OperatingState(Mode.ARMED, profile.name)

        self._transition(state, f"arm {state.name}", user)
        return state

    def disarm(self, user: str | None = None) -> OperatingState:
        """Disarm. Always succeeds."""
        self._transition(DISARMED, "disarm", user)
        return DISARMED

    def _transition(
        self, state: OperatingState, action: str, user: str | None
    ) -> None:
        """Replace the state and clear every latch as one step."""
        if user:
            action = f"{action} by {user}"
        with self._lock:
            previous = self._state
            self._state = state
            self._latched = set()
            self._generation += 1
            self._audit.record(action)
        _LOGGER.info("State changed %s -> %s", previous.name, state.name)

    def snapshot(self) -> Status:
        """Return the operating state and the latch of every configured zone."""
        zones = self._config.get().zones
        with self._lock:
            return Status(
                state=self._state,
                latched={z.id: z.id in self._latched for z in zones},
            )

    async def trigger_manually(self, zone_id: int, user: str | None = None) -> bool:
        """
        Simulate activation of a zone while in TestSoft mode.

        Latches the zone and delivers the alert through every channel, the
        same way the poll loop does. Returns False without delivering if the
        zone was already latched or is disabled; disabled zones never latch.

        :raises NotInTestSoftModeError: if the state is not TestSoft
        :raises UnknownZoneError: if no zone has the given ID
        """
        zone = self._config.get().find_zone(zone_id)
        with self._lock:
            if self._state.mode is not Mode.TEST_SOFT:
                msg = f"Manual trigger requires TestSoft (state is {self._state.name})"
                raise NotInTestSoftModeError(msg)
            if zone is None:
                msg = f"Unknown zone: {zone_id}"
                raise UnknownZoneError(msg)
            if not zone.enabled:
                _LOGGER.debug("Zone %s is disabled - ignoring", zone.id)
                return False
            if zone.id in self._latched:
                _LOGGER.debug("Zone %s already latched - ignoring", zone.id)
                return False
            self._latched.add(zone.id)
            self._audit.record(
                "test trigger zone id=%d (%s)%s",
                zone.id,
                zone.name,
                f" by {user}" if user else "",
            )

        await self.dispatch(zone)
        return True

    @staticmethod
    def _active_zones(state: OperatingState, config: Config) -> list[Zone]:
        """Return the enabled zones polled in state."""
        if state.mode is Mode.TEST_WIRING:
            candidates = list(config.zones)
        elif state.mode is Mode.ARMED and state.profile is not None:
            profile = config.find_profile(state.profile)
            if profile is None:
                _LOGGER.debug("Armed profile %s no longer configured", state.profile)
                return []
            candidates = []
            for zone_id in dict.fromkeys(profile.zone_ids):
                zone = config.find_zone(zone_id)
                if zone is None:
                    _LOGGER.debug(
                        "Profile %s lists unknown zone %s", profile.name, zone_id
                    )
                    continue
                candidates.append(zone)
        else:
            return []
        return [z for z in candidates if z.enabled]

    def tick(self) -> list[Zone]:
        """
        Sample the sensors once and latch newly activated zones.

        Returns the zones whose alerts should now be delivered. Zones
        latched in TestWiring mode are only recorded to the audit log, so
        nothing is returned for them. If the state changes while the sensors
        are being read, the sample is discarded.
        """
        config = self._config.get()
        with self._lock:
            state = self._state
            generation = self._generation
            latched = set(self._latched)
        self.tick_count += 1

        if state.mode in (Mode.DISARMED, Mode.TEST_SOFT):
            return []

        candidates = [
            zone
            for zone in self._active_zones(state, config)
            if zone.id not in latched
            and activated(self._sensor.read_level(zone.pin), zone.wiring)
        ]
        if not candidates:
            return []

        fired: list[Zone] = []
        with self._lock:
            if self._generation != generation:
                _LOGGER.debug("State changed during tick - discarding sample")
                return []
            for zone in candidates:
                if zone.id in self._latched:
                    continue
                self._latched.add(zone.id)
                _LOGGER.info(
                    "Zone %s (%s) triggered in %s", zone.id, zone.name, state.name
                )
                if state.mode is Mode.TEST_WIRING:
                    self._audit.record(
                        "trigger zone id=%d (%s) - wiring test", zone.id, zone.name
                    )
                else:
                    self._audit.record("trigger zone id=%d (%s)", zone.id, zone.name)
                    fired.append(zone)
        return fired

    async def dispatch(self, zone: Zone) -> int:
        """
        Deliver the alert for zone through every channel, in order.

        A failing or timed-out channel is recorded to the audit log and does
        not stop the remaining channels. Returns the number of channels that
        delivered successfully.
        """
        delivered = 0
        for channel in self._channels:
            try:
                await asyncio.wait_for(self._send(channel, zone), self._send_timeout)
            except asyncio.TimeoutError:
                cause = f"timed out after {self._send_timeout}s"
            except ChannelDeliveryError as e:
                cause = e.cause
            except Exception as e:  # noqa: BLE001 # Any channel failure is audited
                cause = str(e) or type(e).__name__
            else:
                delivered += 1
                continue
            _LOGGER.warning(
                "Alert channel %s failed for zone %s: %s", channel.name, zone.id, cause
            )
            self._audit.record("alert handler %s error: %s", channel.name, cause)
        return delivered

    @staticmethod
    async def _send(channel: AlertChannel, zone: Zone) -> None:
        """Send through channel, keeping its own time-outs apart from ours."""
        try:
            await channel.send(zone)
        except asyncio.TimeoutError as e:
            raise ChannelDeliveryError(channel.name, str(e) or "timed out") from e

    async def poll(self) -> list[Zone]:
        """Run one tick and deliver its alerts before returning."""
        fired = self.tick()
        for zone in fired:
            await self.dispatch(zone)
        return fired

    def _start_delivery(self, zone: Zone) -> None:
        task = asyncio.get_running_loop().create_task(
            self.dispatch(zone), name=f"alert zone {zone.id}"
        )
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def run(self) -> None:
        """
        Run the polling loop.

        Alerts are delivered in background tasks so a slow channel never
        delays the next tick. Runs until close() is called or the task is
        cancelled; either way it stops between ticks.
        """
        _LOGGER.debug("Poll loop start - interval %ss", self._poll_interval)
        while not self._closed:
            try:
                fired = self.tick()
            except Exception:
                self.failed_ticks += 1
                _LOGGER.exception("Poll tick failed")
            else:
                for zone in fired:
                    self._start_delivery(zone)
            await asyncio.sleep(self._poll_interval)
        _LOGGER.debug("Poll loop end")

    async def close(self) -> None:
        """Stop the polling loop and wait for in-flight alert deliveries."""
        _LOGGER.debug("Closing Engine")
        self._closed = True
        if self._deliveries:
            await asyncio.gather(*self._deliveries, return_exceptions=True)

"""Test the alarm engine state machine, polling, latching and alert dispatch."""

import asyncio
import threading

import pytest

from minder.alert import AlertChannel, LogChannel
from minder.audit import AuditLog
from minder.config import Config, ConfigStore
from minder.engine import DISARMED, Engine, Mode, OperatingState
from minder.errors import (
    ChannelDeliveryError,
    NotInTestSoftModeError,
    UnknownProfileError,
    UnknownZoneError,
)
from minder.sensor import SimulatedSensor
from minder.zone import ArmProfile, WiringMode, Zone

DOOR_PIN = 17
HALL_PIN = 27
SHED_PIN = 22


class CountingChannel(AlertChannel):
    """Alert channel which records the zones it was asked to send."""

    def __init__(self, name: str, *, fail: bool = False, delay: float = 0) -> None:
        self.name = name
        self.sent: list[int] = []
        self._fail = fail
        self._delay = delay

    async def send(self, zone: Zone) -> None:
        self.sent.append(zone.id)
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._fail:
            raise ChannelDeliveryError(self.name, "server unreachable")


@pytest.fixture
def config() -> ConfigStore:
    """Zone 1 NC door, zone 2 NO hallway, zone 3 disabled shed."""
    return ConfigStore(
        Config(
            zones=(
                Zone(
                    id=1,
                    name="Door",
                    pin=DOOR_PIN,
                    wiring=WiringMode.NORMALLY_CLOSED,
                ),
                Zone(id=2, name="Hall", pin=HALL_PIN, wiring=WiringMode.NORMALLY_OPEN),
                Zone(id=3, name="Shed", pin=SHED_PIN, enabled=False),
            ),
            arm_profiles=(
                ArmProfile("Away", (1, 2)),
                ArmProfile("Home", (1,)),
                ArmProfile("Garden", (3, 99)),
            ),
        )
    )


@pytest.fixture
def sensor() -> SimulatedSensor:
    """Sensor with the NC door circuit closed (high) and everything else low."""
    return SimulatedSensor({DOOR_PIN: True})


@pytest.fixture
def channels() -> list[CountingChannel]:
    """Two working alert channels."""
    return [CountingChannel("first"), CountingChannel("second")]


@pytest.fixture
def audit() -> AuditLog:
    """In-memory audit log."""
    return AuditLog()


@pytest.fixture
def engine(
    config: ConfigStore,
    sensor: SimulatedSensor,
    channels: list[CountingChannel],
    audit: AuditLog,
) -> Engine:
    """Engine fixture with a fast poll interval."""
    return Engine(
        config,
        sensor,
        channels=channels,
        audit=audit,
        poll_interval=0.01,
        send_timeout=1.0,
    )


def _audit_messages(audit: AuditLog) -> list[str]:
    return [line.split(" - ", 1)[1] for line in audit.entries()]


def test_initial_state(engine: Engine) -> None:
    status = engine.snapshot()
    assert status.state == DISARMED
    assert status.state.name == "Disarmed"
    assert status.latched == {1: False, 2: False, 3: False}
    assert status.triggered == []


def test_arm_profile(engine: Engine, audit: AuditLog) -> None:
    """Check that profiles are matched ignoring case and keep their own name."""
    state = engine.arm("aWaY", user="alice")
    assert state == OperatingState(Mode.ARMED, "Away")
    assert engine.state.name == "Away"
    assert _audit_messages(audit) == ["arm Away by alice"]


@pytest.mark.parametrize(
    ("name", "mode"),
    [
        ("TestSoft", Mode.TEST_SOFT),
        ("testsoft", Mode.TEST_SOFT),
        ("Test Soft", Mode.TEST_SOFT),
        (" TEST  SOFT ", Mode.TEST_SOFT),
        ("TestWiring", Mode.TEST_WIRING),
        ("test wiring", Mode.TEST_WIRING),
    ],
)
def test_arm_test_modes(engine: Engine, name: str, mode: Mode) -> None:
    """Check the built-in test modes are always available."""
    assert engine.arm(name).mode is mode
    assert engine.state == OperatingState(mode)


def test_arm_unknown_profile_leaves_state(
    engine: Engine, sensor: SimulatedSensor
) -> None:
    """Check a failed arm changes neither the state nor the latches."""
    engine.arm("Away")
    sensor.set_level(DOOR_PIN, False)
    assert [z.id for z in engine.tick()] == [1]

    with pytest.raises(UnknownProfileError, match=r"Unknown arm profile: 'Night'"):
        engine.arm("Night")

    status = engine.snapshot()
    assert status.state.name == "Away"
    assert status.triggered == [1]


@pytest.mark.parametrize(
    "transitions",
    [
        ["Away"],
        ["Away", None],
        ["TestSoft", "Away"],
        ["TestWiring", "Home", None, "TestSoft"],
    ],
)
def test_transitions_clear_latches(
    engine: Engine, sensor: SimulatedSensor, transitions: list[str | None]
) -> None:
    """Check that the latch set is empty after every successful transition."""
    sensor.set_level(DOOR_PIN, False)
    sensor.set_level(HALL_PIN, True)
    for name in transitions:
        engine.arm("TestWiring")
        engine.tick()
        assert engine.snapshot().triggered == [1, 2]

        if name is None:
            engine.disarm()
        else:
            engine.arm(name)
        assert engine.snapshot().triggered == []


@pytest.mark.asyncio
async def test_away_home_scenario(
    engine: Engine, sensor: SimulatedSensor, channels: list[CountingChannel]
) -> None:
    """Arm Away, open the door, disarm, then arm Home and trip the hallway."""
    engine.arm("Away")
    sensor.set_level(DOOR_PIN, False)
    fired = await engine.poll()
    assert [z.id for z in fired] == [1]
    assert engine.snapshot().latched[1] is True
    assert [c.sent for c in channels] == [[1], [1]]

    # Still open - no further alerts
    for _ in range(5):
        assert await engine.poll() == []
    assert [c.sent for c in channels] == [[1], [1]]

    engine.disarm()
    assert engine.snapshot().latched[1] is False

    sensor.set_level(DOOR_PIN, True)
    engine.arm("Home")
    sensor.set_level(HALL_PIN, True)
    assert await engine.poll() == []
    assert engine.snapshot().triggered == []
    assert [c.sent for c in channels] == [[1], [1]]


@pytest.mark.asyncio
async def test_oscillating_zone_alerts_once(
    engine: Engine, sensor: SimulatedSensor, channels: list[CountingChannel]
) -> None:
    """Check latching is edge triggered for the whole armed session."""
    engine.arm("Away")
    for i in range(10):
        sensor.set_level(HALL_PIN, i % 2 == 0)
        await engine.poll()
    assert [c.sent for c in channels] == [[2], [2]]

    # A new transition re-arms the latch
    engine.arm("Away")
    sensor.set_level(HALL_PIN, True)
    await engine.poll()
    assert [c.sent for c in channels] == [[2, 2], [2, 2]]


@pytest.mark.parametrize("name", [None, "TestSoft"])
def test_no_sensor_reads(
    engine: Engine, sensor: SimulatedSensor, name: str | None
) -> None:
    """Check that Disarmed and TestSoft never read the sensors."""
    sensor.set_level(HALL_PIN, True)
    if name is not None:
        engine.arm(name)
    for _ in range(3):
        assert engine.tick() == []
    assert sensor.reads == 0
    assert engine.snapshot().triggered == []


@pytest.mark.asyncio
async def test_test_wiring(
    engine: Engine,
    sensor: SimulatedSensor,
    channels: list[CountingChannel],
    audit: AuditLog,
) -> None:
    """Check TestWiring polls every enabled zone but only audits the latch."""
    engine.arm("TestWiring")
    sensor.set_level(HALL_PIN, True)
    sensor.set_level(SHED_PIN, True)
    assert await engine.poll() == []
    await engine.poll()

    assert engine.snapshot().latched == {1: False, 2: True, 3: False}
    assert [c.sent for c in channels] == [[], []]
    assert _audit_messages(audit) == [
        "arm TestWiring",
        "trigger zone id=2 (Hall) - wiring test",
    ]


def test_disabled_and_missing_zones_skipped(
    engine: Engine, sensor: SimulatedSensor
) -> None:
    """Check a profile with a disabled zone and an unknown zone ID is harmless."""
    engine.arm("Garden")
    sensor.set_level(SHED_PIN, True)
    assert engine.tick() == []
    assert engine.snapshot().triggered == []
    assert sensor.reads == 0


def test_zone_removed_from_config(
    engine: Engine, sensor: SimulatedSensor, config: ConfigStore
) -> None:
    """Check that configuration drift is tolerated at poll time."""
    engine.arm("Away")
    current = config.get()
    config.replace(Config(zones=current.zones[:1], arm_profiles=current.arm_profiles))
    sensor.set_level(HALL_PIN, True)
    assert engine.tick() == []
    assert engine.snapshot().latched == {1: False}


def test_transition_during_tick_discards_sample(
    config: ConfigStore, audit: AuditLog
) -> None:
    """Check a sample taken against a replaced state never latches."""

    class DisarmingSensor(SimulatedSensor):
        engine: Engine

        def read_level(self, pin: int) -> bool:
            self.engine.disarm()
            return super().read_level(pin)

    sensor = DisarmingSensor({HALL_PIN: True})
    engine = Engine(config, sensor, audit=audit)
    sensor.engine = engine
    engine.arm("Away")
    assert engine.tick() == []
    status = engine.snapshot()
    assert status.state == DISARMED
    assert status.triggered == []
    assert not any("trigger" in m for m in _audit_messages(audit))


@pytest.mark.parametrize("name", [None, "Away", "Home", "TestWiring"])
@pytest.mark.asyncio
async def test_manual_trigger_requires_test_soft(
    engine: Engine, channels: list[CountingChannel], name: str | None
) -> None:
    if name is not None:
        engine.arm(name)
    with pytest.raises(NotInTestSoftModeError):
        await engine.trigger_manually(1)
    assert engine.snapshot().triggered == []
    assert [c.sent for c in channels] == [[], []]


@pytest.mark.asyncio
async def test_manual_trigger_twice(
    engine: Engine, channels: list[CountingChannel], audit: AuditLog
) -> None:
    """Check the second manual trigger of a zone is a silent no-op."""
    engine.arm("TestSoft")
    assert await engine.trigger_manually(1, user="bob") is True
    assert await engine.trigger_manually(1, user="bob") is False

    assert [c.sent for c in channels] == [[1], [1]]
    assert engine.snapshot().triggered == [1]
    assert _audit_messages(audit) == [
        "arm TestSoft",
        "test trigger zone id=1 (Door) by bob",
    ]


@pytest.mark.asyncio
async def test_manual_trigger_unknown_zone(
    engine: Engine, channels: list[CountingChannel]
) -> None:
    engine.arm("TestSoft")
    with pytest.raises(UnknownZoneError, match=r"Unknown zone: 42"):
        await engine.trigger_manually(42)
    assert engine.snapshot().triggered == []
    assert [c.sent for c in channels] == [[], []]


@pytest.mark.asyncio
async def test_manual_trigger_disabled_zone(
    engine: Engine, channels: list[CountingChannel], audit: AuditLog
) -> None:
    """Check a disabled zone is never latched, even by hand."""
    engine.arm("TestSoft")
    assert await engine.trigger_manually(3, user="bob") is False

    assert engine.snapshot().latched[3] is False
    assert [c.sent for c in channels] == [[], []]
    assert _audit_messages(audit) == ["arm TestSoft"]


@pytest.mark.asyncio
async def test_failing_channel(
    config: ConfigStore, sensor: SimulatedSensor, audit: AuditLog
) -> None:
    """Check a failing channel neither blocks the next one nor undoes the latch."""
    broken = CountingChannel("broken", fail=True)
    working = CountingChannel("working")
    engine = Engine(config, sensor, channels=[broken, working], audit=audit)

    engine.arm("Away")
    sensor.set_level(DOOR_PIN, False)
    await engine.poll()
    await engine.poll()
    assert engine.snapshot().triggered == [1]
    assert broken.sent == [1]
    assert working.sent == [1]

    engine.arm("TestSoft")
    await engine.trigger_manually(1)
    await engine.trigger_manually(2)
    assert working.sent == [1, 1, 2]

    failures = [m for m in _audit_messages(audit) if m.startswith("alert handler")]
    assert failures == [
        "alert handler broken error: server unreachable",
    ] * 3


@pytest.mark.asyncio
async def test_slow_channel_times_out(
    config: ConfigStore, sensor: SimulatedSensor, audit: AuditLog
) -> None:
    slow = CountingChannel("slow", delay=10)
    working = CountingChannel("working")
    engine = Engine(
        config, sensor, channels=[slow, working], audit=audit, send_timeout=0.05
    )
    engine.arm("TestSoft")
    await asyncio.wait_for(engine.trigger_manually(2), 2)

    assert working.sent == [2]
    assert "alert handler slow error: timed out after 0.05s" in _audit_messages(audit)


class TimingOutChannel(AlertChannel):
    """Alert channel whose own connection times out immediately."""

    name = "socket"

    async def send(self, zone: Zone) -> None:
        msg = "connect timed out"
        raise TimeoutError(msg)


@pytest.mark.asyncio
async def test_channel_own_timeout_is_not_send_timeout(
    config: ConfigStore, sensor: SimulatedSensor, audit: AuditLog
) -> None:
    """Check a channel's internal time-out is audited with its own cause."""
    engine = Engine(
        config, sensor, channels=[TimingOutChannel()], audit=audit, send_timeout=5
    )
    engine.arm("TestSoft")
    await engine.trigger_manually(1)

    failures = [m for m in _audit_messages(audit) if m.startswith("alert handler")]
    assert failures == ["alert handler socket error: connect timed out"]


@pytest.mark.asyncio
async def test_default_log_channel(
    config: ConfigStore, sensor: SimulatedSensor
) -> None:
    """Check that an engine without channels still leaves an audit trail."""
    audit = AuditLog()
    engine = Engine(config, sensor, audit=audit)
    assert [type(c) for c in engine.channels] == [LogChannel]

    engine.arm("Home")
    sensor.set_level(DOOR_PIN, False)
    await engine.poll()
    assert "alert: zone 1 (Door) triggered" in _audit_messages(audit)


@pytest.mark.asyncio
async def test_run_loop(
    engine: Engine, sensor: SimulatedSensor, channels: list[CountingChannel]
) -> None:
    """Check the autonomous loop latches and delivers, and stops on close()."""
    task = asyncio.create_task(engine.run())
    engine.arm("Away")
    sensor.set_level(HALL_PIN, True)
    await asyncio.sleep(0.1)

    await engine.close()
    await asyncio.wait_for(task, 1)
    assert [c.sent for c in channels] == [[2], [2]]
    assert engine.tick_count > 1


@pytest.mark.asyncio
async def test_run_loop_not_blocked_by_slow_channel(
    config: ConfigStore, sensor: SimulatedSensor
) -> None:
    slow = CountingChannel("slow", delay=0.5)
    engine = Engine(config, sensor, channels=[slow], poll_interval=0.01)
    task = asyncio.create_task(engine.run())
    engine.arm("Away")
    sensor.set_level(DOOR_PIN, False)
    await asyncio.sleep(0.05)
    sensor.set_level(HALL_PIN, True)
    await asyncio.sleep(0.15)

    # Zone 2 latched while the zone 1 delivery is still in progress
    assert engine.snapshot().triggered == [1, 2]
    await engine.close()
    await asyncio.wait_for(task, 1)
    assert slow.sent == [1, 2]


@pytest.mark.asyncio
async def test_run_loop_survives_tick_errors(
    config: ConfigStore, channels: list[CountingChannel]
) -> None:
    """Check the loop keeps ticking after a tick raises."""

    class FlakySensor(SimulatedSensor):
        def read_level(self, pin: int) -> bool:
            if self.reads < 2:  # noqa: PLR2004
                self.reads += 1
                msg = "bus error"
                raise RuntimeError(msg)
            return super().read_level(pin)

    sensor = FlakySensor({DOOR_PIN: True, HALL_PIN: True})
    engine = Engine(config, sensor, channels=channels, poll_interval=0.01)
    engine.arm("Away")
    task = asyncio.create_task(engine.run())
    await asyncio.sleep(0.1)
    await engine.close()
    await asyncio.wait_for(task, 1)

    assert engine.failed_ticks == 2  # noqa: PLR2004
    assert [c.sent for c in channels] == [[2], [2]]


def test_concurrent_transitions_and_ticks(
    engine: Engine, sensor: SimulatedSensor
) -> None:
    """Check that snapshots stay consistent while threads arm, disarm and tick."""
    sensor.set_level(DOOR_PIN, False)
    stop = threading.Event()
    errors: list[str] = []

    def _control() -> None:
        while not stop.is_set():
            engine.arm("Home")
            engine.disarm()

    def _poll() -> None:
        while not stop.is_set():
            engine.tick()

    def _observe() -> None:
        while not stop.is_set():
            status = engine.snapshot()
            # Zone 2 is never part of Home, and nothing latches while disarmed
            if status.latched[2] or (status.state == DISARMED and status.triggered):
                errors.append(str(status))

    threads = [
        threading.Thread(target=f, name=f.__name__)
        for f in (_control, _poll, _observe)
    ]
    for t in threads:
        t.start()
    stop.wait(0.3)
    stop.set()
    for t in threads:
        t.join()

    assert errors == []

"""
Example that arms a profile and reacts to a simulated door opening.

The engine polls a SimulatedSensor; after arming, the front door contact
(normally closed) is opened and the resulting alert is printed.
"""

import asyncio

from minder import (
    AlertChannel,
    ArmProfile,
    AuditLog,
    Config,
    ConfigStore,
    Engine,
    LogChannel,
    SimulatedSensor,
    WiringMode,
    Zone,
)

FRONT_DOOR_PIN = 17
HALLWAY_PIN = 27

config = Config(
    zones=(
        Zone(
            id=1,
            name="Front door",
            pin=FRONT_DOOR_PIN,
            wiring=WiringMode.NORMALLY_CLOSED,
        ),
        Zone(id=2, name="Hallway PIR", pin=HALLWAY_PIN),
    ),
    arm_profiles=(ArmProfile("Away", (1, 2)), ArmProfile("Home", (1,))),
)


class PrintChannel(AlertChannel):
    """Alert channel which prints to stdout."""

    name = "print"

    async def send(self, zone: Zone) -> None:
        """Print the triggered zone."""
        print(f"ALERT: {zone.name} (zone {zone.id})")  # noqa: T201 # Valid example print


def main(timeout: float = 1.0) -> list[str]:
    """Arm 'Away', open the front door, and return the audit trail."""
    audit = AuditLog()
    # Closed contact - the normally-closed circuit reads high
    sensor = SimulatedSensor({FRONT_DOOR_PIN: True})
    engine = Engine(
        ConfigStore(config),
        sensor,
        channels=[LogChannel(audit), PrintChannel()],
        audit=audit,
        poll_interval=0.05,
    )

    async def _scenario() -> None:
        task = asyncio.create_task(engine.run())
        engine.arm("Away", user="example")
        await asyncio.sleep(timeout / 2)
        sensor.set_level(FRONT_DOOR_PIN, False)
        await asyncio.sleep(timeout / 2)
        print(f"Status: {engine.snapshot()}")  # noqa: T201 # Valid example print
        engine.disarm(user="example")
        await engine.close()
        await task

    asyncio.run(_scenario())
    for line in audit.entries():
        print(line)  # noqa: T201 # Valid example print
    return audit.entries()


if __name__ == "__main__":
    main()

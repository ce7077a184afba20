"""Example of validating alert delivery with TestSoft manual triggers."""

import asyncio

from minder import ArmProfile, AuditLog, Config, ConfigStore, Engine, StubSensor, Zone

config = Config(
    zones=(Zone(id=1, name="Garage", pin=5), Zone(id=2, name="Shed", pin=6)),
    arm_profiles=(ArmProfile("Away", (1, 2)),),
)


def main() -> list[str]:
    """Enter TestSoft, trigger both zones, and return the audit trail."""
    audit = AuditLog()
    engine = Engine(ConfigStore(config), StubSensor(), audit=audit)

    async def _scenario() -> None:
        engine.arm("Test Soft")
        for zone_id in (1, 2, 1):
            delivered = await engine.trigger_manually(zone_id, user="example")
            print(f"Zone {zone_id}: {'sent' if delivered else 'ignored'}")  # noqa: T201 # Valid example print
        engine.disarm()

    asyncio.run(_scenario())
    return audit.entries()


if __name__ == "__main__":
    main()

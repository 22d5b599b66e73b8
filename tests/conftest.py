import pytest_asyncio

from homebase_relay.config import OverwritePolicy
from homebase_relay.relay import CommandRelay


@pytest_asyncio.fixture
async def make_relay():
    """Build relays with short timers and shut them all down on the test's loop."""
    relays: list[CommandRelay] = []

    def factory(
        *,
        command_timeout: float = 1.0,
        long_poll_max: float = 1.0,
        overwrite_policy: OverwritePolicy = OverwritePolicy.SUPERSEDE,
    ) -> CommandRelay:
        relay = CommandRelay(
            command_timeout=command_timeout,
            long_poll_max=long_poll_max,
            overwrite_policy=overwrite_policy,
        )
        relays.append(relay)
        return relay

    yield factory

    for relay in relays:
        relay.shutdown()

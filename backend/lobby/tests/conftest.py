"""Shared fixtures for lobby tests."""

from __future__ import annotations

import pytest

from bots.client.mock import MockClientFactory
from bots.registry import BotRegistry
from bots.tests.helpers import wait_until


@pytest.fixture
def client_factory() -> MockClientFactory:
    return MockClientFactory()


@pytest.fixture
async def registry(client_factory: MockClientFactory):
    reg = BotRegistry(client_factory)
    yield reg
    await reg.shutdown(drain_timeout=1.0)


@pytest.fixture
async def ready_registry(registry: BotRegistry) -> BotRegistry:
    """Registry with two bots that have reached READY."""
    registry.add("bot1", "pw1")
    registry.add("bot2", "pw2")
    await wait_until(lambda: all(registry.snapshot().values()))
    return registry

from __future__ import annotations

import itertools
import random
from unittest.mock import AsyncMock, MagicMock

import pytest

from giveawaybot.entries import EntryManager
from giveawaybot.lifecycle import LifecycleController
from giveawaybot.notifications import GiveawayNotifier
from giveawaybot.scheduler import SweepScheduler
from giveawaybot.storage import GiveawayStore, MemoryBackend


class FakeGateway:
    """Gateway double: publish hands out increasing message ids."""

    def __init__(self) -> None:
        ids = itertools.count(1001)
        self.publish = AsyncMock(side_effect=lambda channel_id, giveaway: str(next(ids)))
        self.edit = AsyncMock(return_value=None)
        self.fetch = AsyncMock(return_value=MagicMock(name="message"))
        self.announce = AsyncMock(return_value=None)


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend):
    return GiveawayStore(backend)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def controller(store, gateway):
    return LifecycleController(
        store,
        gateway,
        min_duration_ms=1000,
        max_duration_ms=30 * 24 * 60 * 60 * 1000,
        rng=random.Random(1234),
    )


@pytest.fixture
def entries(store):
    return EntryManager(store, cooldown_seconds=0)


@pytest.fixture
def notifier(gateway):
    return GiveawayNotifier(gateway, timeout=1.0)


@pytest.fixture
def make_scheduler(store, controller, notifier):
    def factory(**kwargs):
        kwargs.setdefault("interval_seconds", 15)
        kwargs.setdefault("buffer_ms", 5000)
        return SweepScheduler(store, controller, notifier, **kwargs)

    return factory

from __future__ import annotations

import pytest
from helpers import FakeCapabilities, make_clock

from locatr.config import LocatrConfig
from locatr.store.memory import MemorySampleStore


@pytest.fixture
def store() -> MemorySampleStore:
    return MemorySampleStore(clock=make_clock())


@pytest.fixture
def capabilities() -> FakeCapabilities:
    return FakeCapabilities()


@pytest.fixture
def fast_config() -> LocatrConfig:
    return LocatrConfig(sample_interval=0.05, fix_timeout=0.2)

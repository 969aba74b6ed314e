import pytest

from tdsp_engine.cache import MemoryCache
from tdsp_engine.config import Config

from .fakes import FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return MemoryCache(clock=clock)


@pytest.fixture
def config():
    return Config(retry_base_delay=0, retry_max_delay=0, probe_delay_seconds=0)

import pytest
from helpers import FakeClock, RecordingStore

from keycarousel import KeyConfig


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return RecordingStore(clock=clock)


@pytest.fixture
def abc_keys():
    return [KeyConfig("A", "token-a"), KeyConfig("B", "token-b"), KeyConfig("C", "token-c")]

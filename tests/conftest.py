import pytest

from alert_engine.config import MonitorConfig
from tests.helpers import FakeClock, FakeFetcher, FakeSender


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config(tmp_path):
    return MonitorConfig(tokens_file=str(tmp_path / "push-tokens.json"))


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def sender():
    return FakeSender()

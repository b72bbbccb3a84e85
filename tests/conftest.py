import pytest

from fall_monitor import FallDetector
from fakes import ALERT_TIME, FakeClock


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def events():
    return []


@pytest.fixture
def detector(clock, events):
    d = FallDetector(clock=clock, wall_clock=lambda: ALERT_TIME)
    d.on(events.append)
    d.initialize()
    events.clear()
    return d

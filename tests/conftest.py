import pytest

from tests.factories import T0
from timekeeper.tickets.clock import ManualClock


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)

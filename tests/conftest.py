from __future__ import annotations

import pytest

from core.config import GatewaySettings
from tests.fakes import ManualClock, RecordingSleep


@pytest.fixture
def settings() -> GatewaySettings:
    # Ignore developer/user .env files.
    return GatewaySettings(_env_file=None)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def no_sleep() -> RecordingSleep:
    return RecordingSleep()

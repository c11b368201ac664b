"""Pytest configuration and shared fixtures."""

import pytest

from gstream.core.session import SessionSettings, TransmissionSession
from gstream.core.transport import MockTransport


class SleepRecorder:
    """Stands in for time.sleep; records requested delays."""

    def __init__(self):
        self.calls = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def settings() -> SessionSettings:
    """Default protocol settings (settle time is never actually slept)."""
    return SessionSettings()


@pytest.fixture
def transport() -> MockTransport:
    """Mock transport that acknowledges everything."""
    return MockTransport()


@pytest.fixture
def session(transport, settings, sleeper) -> TransmissionSession:
    return TransmissionSession(transport, total_count=10, settings=settings, sleep=sleeper)

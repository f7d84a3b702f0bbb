"""Test helpers for provisioning tests."""

from .mock_session import MockSession, MockResponse
from .fake_clock import FakeClock
from .fake_devices import FakeDeviceClient
from .event_recorder import EventRecorder

__all__ = ["MockSession", "MockResponse", "FakeClock", "FakeDeviceClient", "EventRecorder"]

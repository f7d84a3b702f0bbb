"""Tests for the post-reboot online wait poller."""

import pytest

from algo_provision.exceptions import DeviceApiError, NetworkUnreachableError
from algo_provision.models import DeviceInfo
from algo_provision.online_wait import (
    FAILURE_AUTH, FAILURE_UNREACHABLE, OnlineWaitPoller, classify_probe_failure
)

ADDRESS = "10.0.1.11"


class ScriptedProbe:
    """Probe that answers once the clock reaches ready_at."""

    def __init__(self, clock, ready_at=None, failure=None):
        self.clock = clock
        self.ready_at = ready_at
        self.failure = failure or NetworkUnreachableError(ADDRESS, "connection refused")
        self.times = []

    def __call__(self, address):
        self.times.append(self.clock())
        if self.ready_at is None or self.clock() < self.ready_at:
            raise self.failure
        return DeviceInfo("Algo 8186 SIP Horn Speaker", "4.5.1")


def _poller(probe, clock, **kwargs):
    kwargs.setdefault("retry_interval", 3)
    kwargs.setdefault("total_timeout", 240)
    return OnlineWaitPoller(probe=probe, sleep=clock.sleep, clock=clock, **kwargs)


def test_grace_period_precedes_first_probe(fake_clock):
    start = fake_clock()
    probe = ScriptedProbe(fake_clock, ready_at=start)

    result = _poller(probe, fake_clock).wait_online(ADDRESS, grace_seconds=90)

    assert result.online is True
    assert result.attempts == 1
    assert probe.times == [start + 90]
    assert fake_clock.sleeps == [90]


def test_device_up_after_two_intervals(fake_clock):
    """Answering at grace + 2 * interval takes at least three probes."""
    start = fake_clock()
    probe = ScriptedProbe(fake_clock, ready_at=start + 90 + 2 * 3)

    result = _poller(probe, fake_clock).wait_online(ADDRESS, grace_seconds=90)

    assert result.online is True
    assert result.attempts >= 3
    assert result.elapsed == pytest.approx(96)
    assert fake_clock.sleeps == [90, 3, 3]


def test_timeout_includes_grace(fake_clock):
    probe = ScriptedProbe(fake_clock)

    result = _poller(probe, fake_clock).wait_online(ADDRESS, grace_seconds=90, total_timeout=120)

    assert result.online is False
    assert result.elapsed <= 120
    assert result.attempts == 11
    assert "connection refused" in result.last_error


def test_default_total_timeout(fake_clock):
    probe = ScriptedProbe(fake_clock)

    result = _poller(probe, fake_clock, total_timeout=30).wait_online(ADDRESS, grace_seconds=0)

    assert result.online is False
    assert result.elapsed <= 30


def test_grace_longer_than_timeout_still_probes_once(fake_clock):
    probe = ScriptedProbe(fake_clock)

    result = _poller(probe, fake_clock).wait_online(ADDRESS, grace_seconds=60, total_timeout=10)

    assert result.online is False
    assert result.attempts == 1


def test_attempt_callback_classifies_failures(fake_clock):
    seen = []
    start = fake_clock()
    probe = ScriptedProbe(
        fake_clock,
        ready_at=start + 6,
        failure=DeviceApiError(ADDRESS, 403, "Forbidden")
    )

    poller = _poller(probe, fake_clock, on_attempt=lambda *args: seen.append(args))
    result = poller.wait_online(ADDRESS, grace_seconds=0)

    assert result.online is True
    assert seen == [(ADDRESS, 1, FAILURE_AUTH), (ADDRESS, 2, FAILURE_AUTH)]


class TestClassifyProbeFailure:
    """Test auth versus unreachable classification."""

    def test_forbidden_is_auth(self):
        assert classify_probe_failure(DeviceApiError(ADDRESS, 403, "Forbidden")) == FAILURE_AUTH

    def test_server_error_is_unreachable(self):
        assert classify_probe_failure(DeviceApiError(ADDRESS, 503, "Booting")) == FAILURE_UNREACHABLE

    def test_network_error_is_unreachable(self):
        error = NetworkUnreachableError(ADDRESS, "timed out")
        assert classify_probe_failure(error) == FAILURE_UNREACHABLE

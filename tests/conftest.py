"""Pytest configuration and fixtures for provisioning tests."""

import json
import logging
import sys
from pathlib import Path

import pytest

# Add src and tests to path for imports
_project_root = Path(__file__).parent.parent
sys.path.insert(0, str(_project_root / "src"))
sys.path.insert(0, str(_project_root))

from tests.helpers import FakeClock, FakeDeviceClient, MockSession

from algo_provision.firmware_catalog import FirmwareCatalog
from algo_provision.logging_config import LOGGER_NAME
from algo_provision.models import DeviceInfo
from algo_provision.online_wait import OnlineWaitPoller
from algo_provision.provisioner import Provisioner, ProvisionSettings


HORN = "Algo 8186 SIP Horn Speaker"
ADAPTER = "Algo 8301 Paging Adapter"


# =============================================================================
# Transport Fixtures
# =============================================================================

@pytest.fixture
def mock_session() -> MockSession:
    """Provides a fresh MockSession instance."""
    return MockSession()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Provides a clock whose sleep advances time instantly."""
    return FakeClock()


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def test_work_dir(tmp_path) -> Path:
    """Provides a fresh temporary work directory for each test."""
    work_dir = tmp_path / "algo-provision"
    for d in ["config", "firmware", "status", "logs/structured", "logs/text"]:
        (work_dir / d).mkdir(parents=True, exist_ok=True)
    return work_dir


@pytest.fixture
def test_config(test_work_dir) -> "Config":
    """Provides a test configuration pointing to temp directories."""
    from algo_provision.config import Config

    config_data = {
        "device": {"secret": "test-secret"},
        "network": {
            "gateway": "10.4.172.1",
            "provisioning_server_url": "http://10.4.170.10:8080/",
            "timezone": "America/New_York"
        },
        "wait": {
            "reboot_grace": 90,
            "firmware_grace": 180,
            "retry_interval": 3,
            "online_timeout": 240
        },
        "logging": {"level": "DEBUG"}
    }

    config_file = test_work_dir / "config" / "config.json"
    config_file.write_text(json.dumps(config_data, indent=2))

    return Config(config_file=str(config_file), work_dir=str(test_work_dir))


@pytest.fixture(autouse=True)
def reset_global_config():
    """Drop the CLI's cached Config between tests."""
    import algo_provision.config as config_module
    config_module._config = None
    yield
    config_module._config = None


@pytest.fixture(autouse=True)
def reset_logging():
    """Detach handlers the CLI attaches to captured streams and temp files."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


# =============================================================================
# Pipeline Fixtures
# =============================================================================

@pytest.fixture
def firmware_dir(test_work_dir) -> Path:
    """Firmware directory holding the horn speaker image."""
    fw_dir = test_work_dir / "firmware"
    (fw_dir / "8186_v4.5.1.bin").write_bytes(b"\x00firmware-image\xff" * 64)
    return fw_dir


@pytest.fixture
def catalog(firmware_dir) -> FirmwareCatalog:
    """Default catalog resolved against the test firmware directory."""
    return FirmwareCatalog.load(firmware_dir / "missing.yaml", firmware_dir)


@pytest.fixture
def settings() -> ProvisionSettings:
    return ProvisionSettings(
        netmask="255.255.255.0",
        gateway="10.4.172.1",
        provisioning_server_url="http://10.4.170.10:8080/",
        timezone="America/New_York",
        reboot_grace=90,
        firmware_grace=180,
        online_timeout=240
    )


@pytest.fixture
def fleet(fake_clock) -> FakeDeviceClient:
    """Three devices: an outdated horn, a current adapter, an unknown model."""
    return FakeDeviceClient({
        "10.0.0.11": DeviceInfo(HORN, "4.2.0"),
        "10.0.0.12": DeviceInfo(ADAPTER, "3.3"),
        "10.0.0.13": DeviceInfo("Algo 8028 Doorphone", "1.0.0"),
    }, clock=fake_clock)


@pytest.fixture
def make_provisioner(fleet, catalog, settings, fake_clock):
    """Factory building a Provisioner wired to the fake fleet and clock."""
    def _make(**kwargs):
        poller = OnlineWaitPoller(
            probe=fleet.get_device_info,
            retry_interval=3,
            total_timeout=240,
            sleep=fake_clock.sleep,
            clock=fake_clock
        )
        kwargs.setdefault("config_blob", "audio.page.vol = -6dB\n")
        kwargs.setdefault("catalog", catalog)
        return Provisioner(client=fleet, poller=poller, settings=settings, **kwargs)
    return _make


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )

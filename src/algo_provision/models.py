"""Data models for targets, device state and run outcomes."""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from algo_provision import constants


class ProvisionPhase(Enum):
    """Pipeline phase enumeration, in execution order."""
    IDENTIFY = "identify"
    NETWORK_APPLIED = "network_applied"
    NETWORK_REBOOTED = "network_rebooted"
    NETWORK_ONLINE = "network_online"
    FIRMWARE_CHECKED = "firmware_checked"
    FIRMWARE_APPLIED = "firmware_applied"
    FIRMWARE_ONLINE = "firmware_online"
    CONFIG_APPLIED = "config_applied"
    FINAL_REBOOTED = "final_rebooted"
    FINAL_ONLINE = "final_online"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class DeviceTarget:
    """One line of the device list."""
    current_address: str
    desired_address: str = ""

    def __post_init__(self):
        if not self.desired_address:
            object.__setattr__(self, "desired_address", self.current_address)

    @property
    def changes_address(self) -> bool:
        return self.desired_address != self.current_address


@dataclass(frozen=True)
class DeviceInfo:
    """Identity reported by the device itself."""
    model: str
    firmware_version: str

    @classmethod
    def from_about(cls, data: Dict[str, Any]) -> "DeviceInfo":
        """Build from the /api/info/about response body."""
        return cls(
            model=str(data.get(constants.INFO_FIELD_MODEL, "")).strip(),
            firmware_version=str(data.get(constants.INFO_FIELD_FIRMWARE, "")).strip()
        )


@dataclass(frozen=True)
class FirmwareEntry:
    """Firmware target for one device model."""
    target_version: str
    artifact: str
    sha256: str = ""


@dataclass(frozen=True)
class NetworkSettings:
    """Static network assignment pushed before the first reboot."""
    address: str
    netmask: str
    gateway: str
    provisioning_server_url: str
    timezone: Optional[str] = None
    mode: str = "static"

    def to_payload(self) -> Dict[str, str]:
        """Flat dotted-key settings body for PUT /api/settings."""
        payload = {
            "nm.ipv4.mode": self.mode,
            "nm.ipv4.address": self.address,
            "nm.ipv4.netmask": self.netmask,
            "nm.ipv4.gateway": self.gateway,
            "prov.server.url": self.provisioning_server_url,
        }
        if self.timezone:
            payload["admin.timezone"] = self.timezone
        return payload


@dataclass(frozen=True)
class RequestSignature:
    """Signature material for a single request attempt."""
    timestamp: int
    nonce: str
    digest: str


@dataclass
class PipelineOutcome:
    """Result of provisioning one device."""
    address: str
    succeeded: bool
    failure_reason: Optional[str] = None
    phase: Optional[str] = None
    desired_address: Optional[str] = None
    firmware_updated: bool = False
    finished_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class RunSummary:
    """Aggregate counts for a batch run."""
    succeeded_count: int = 0
    failed_count: int = 0
    skipped_lines: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class RunReport:
    """Everything a batch run produced."""
    outcomes: List[PipelineOutcome] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def summary(self) -> RunSummary:
        succeeded = sum(1 for outcome in self.outcomes if outcome.succeeded)
        return RunSummary(
            succeeded_count=succeeded,
            failed_count=len(self.outcomes) - succeeded,
            skipped_lines=len(self.warnings)
        )

    @property
    def failures(self) -> List[PipelineOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "dry_run": self.dry_run,
            "summary": self.summary.to_dict(),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "warnings": list(self.warnings),
        }

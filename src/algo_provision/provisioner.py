"""Per-device provisioning orchestration."""

from dataclasses import dataclass
from typing import Optional

from algo_provision.config import Config
from algo_provision.device_client import DeviceClient
from algo_provision.events import EventCallback, EventKind, ProvisionEvent
from algo_provision.exceptions import (
    IdentifyError, OnlineWaitTimeoutError, PipelineError, ProvisionFailedError
)
from algo_provision.firmware_catalog import FirmwareCatalog
from algo_provision.logging_config import get_logger
from algo_provision.models import (
    DeviceInfo, DeviceTarget, NetworkSettings, PipelineOutcome, ProvisionPhase
)
from algo_provision.online_wait import OnlineWaitPoller

# Phases after which the device may already carry its new network settings
_NETWORK_COMMITTED = {
    ProvisionPhase.NETWORK_REBOOTED,
    ProvisionPhase.NETWORK_ONLINE,
    ProvisionPhase.FIRMWARE_CHECKED,
    ProvisionPhase.FIRMWARE_APPLIED,
    ProvisionPhase.FIRMWARE_ONLINE,
    ProvisionPhase.CONFIG_APPLIED,
    ProvisionPhase.FINAL_REBOOTED,
    ProvisionPhase.FINAL_ONLINE,
}


@dataclass(frozen=True)
class ProvisionSettings:
    """Site-wide settings injected into the orchestrator."""
    netmask: str
    gateway: str
    provisioning_server_url: str
    timezone: Optional[str] = None
    reboot_grace: float = 90
    firmware_grace: float = 180
    online_timeout: float = 240

    @classmethod
    def from_config(cls, config: Config) -> "ProvisionSettings":
        return cls(
            netmask=config.netmask,
            gateway=config.gateway,
            provisioning_server_url=config.provisioning_server_url,
            timezone=config.timezone,
            reboot_grace=config.reboot_grace,
            firmware_grace=config.firmware_grace,
            online_timeout=config.online_timeout
        )

    def network_for(self, target: DeviceTarget) -> NetworkSettings:
        return NetworkSettings(
            address=target.desired_address,
            netmask=self.netmask,
            gateway=self.gateway,
            provisioning_server_url=self.provisioning_server_url,
            timezone=self.timezone
        )


class Provisioner:
    """
    Drives one device through the ordered provisioning phases.

    identify -> network settings -> reboot -> wait at new address ->
    firmware check -> (firmware upload -> wait) -> config push ->
    final reboot -> wait -> done

    Any failure aborts the device with ProvisionFailedError. Nothing is
    rolled back: a device that fails after its network reboot keeps the
    new address with whatever firmware and config it had.
    """

    def __init__(
        self,
        client: DeviceClient,
        catalog: FirmwareCatalog,
        poller: OnlineWaitPoller,
        settings: ProvisionSettings,
        config_blob: Optional[str] = None,
        emit: Optional[EventCallback] = None,
        dry_run: bool = False
    ):
        """
        Initialize provisioner.

        Args:
            client: Signed device API client
            catalog: Firmware catalog
            poller: Online-wait poller
            settings: Network and wait settings
            config_blob: Configuration text to push, or None to skip that phase
            emit: Event callback
            dry_run: Identify and check firmware only, change nothing
        """
        self.client = client
        self.catalog = catalog
        self.poller = poller
        self.settings = settings
        self.config_blob = config_blob
        self.emit = emit
        self.dry_run = dry_run
        self.logger = get_logger("algo_provision.provisioner")

    def _event(self, kind: EventKind, target: DeviceTarget, phase: ProvisionPhase,
               message: str, **details) -> None:
        if self.emit is None:
            return
        self.emit(ProvisionEvent(
            kind=kind,
            address=target.current_address,
            desired_address=target.desired_address,
            phase=phase.value,
            message=message,
            details=details
        ))

    def _wait(self, target: DeviceTarget, grace: float) -> None:
        address = target.desired_address
        result = self.poller.wait_online(
            address,
            grace_seconds=grace,
            total_timeout=grace + self.settings.online_timeout
        )
        if not result.online:
            raise OnlineWaitTimeoutError(address, grace + self.settings.online_timeout, result.last_error)

    def provision(self, target: DeviceTarget) -> PipelineOutcome:
        """
        Provision one device.

        Args:
            target: Current and desired address

        Returns:
            Successful PipelineOutcome

        Raises:
            ProvisionFailedError: If any phase fails
        """
        phase = ProvisionPhase.IDENTIFY
        old_ip = target.current_address
        new_ip = target.desired_address
        firmware_updated = False

        try:
            # Identify
            self._event(EventKind.PHASE_ENTERED, target, phase, f"Identifying device at {old_ip}")
            try:
                info = self.client.get_device_info(old_ip)
            except PipelineError as e:
                raise IdentifyError(old_ip, str(e)) from e
            self._event(
                EventKind.PHASE_ENTERED, target, phase,
                f"{info.model} detected (FW {info.firmware_version})",
                model=info.model, firmware_version=info.firmware_version
            )

            if self.dry_run:
                return self._dry_run(target, info)

            # Network settings, applied exactly once, at the current address
            phase = ProvisionPhase.NETWORK_APPLIED
            network = self.settings.network_for(target)
            self._event(EventKind.PHASE_ENTERED, target, phase, f"Applying static IP {new_ip}")
            self.client.apply_settings(old_ip, network.to_payload())

            phase = ProvisionPhase.NETWORK_REBOOTED
            self._event(EventKind.PHASE_ENTERED, target, phase, f"Rebooting {old_ip}")
            self.client.reboot(old_ip)

            phase = ProvisionPhase.NETWORK_ONLINE
            self._event(EventKind.PHASE_ENTERED, target, phase, f"Waiting for {new_ip}")
            self._wait(target, self.settings.reboot_grace)

            # Firmware
            phase = ProvisionPhase.FIRMWARE_CHECKED
            self._event(EventKind.PHASE_ENTERED, target, phase, f"Checking firmware on {new_ip}")
            stable_info = self.client.get_device_info(new_ip)
            entry = self.catalog.needs_update(stable_info)

            if entry is None:
                self._event(
                    EventKind.PHASE_SKIPPED, target, ProvisionPhase.FIRMWARE_APPLIED,
                    f"Firmware up to date ({stable_info.firmware_version})",
                    model=stable_info.model, firmware_version=stable_info.firmware_version
                )
            else:
                phase = ProvisionPhase.FIRMWARE_APPLIED
                self._event(
                    EventKind.PHASE_ENTERED, target, phase,
                    f"Firmware update required: {stable_info.firmware_version} -> {entry.target_version}",
                    artifact=entry.artifact
                )
                artifact_path = self.catalog.resolve_artifact(entry)
                self.catalog.verify_artifact(entry, artifact_path)
                self.client.upload_firmware(new_ip, artifact_path)
                firmware_updated = True

                phase = ProvisionPhase.FIRMWARE_ONLINE
                self._event(EventKind.PHASE_ENTERED, target, phase, f"Waiting for {new_ip} to finish flashing")
                self._wait(target, self.settings.firmware_grace)

            # Final configuration
            phase = ProvisionPhase.CONFIG_APPLIED
            if self.config_blob is None:
                self._event(EventKind.PHASE_SKIPPED, target, phase, "No configuration blob, skipping")
            else:
                self._event(EventKind.PHASE_ENTERED, target, phase, f"Applying configuration to {new_ip}")
                self.client.push_config(new_ip, self.config_blob)

            phase = ProvisionPhase.FINAL_REBOOTED
            self._event(EventKind.PHASE_ENTERED, target, phase, f"Rebooting {new_ip}")
            self.client.reboot(new_ip)

            phase = ProvisionPhase.FINAL_ONLINE
            self._event(EventKind.PHASE_ENTERED, target, phase, f"Waiting for {new_ip}")
            self._wait(target, self.settings.reboot_grace)

        except (PipelineError, OSError, ValueError) as e:
            reason = str(e)
            if phase in _NETWORK_COMMITTED:
                reason += f" (no rollback: device may now be at {new_ip} with partial configuration)"
            self._event(EventKind.PHASE_FAILED, target, phase, reason, error=type(e).__name__)
            raise ProvisionFailedError(old_ip, phase.value, reason) from e

        self._event(EventKind.DEVICE_DONE, target, ProvisionPhase.DONE, f"{new_ip} fully provisioned")
        return PipelineOutcome(
            address=old_ip,
            succeeded=True,
            phase=ProvisionPhase.DONE.value,
            desired_address=new_ip,
            firmware_updated=firmware_updated
        )

    def _dry_run(self, target: DeviceTarget, info: DeviceInfo) -> PipelineOutcome:
        """Report what a real run would do, without touching the device."""
        entry = self.catalog.needs_update(info)
        if entry is None:
            firmware_plan = f"firmware {info.firmware_version} is up to date or has no target"
        else:
            firmware_plan = f"would update firmware {info.firmware_version} -> {entry.target_version}"

        if target.changes_address:
            move_plan = f"would move {target.current_address} -> {target.desired_address}"
        else:
            move_plan = f"would keep address {target.current_address}"

        plan = [move_plan, firmware_plan]
        plan.append("would push configuration" if self.config_blob is not None else "no configuration blob")

        self._event(
            EventKind.DEVICE_DONE, target, ProvisionPhase.DONE,
            "[DRY RUN] " + "; ".join(plan),
            dry_run=True
        )
        return PipelineOutcome(
            address=target.current_address,
            succeeded=True,
            phase=ProvisionPhase.DONE.value,
            desired_address=target.desired_address
        )

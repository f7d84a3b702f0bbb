"""Provisioning event stream and its logging reporter."""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict

from algo_provision.logging_config import get_logger, log_with_context


class EventKind(Enum):
    """Kinds of events emitted by the orchestrator and batch runner."""
    PHASE_ENTERED = "phase_entered"
    PHASE_SKIPPED = "phase_skipped"
    PHASE_FAILED = "phase_failed"
    PROBE_FAILED = "probe_failed"
    DEVICE_DONE = "device_done"
    INPUT_WARNING = "input_warning"
    RUN_COMPLETE = "run_complete"


@dataclass
class ProvisionEvent:
    """One structured event."""
    kind: EventKind
    address: str = ""
    phase: str = ""
    message: str = ""
    desired_address: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


EventCallback = Callable[[ProvisionEvent], None]


class LoggingReporter:
    """Renders provisioning events as log records."""

    _LEVELS = {
        EventKind.PHASE_ENTERED: "info",
        EventKind.PHASE_SKIPPED: "info",
        EventKind.PHASE_FAILED: "error",
        EventKind.PROBE_FAILED: "debug",
        EventKind.DEVICE_DONE: "info",
        EventKind.INPUT_WARNING: "warning",
        EventKind.RUN_COMPLETE: "info",
    }

    def __init__(self, logger=None):
        self.logger = logger or get_logger("algo_provision.report")

    def __call__(self, event: ProvisionEvent) -> None:
        prefix = f"[{event.address}] " if event.address else ""
        log_with_context(
            self.logger,
            self._LEVELS.get(event.kind, "info"),
            f"{prefix}{event.message}",
            address=event.address or None,
            desired_address=event.desired_address or None,
            phase=event.phase or None,
            event=event.kind.value,
            details=event.details or None
        )


def probe_reporter(emit: EventCallback) -> Callable[[str, int, str], None]:
    """Adapt an event callback to the online-wait poller's on_attempt hook."""

    def on_attempt(address: str, attempt: int, failure_kind: str) -> None:
        emit(ProvisionEvent(
            kind=EventKind.PROBE_FAILED,
            address=address,
            message=f"Probe {attempt} failed ({failure_kind})",
            details={"attempt": attempt, "failure": failure_kind}
        ))

    return on_attempt

"""Run the provisioning pipeline over a device list."""

import threading
from typing import Iterable, List, Optional

from algo_provision.events import EventCallback, EventKind, ProvisionEvent
from algo_provision.exceptions import ProvisionFailedError
from algo_provision.logging_config import get_logger
from algo_provision.models import DeviceTarget, PipelineOutcome, RunReport
from algo_provision.provisioner import Provisioner
from algo_provision.worker_pool import WorkerPool


class BatchRunner:
    """Provisions each target and records one outcome per device."""

    def __init__(
        self,
        provisioner: Provisioner,
        workers: int = 1,
        emit: Optional[EventCallback] = None
    ):
        """
        Initialize batch runner.

        Args:
            provisioner: Per-device orchestrator
            workers: Devices processed concurrently (1 = strictly sequential)
            emit: Event callback
        """
        self.provisioner = provisioner
        self.workers = max(1, workers)
        self.emit = emit
        self.logger = get_logger("algo_provision.batch")

    def run(self, targets: Iterable[DeviceTarget], warnings: Optional[List[str]] = None) -> RunReport:
        """
        Provision every target.

        A failing device is recorded and never stops the run.

        Args:
            targets: Devices in input order
            warnings: Input warnings to carry into the report (skipped lines)

        Returns:
            RunReport with outcomes in input order
        """
        targets = list(targets)
        report = RunReport(warnings=list(warnings or []), dry_run=self.provisioner.dry_run)

        for warning in report.warnings:
            self._emit(EventKind.INPUT_WARNING, f"Skipped input line: {warning}")

        self.logger.info(f"Starting provisioning for {len(targets)} devices")

        if self.workers == 1 or len(targets) <= 1:
            report.outcomes = [self._provision_one(target) for target in targets]
        else:
            report.outcomes = self._run_parallel(targets)

        summary = report.summary
        self._emit(
            EventKind.RUN_COMPLETE,
            f"Completed: {summary.succeeded_count} success, {summary.failed_count} failed",
            **summary.to_dict()
        )
        return report

    def _run_parallel(self, targets: List[DeviceTarget]) -> List[PipelineOutcome]:
        outcomes: List[Optional[PipelineOutcome]] = [None] * len(targets)
        lock = threading.Lock()

        def work(index: int, target: DeviceTarget) -> None:
            outcome = self._provision_one(target)
            with lock:
                outcomes[index] = outcome

        with WorkerPool(min(self.workers, len(targets))) as pool:
            for index, target in enumerate(targets):
                pool.submit(index, target.current_address, work, index, target)
            pool.join()

        return outcomes

    def _provision_one(self, target: DeviceTarget) -> PipelineOutcome:
        try:
            return self.provisioner.provision(target)
        except ProvisionFailedError as e:
            self.logger.error(f"[FAIL] {e.address}: {e.reason}")
            return PipelineOutcome(
                address=target.current_address,
                succeeded=False,
                failure_reason=e.reason,
                phase=e.phase,
                desired_address=target.desired_address
            )
        except Exception as e:
            self.logger.error(f"[FAIL] {target.current_address}: unexpected error: {e}", exc_info=True)
            return PipelineOutcome(
                address=target.current_address,
                succeeded=False,
                failure_reason=f"unexpected error: {e}",
                desired_address=target.desired_address
            )

    def _emit(self, kind: EventKind, message: str, **details) -> None:
        if self.emit is not None:
            self.emit(ProvisionEvent(kind=kind, message=message, details=details))

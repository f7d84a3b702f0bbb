"""Wait for a device to answer again after a reboot or firmware flash."""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from algo_provision.exceptions import DeviceApiError, PipelineError
from algo_provision.logging_config import get_logger

FAILURE_AUTH = "auth"
FAILURE_UNREACHABLE = "unreachable"


@dataclass
class WaitResult:
    """Result of a wait_online call."""
    online: bool
    attempts: int
    elapsed: float
    last_error: Optional[str] = None


def classify_probe_failure(error: Exception) -> str:
    """Auth rejection means the device is up but clock-skewed; anything else means still booting."""
    if isinstance(error, DeviceApiError) and error.status == 403:
        return FAILURE_AUTH
    return FAILURE_UNREACHABLE


class OnlineWaitPoller:
    """Grace sleep followed by fixed-cadence identification probes."""

    def __init__(
        self,
        probe: Callable[[str], object],
        retry_interval: float,
        total_timeout: float,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_attempt: Optional[Callable[[str, int, str], None]] = None
    ):
        """
        Initialize poller.

        Args:
            probe: Callable identifying the device at an address; raises on failure
            retry_interval: Seconds between probes
            total_timeout: Default total budget (grace + probing) in seconds
            sleep: Sleep function (injectable for tests)
            clock: Monotonic clock (injectable for tests)
            on_attempt: Called with (address, attempt, failure_kind) after each failed probe
        """
        self.probe = probe
        self.retry_interval = retry_interval
        self.total_timeout = total_timeout
        self.sleep = sleep
        self.clock = clock
        self.on_attempt = on_attempt
        self.logger = get_logger("algo_provision.online_wait")

    def wait_online(
        self,
        address: str,
        grace_seconds: float,
        total_timeout: Optional[float] = None
    ) -> WaitResult:
        """
        Wait until the device answers at address.

        Args:
            address: Address to probe (the new address when one is in flight)
            grace_seconds: Unconditional initial wait
            total_timeout: Overall budget including the grace period

        Returns:
            WaitResult; online is False on timeout
        """
        if total_timeout is None:
            total_timeout = self.total_timeout

        start = self.clock()
        self.logger.info(f"Waiting {grace_seconds:g}s for {address} to initialize")
        self.sleep(grace_seconds)

        attempts = 0
        last_error = None

        while True:
            attempts += 1
            try:
                self.probe(address)
            except PipelineError as e:
                kind = classify_probe_failure(e)
                last_error = str(e)
                if kind == FAILURE_AUTH:
                    self.logger.debug(f"{address} is up but rejected authentication (attempt {attempts})")
                else:
                    self.logger.debug(f"{address} not reachable yet (attempt {attempts}): {e}")
                if self.on_attempt:
                    self.on_attempt(address, attempts, kind)
            else:
                elapsed = self.clock() - start
                self.logger.info(f"{address} is online after {elapsed:.0f}s ({attempts} probes)")
                return WaitResult(online=True, attempts=attempts, elapsed=elapsed)

            elapsed = self.clock() - start
            if elapsed + self.retry_interval > total_timeout:
                break
            self.sleep(self.retry_interval)

        elapsed = self.clock() - start
        self.logger.warning(f"{address} did not come back within {total_timeout:g}s")
        return WaitResult(online=False, attempts=attempts, elapsed=elapsed, last_error=last_error)

"""Custom exceptions for the Algo provisioning pipeline."""

from typing import Optional, Union


class ProvisionError(Exception):
    """Base exception for all provisioning errors."""
    pass


class ConfigurationError(ProvisionError):
    """Exception raised for configuration errors."""
    pass


class MalformedInputLineError(ProvisionError):
    """Exception raised when a device list line cannot be parsed."""

    def __init__(self, line_number: int, line: str, reason: str):
        """
        Initialize malformed input line error.

        Args:
            line_number: 1-based line number in the device list
            line: Raw line text
            reason: Why the line was rejected
        """
        self.line_number = line_number
        self.line = line
        self.reason = reason
        message = f"Line {line_number}: {reason} ({line!r})"
        super().__init__(message)


class PipelineError(ProvisionError):
    """Base exception for failures that abort a single device."""
    pass


class DeviceApiError(PipelineError):
    """Exception raised when the device control API returns an error status."""

    def __init__(self, address: str, status: Union[int, str], message: str = ""):
        """
        Initialize device API error.

        Args:
            address: Device address
            status: HTTP status code
            message: Response text or reason
        """
        self.address = address
        self.status = status
        self.message = message

        text = f"Device {address} returned HTTP {status}"
        if message:
            text += f": {message}"
        super().__init__(text)


class AuthClockSkewError(DeviceApiError):
    """Exception raised when authentication is still rejected after clock correction."""

    def __init__(self, address: str, offset: int, message: str = ""):
        """
        Initialize clock skew error.

        Args:
            address: Device address
            offset: Clock offset in seconds applied on the retry
            message: Response text or reason
        """
        self.offset = offset
        super().__init__(address, 403, message or f"rejected after clock correction of {offset}s")


class NetworkUnreachableError(PipelineError):
    """Exception raised when the device cannot be reached at the network level."""

    def __init__(self, address: str, reason: str):
        """
        Initialize network unreachable error.

        Args:
            address: Device address
            reason: Underlying transport error
        """
        self.address = address
        self.reason = reason
        super().__init__(f"Device {address} unreachable: {reason}")


class IdentifyError(PipelineError):
    """Exception raised when a device cannot be identified."""

    def __init__(self, address: str, reason: str):
        """
        Initialize identify error.

        Args:
            address: Device address
            reason: Failure reason
        """
        self.address = address
        self.reason = reason
        super().__init__(f"Could not identify device at {address}: {reason}")


class OnlineWaitTimeoutError(PipelineError):
    """Exception raised when a device does not come back online in time."""

    def __init__(self, address: str, timeout: float, last_error: Optional[str] = None):
        """
        Initialize online wait timeout error.

        Args:
            address: Address that was polled
            timeout: Total timeout in seconds
            last_error: Last probe failure, if any
        """
        self.address = address
        self.timeout = timeout
        self.last_error = last_error

        message = f"Device {address} did not return online within {timeout:g}s"
        if last_error:
            message += f" (last error: {last_error})"
        super().__init__(message)


class FirmwareArtifactMissingError(PipelineError):
    """Exception raised when the firmware file for a catalog entry is absent."""

    def __init__(self, path):
        """
        Initialize firmware artifact missing error.

        Args:
            path: Expected artifact path
        """
        self.path = path
        super().__init__(f"Firmware artifact missing: {path}")


class ArtifactChecksumError(PipelineError):
    """Exception raised when a firmware artifact does not match its catalog hash."""

    def __init__(self, path, expected: str, actual: str):
        """
        Initialize artifact checksum error.

        Args:
            path: Artifact path
            expected: Expected SHA256 hash
            actual: Computed SHA256 hash
        """
        self.path = path
        self.expected = expected
        self.actual = actual

        message = (
            f"Checksum mismatch for {path}! "
            f"Expected: {expected[:16]}..., "
            f"Actual: {actual[:16]}..."
        )
        super().__init__(message)


class ProvisionFailedError(PipelineError):
    """Exception raised when a device pipeline aborts."""

    def __init__(self, address: str, phase: str, reason: str):
        """
        Initialize provision failed error.

        Args:
            address: Original device address
            phase: Pipeline phase where failure occurred
            reason: Failure reason
        """
        self.address = address
        self.phase = phase
        self.reason = reason
        message = f"Provisioning failed for {address} during {phase}: {reason}"
        super().__init__(message)

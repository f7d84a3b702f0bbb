"""Append-only audit log of rejected device requests."""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from algo_provision.logging_config import get_logger
from algo_provision.utils.file_ops import append_line


class RejectionLog:
    """Records every failed request attempt, one line per attempt."""

    def __init__(self, path: Optional[Path]):
        """
        Initialize rejection log.

        Args:
            path: Log file path, or None to disable file output
        """
        self.path = Path(path) if path else None
        self.logger = get_logger("algo_provision.rejections")

    def record(self, address: str, status: Union[int, str], message: str) -> str:
        """
        Append a rejection record.

        Never raises: a failure to write is logged and the caller continues.

        Args:
            address: Device address
            status: HTTP status code or "NETWORK"
            message: Error message

        Returns:
            ISO timestamp of the record
        """
        timestamp = datetime.now(timezone.utc).isoformat()
        line = f"[{timestamp}] HOST: {address} | STATUS: {status} | MSG: {message}"

        if self.path is not None:
            try:
                append_line(self.path, line)
            except OSError as e:
                self.logger.warning(f"Could not write rejection log {self.path}: {e}")

        return timestamp

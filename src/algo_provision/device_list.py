"""Device list parsing."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List

from algo_provision.exceptions import MalformedInputLineError
from algo_provision.logging_config import get_logger
from algo_provision.models import DeviceTarget

logger = get_logger("algo_provision.device_list")


@dataclass
class DeviceListResult:
    """Parsed targets plus the lines that were skipped."""
    targets: List[DeviceTarget] = field(default_factory=list)
    errors: List[MalformedInputLineError] = field(default_factory=list)

    @property
    def warnings(self) -> List[str]:
        return [str(error) for error in self.errors]


def parse_line(line_number: int, line: str) -> DeviceTarget:
    """
    Parse one `current[,desired]` record.

    Raises:
        MalformedInputLineError: If the current address is missing or there are extra fields
    """
    fields = [part.strip() for part in line.split(",")]

    if len(fields) > 2:
        raise MalformedInputLineError(line_number, line, "expected 'current,desired'")
    if not fields[0]:
        raise MalformedInputLineError(line_number, line, "missing current address")
    if any(" " in value for value in fields):
        raise MalformedInputLineError(line_number, line, "address contains whitespace")

    desired = fields[1] if len(fields) == 2 else ""
    return DeviceTarget(current_address=fields[0], desired_address=desired)


def parse_device_list(lines: Iterable[str]) -> DeviceListResult:
    """
    Parse device list lines.

    Blank lines and lines starting with '#' are ignored. Malformed lines are
    collected as errors and skipped; they never abort parsing.
    """
    result = DeviceListResult()

    for line_number, raw in enumerate(lines, 1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        try:
            result.targets.append(parse_line(line_number, line))
        except MalformedInputLineError as e:
            logger.warning(f"Skipping invalid line: {e}")
            result.errors.append(e)

    return result


def load_device_list(path: Path) -> DeviceListResult:
    """
    Read and parse a device list file.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    with open(path, 'r', encoding="utf-8") as f:
        result = parse_device_list(f)
    logger.info(f"Loaded {len(result.targets)} devices from {path}")
    return result

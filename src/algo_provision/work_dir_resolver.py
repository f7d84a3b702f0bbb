"""Resolve the work directory holding config, firmware and logs."""

import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from algo_provision import constants

ENV_VAR_NAME = "ALGO_PROVISION_HOME"
USER_CONFIG_FILE = ".algo-provision.config.json"
DEFAULT_WORK_DIR = constants.DEFAULT_WORK_DIR


class ConfigSource(Enum):
    """Where the work directory came from."""
    CLI_FLAG = "from --work-dir flag"
    ENV_VAR = f"from {ENV_VAR_NAME} environment variable"
    USER_CONFIG = f"from ~/{USER_CONFIG_FILE}"
    DEFAULT = "default"


@dataclass
class WorkDirResolution:
    """Resolved work directory and its source."""
    path: Path
    source: ConfigSource

    def log_message(self) -> str:
        return f"Work directory: {self.path} ({self.source.value})"


def get_user_config_path() -> Path:
    return Path.home() / USER_CONFIG_FILE


def read_user_config() -> Optional[dict]:
    """Return the per-user pointer file contents, or None if absent or unreadable."""
    path = get_user_config_path()
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError, OSError):
        return None
    return data if isinstance(data, dict) else None


def write_user_config(work_dir: Path) -> Path:
    """
    Record work_dir in ~/.algo-provision.config.json.

    Args:
        work_dir: Work directory path to store

    Returns:
        Path to the written file
    """
    from algo_provision.utils.file_ops import atomic_write_json

    path = get_user_config_path()
    atomic_write_json(path, {
        "work_dir": str(work_dir),
        "created_at": datetime.now(timezone.utc).isoformat(),
        "created_by": "algo-provision init",
    })
    return path


def resolve_work_dir(cli_work_dir: Optional[str] = None) -> WorkDirResolution:
    """
    Resolve the work directory.

    Priority order: --work-dir flag, ALGO_PROVISION_HOME, the user pointer
    file, then /opt/algo-provision.
    """
    candidates = [
        (cli_work_dir, ConfigSource.CLI_FLAG),
        (os.getenv(ENV_VAR_NAME), ConfigSource.ENV_VAR),
        ((read_user_config() or {}).get("work_dir"), ConfigSource.USER_CONFIG),
    ]
    for value, source in candidates:
        if value:
            return WorkDirResolution(path=Path(value).expanduser().resolve(), source=source)

    return WorkDirResolution(path=DEFAULT_WORK_DIR, source=ConfigSource.DEFAULT)

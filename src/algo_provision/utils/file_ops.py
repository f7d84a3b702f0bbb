"""File helpers: atomic JSON snapshots and single-write appends."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Iterable, Optional


def atomic_write_json(file_path: Path, data: Dict[str, Any]) -> None:
    """
    Replace file_path with the JSON encoding of data.

    The document is written and fsynced under a temporary name in the same
    directory, then renamed over the target, so readers see either the old
    file or the complete new one.

    Args:
        file_path: Destination file path
        data: Dictionary to write as JSON
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        'w',
        dir=file_path.parent,
        prefix=f".{file_path.name}.",
        suffix=".tmp",
        delete=False
    ) as tmp:
        json.dump(data, tmp, indent=2, sort_keys=True)
        tmp.flush()
        os.fsync(tmp.fileno())

    try:
        os.replace(tmp.name, file_path)
    except OSError:
        Path(tmp.name).unlink(missing_ok=True)
        raise


def safe_read_json(file_path: Path, default: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Load a JSON document, or return default when the file does not exist.

    Raises:
        ValueError: If the file exists but is not valid JSON
    """
    try:
        with open(file_path, 'r') as f:
            return json.load(f)
    except FileNotFoundError:
        return {} if default is None else default
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {file_path}: {e}")


def append_line(file_path: Path, line: str) -> None:
    """
    Append one line using a single write on an O_APPEND descriptor.

    Concurrent writers never interleave within a line.

    Args:
        file_path: Destination file path
        line: Line text (a trailing newline is added if missing)
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    if not line.endswith("\n"):
        line += "\n"

    fd = os.open(file_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
    try:
        os.write(fd, line.encode("utf-8"))
    finally:
        os.close(fd)


def ensure_directory_structure(base_path: Path, directories: Iterable[str]) -> None:
    """Create each relative directory under base_path."""
    for directory in directories:
        (Path(base_path) / directory).mkdir(parents=True, exist_ok=True)

"""Firmware targets per device model and version comparison."""

import hashlib
import json
import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from algo_provision import constants
from algo_provision.exceptions import (
    ArtifactChecksumError, ConfigurationError, FirmwareArtifactMissingError
)
from algo_provision.logging_config import get_logger
from algo_provision.models import DeviceInfo, FirmwareEntry

_LEADING_DIGITS = re.compile(r"\d+")


def parse_version(version: str) -> Tuple[int, ...]:
    """
    Split a dotted version into integer components.

    Raises:
        ValueError: If any component is not a non-negative integer
    """
    parts = str(version).strip().split(".")
    if not all(part.isdigit() for part in parts):
        raise ValueError(f"Invalid version string: {version!r}")
    return tuple(int(part) for part in parts)


def version_components(version: str) -> Tuple[int, ...]:
    """
    Lenient component split used for comparisons; never raises.

    Each component contributes its leading digits, so "1-rc1" reads as 1,
    and a component without leading digits reads as 0.
    """
    components = []
    for part in str(version).strip().split("."):
        match = _LEADING_DIGITS.match(part.strip())
        components.append(int(match.group()) if match else 0)
    return tuple(components)


def is_version_older(current: str, target: str) -> bool:
    """
    Return True if current is strictly older than target.

    Components compare numerically left to right; a missing trailing
    component counts as zero, so "3.3" equals "3.3.0". Malformed input is
    read leniently through version_components.
    """
    current_parts = version_components(current)
    target_parts = version_components(target)
    width = max(len(current_parts), len(target_parts))

    for index in range(width):
        c = current_parts[index] if index < len(current_parts) else 0
        t = target_parts[index] if index < len(target_parts) else 0
        if t > c:
            return True
        if c > t:
            return False
    return False


class FirmwareCatalog:
    """Read-only mapping from device model to firmware target."""

    def __init__(self, entries: Mapping[str, FirmwareEntry], artifact_dir: Path):
        """
        Initialize firmware catalog.

        Args:
            entries: Model name to FirmwareEntry
            artifact_dir: Directory firmware files are resolved against
        """
        self._entries: Dict[str, FirmwareEntry] = dict(entries)
        self.artifact_dir = Path(artifact_dir)
        self.logger = get_logger("algo_provision.firmware_catalog")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], artifact_dir: Path) -> "FirmwareCatalog":
        """
        Build a catalog from {model: {version, file, sha256?}}.

        Raises:
            ConfigurationError: If an entry is malformed
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("Firmware catalog must be a mapping of model name to entry")

        entries = {}
        for model, raw in data.items():
            if not isinstance(raw, Mapping) or not raw.get("version") or not raw.get("file"):
                raise ConfigurationError(
                    f"Firmware catalog entry for {model!r} needs 'version' and 'file'"
                )
            version = str(raw["version"])
            try:
                parse_version(version)
            except ValueError as e:
                raise ConfigurationError(f"Firmware catalog entry for {model!r}: {e}")
            entries[str(model)] = FirmwareEntry(
                target_version=version,
                artifact=str(raw["file"]),
                sha256=str(raw.get("sha256", "")).lower().strip()
            )
        return cls(entries, artifact_dir)

    @classmethod
    def load(cls, path: Path, artifact_dir: Path) -> "FirmwareCatalog":
        """
        Load a catalog file (.json, .yaml or .yml).

        A missing file yields the built-in default catalog.
        """
        path = Path(path)
        logger = get_logger("algo_provision.firmware_catalog")

        if not path.exists():
            logger.info(f"No firmware catalog at {path}, using built-in defaults")
            return cls.from_mapping(constants.DEFAULT_FIRMWARE_CATALOG, artifact_dir)

        try:
            with open(path, 'r') as f:
                if path.suffix.lower() == ".json":
                    data = json.load(f)
                else:
                    data = yaml.safe_load(f) or {}
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Invalid firmware catalog {path}: {e}")

        catalog = cls.from_mapping(data, artifact_dir)
        logger.info(f"Loaded firmware targets for {len(catalog)} models from {path}")
        return catalog

    def __len__(self) -> int:
        return len(self._entries)

    def models(self) -> List[str]:
        return sorted(self._entries)

    def lookup(self, model: str) -> Optional[FirmwareEntry]:
        """Catalog entry for a model, or None if the model is unknown."""
        return self._entries.get(model)

    def needs_update(self, info: DeviceInfo) -> Optional[FirmwareEntry]:
        """
        Entry to install on this device, if any.

        Returns:
            FirmwareEntry when the model is known and its version is older
            than the target, None otherwise
        """
        entry = self.lookup(info.model)
        if entry is None:
            self.logger.info(f"No firmware target for model {info.model!r}")
            return None
        if is_version_older(info.firmware_version, entry.target_version):
            return entry
        return None

    def resolve_artifact(self, entry: FirmwareEntry) -> Path:
        """
        Local path of the entry's firmware file.

        Raises:
            FirmwareArtifactMissingError: If the file does not exist
        """
        path = self.artifact_dir / entry.artifact
        if not path.is_file():
            raise FirmwareArtifactMissingError(path)
        return path

    def verify_artifact(self, entry: FirmwareEntry, path: Path) -> None:
        """
        Check the artifact against the entry's SHA256, when one is configured.

        Raises:
            ArtifactChecksumError: If the hashes differ
        """
        if not entry.sha256:
            return

        digest = hashlib.sha256()
        with open(path, 'rb') as f:
            for chunk in iter(lambda: f.read(1024 * 1024), b""):
                digest.update(chunk)
        actual = digest.hexdigest()

        if actual != entry.sha256:
            raise ArtifactChecksumError(path, entry.sha256, actual)
        self.logger.info(f"Checksum verified for {path.name}")

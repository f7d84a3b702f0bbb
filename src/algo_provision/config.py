"""Configuration management."""

from pathlib import Path
from typing import Any, Dict, Optional

from algo_provision import constants
from algo_provision.utils.file_ops import atomic_write_json, safe_read_json, ensure_directory_structure


class Config:
    """Application configuration manager."""

    def __init__(self, config_file: Optional[Path] = None, work_dir: Optional[Path] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to config file (if not provided, uses work_dir/config/config.json)
            work_dir: Working directory (should be resolved via work_dir_resolver before calling)
        """
        self.work_dir = Path(work_dir) if work_dir else constants.DEFAULT_WORK_DIR

        if config_file:
            self.config_file = Path(config_file)
        else:
            self.config_file = self.work_dir / constants.CONFIG_SUBDIR / constants.CONFIG_FILE_NAME

        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file, layered over the defaults."""
        loaded = safe_read_json(self.config_file, {})
        self._config = _deep_merge(self._get_default_config(), loaded)

        self._ensure_directories()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration."""
        return {
            "device": {
                "secret": "algo",
                "principal": constants.DEFAULT_PRINCIPAL,
                "verify_tls": False,
                "request_timeout": constants.DEFAULT_REQUEST_TIMEOUT,
                "firmware_timeout": constants.DEFAULT_FIRMWARE_TIMEOUT
            },
            "network": {
                "netmask": constants.DEFAULT_NETMASK,
                "gateway": "",
                "provisioning_server_url": "",
                "timezone": ""
            },
            "wait": {
                "reboot_grace": constants.DEFAULT_REBOOT_GRACE,
                "firmware_grace": constants.DEFAULT_FIRMWARE_GRACE,
                "retry_interval": constants.DEFAULT_RETRY_INTERVAL,
                "online_timeout": constants.DEFAULT_ONLINE_TIMEOUT
            },
            "workers": {
                "max": constants.DEFAULT_WORKERS
            },
            "logging": {
                "level": constants.DEFAULT_LOG_LEVEL
            },
            "paths": {
                "firmware_catalog": str(
                    self.work_dir / constants.CONFIG_SUBDIR / constants.FIRMWARE_CATALOG_FILE_NAME
                ),
                "firmware_dir": str(self.work_dir / constants.DIR_FIRMWARE),
                "rejection_log": str(self.work_dir / constants.DIR_LOGS / constants.REJECTION_LOG_FILE_NAME),
                "config_blob": ""
            }
        }

    def _ensure_directories(self) -> None:
        """Ensure all required directories exist."""
        directories = [
            constants.DIR_CONFIG,
            constants.DIR_FIRMWARE,
            constants.DIR_STATUS,
            constants.DIR_LOGS_STRUCTURED,
            constants.DIR_LOGS_TEXT,
        ]
        ensure_directory_structure(self.work_dir, directories)

    def save(self) -> None:
        """Save configuration to file."""
        atomic_write_json(self.config_file, self._config)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., "network.gateway")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value by dot-notation key.

        Args:
            key: Configuration key (e.g., "network.gateway")
            value: Value to set
        """
        keys = key.split('.')
        config = self._config

        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value
        self.save()

    def get_path(self, relative_path: str) -> Path:
        """Get absolute path for a relative path within work directory."""
        return self.work_dir / relative_path

    @property
    def device_secret(self) -> str:
        """Get shared HMAC secret for the device API."""
        return self.get("device.secret", "")

    @property
    def device_principal(self) -> str:
        """Get principal name carried in the Authorization header."""
        return self.get("device.principal", constants.DEFAULT_PRINCIPAL)

    @property
    def verify_tls(self) -> bool:
        """Whether to verify device TLS certificates."""
        return bool(self.get("device.verify_tls", False))

    @property
    def request_timeout(self) -> float:
        """Get timeout for settings and control calls in seconds."""
        return self.get("device.request_timeout", constants.DEFAULT_REQUEST_TIMEOUT)

    @property
    def firmware_timeout(self) -> float:
        """Get timeout for firmware uploads in seconds."""
        return self.get("device.firmware_timeout", constants.DEFAULT_FIRMWARE_TIMEOUT)

    @property
    def netmask(self) -> str:
        return self.get("network.netmask", constants.DEFAULT_NETMASK)

    @property
    def gateway(self) -> str:
        return self.get("network.gateway", "")

    @property
    def provisioning_server_url(self) -> str:
        return self.get("network.provisioning_server_url", "")

    @property
    def timezone(self) -> Optional[str]:
        return self.get("network.timezone") or None

    @property
    def reboot_grace(self) -> float:
        """Get grace period after a plain reboot in seconds."""
        return self.get("wait.reboot_grace", constants.DEFAULT_REBOOT_GRACE)

    @property
    def firmware_grace(self) -> float:
        """Get grace period after a firmware flash in seconds."""
        return self.get("wait.firmware_grace", constants.DEFAULT_FIRMWARE_GRACE)

    @property
    def retry_interval(self) -> float:
        """Get interval between online probes in seconds."""
        return self.get("wait.retry_interval", constants.DEFAULT_RETRY_INTERVAL)

    @property
    def online_timeout(self) -> float:
        """Get total time allowed for a device to come back online in seconds."""
        return self.get("wait.online_timeout", constants.DEFAULT_ONLINE_TIMEOUT)

    @property
    def max_workers(self) -> int:
        """Get maximum number of concurrent devices."""
        return max(1, min(self.get("workers.max", constants.DEFAULT_WORKERS), constants.MAX_WORKERS))

    @property
    def firmware_catalog_file(self) -> Path:
        """Get firmware catalog file path."""
        default_path = self.work_dir / constants.CONFIG_SUBDIR / constants.FIRMWARE_CATALOG_FILE_NAME
        return Path(self.get("paths.firmware_catalog", str(default_path)))

    @property
    def firmware_dir(self) -> Path:
        """Get directory firmware artifacts are resolved against."""
        return Path(self.get("paths.firmware_dir", str(self.work_dir / constants.DIR_FIRMWARE)))

    @property
    def rejection_log_file(self) -> Path:
        """Get rejection log path."""
        default_path = self.work_dir / constants.DIR_LOGS / constants.REJECTION_LOG_FILE_NAME
        return Path(self.get("paths.rejection_log", str(default_path)))

    @property
    def config_blob_file(self) -> Optional[Path]:
        """Get default configuration blob path, if any."""
        value = self.get("paths.config_blob", "")
        return Path(value) if value else None


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# Global config instance
_config: Optional[Config] = None


def get_config(config_file: Optional[Path] = None, work_dir: Optional[Path] = None) -> Config:
    """
    Get global configuration instance.

    Args:
        config_file: Path to config file (only used on first call)
        work_dir: Working directory (only used on first call)

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config(config_file, work_dir)
    return _config

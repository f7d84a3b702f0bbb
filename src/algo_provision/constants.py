"""Application-wide constants."""

from pathlib import Path

# Default work directory (used as fallback when no other source specifies it)
# Priority order: CLI flag > ENV var > ~/.algo-provision.config.json > this default
DEFAULT_WORK_DIR = Path("/opt/algo-provision")

# Note: These are relative paths within work_dir, not absolute paths
CONFIG_SUBDIR = "config"
CONFIG_FILE_NAME = "config.json"
FIRMWARE_CATALOG_FILE_NAME = "firmware_catalog.yaml"
REJECTION_LOG_FILE_NAME = "rejections.log"
LAST_RUN_FILE_NAME = "last_run.json"

# Directory structure
DIR_CONFIG = "config"
DIR_FIRMWARE = "firmware"
DIR_STATUS = "status"
DIR_LOGS = "logs"
DIR_LOGS_STRUCTURED = "logs/structured"
DIR_LOGS_TEXT = "logs/text"

# Device control API
API_INFO_ABOUT = "/api/info/about"
API_SETTINGS = "/api/settings"
API_REBOOT = "/api/controls/reboot"
API_FIRMWARE = "/api/firmware"

INFO_FIELD_MODEL = "Product Name"
INFO_FIELD_FIRMWARE = "Firmware Version"

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_BINARY = "application/octet-stream"

# Request signing
DEFAULT_PRINCIPAL = "admin"
NONCE_LIMIT = 1_000_000
SIGNATURE_DELIMITER = ":"

# Rejection log status for failures without an HTTP response
STATUS_NETWORK = "NETWORK"

# Default configuration values
DEFAULT_WORKERS = 1
MAX_WORKERS = 16
DEFAULT_REQUEST_TIMEOUT = 10
DEFAULT_FIRMWARE_TIMEOUT = 120
DEFAULT_REBOOT_GRACE = 90
DEFAULT_FIRMWARE_GRACE = 180
DEFAULT_RETRY_INTERVAL = 3
DEFAULT_ONLINE_TIMEOUT = 240
DEFAULT_NETMASK = "255.255.255.0"
DEFAULT_LOG_LEVEL = "INFO"

# Built-in firmware targets, used when no catalog file exists
DEFAULT_FIRMWARE_CATALOG = {
    "Algo 8301 Paging Adapter": {
        "version": "3.3.0",
        "file": "8301_v3.3.0.bin",
    },
    "Algo 8186 SIP Horn Speaker": {
        "version": "4.5.1",
        "file": "8186_v4.5.1.bin",
    },
}

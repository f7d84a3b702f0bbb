#!/usr/bin/env python3
"""Initialize an algo-provision work directory."""

import argparse
import sys
from pathlib import Path

import yaml

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from algo_provision import constants
from algo_provision.config import get_config
from algo_provision.logging_config import setup_logging
from algo_provision.work_dir_resolver import (
    resolve_work_dir,
    write_user_config,
    get_user_config_path,
    ENV_VAR_NAME,
    DEFAULT_WORK_DIR
)


def main():
    """Create directories, default config and a starter firmware catalog."""
    parser = argparse.ArgumentParser(
        description="Initialize the Algo provisioning work directory",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Work directory resolution priority:
  1. --work-dir flag
  2. {ENV_VAR_NAME} environment variable
  3. ~/.algo-provision.config.json (created by this script)
  4. Default: {DEFAULT_WORK_DIR}

Example:
  python scripts/init_system.py --work-dir ~/algo-provision
"""
    )
    parser.add_argument('--work-dir', type=str, help='Working directory for config, firmware and logs')
    parser.add_argument('--no-user-config', action='store_true',
                        help='Do not write ~/.algo-provision.config.json')
    args = parser.parse_args()

    resolution = resolve_work_dir(cli_work_dir=args.work_dir)
    print(resolution.log_message())

    config = get_config(work_dir=resolution.path)
    if not config.config_file.exists():
        config.save()
        print(f"✓ Wrote default configuration: {config.config_file}")

    catalog_file = config.firmware_catalog_file
    if not catalog_file.exists():
        catalog_file.parent.mkdir(parents=True, exist_ok=True)
        with open(catalog_file, 'w') as f:
            yaml.safe_dump(constants.DEFAULT_FIRMWARE_CATALOG, f, sort_keys=True)
        print(f"✓ Wrote starter firmware catalog: {catalog_file}")

    if not args.no_user_config:
        try:
            print(f"✓ Wrote user config: {write_user_config(resolution.path)}")
        except OSError as e:
            print(f"⚠ Could not write user config {get_user_config_path()}: {e}")

    logger = setup_logging(config.get_path(constants.DIR_LOGS), "INFO", console_output=False)
    logger.info("Work directory initialized")

    print()
    print("Next steps:")
    print("1. Set the site network values:")
    print("   algo-provision config set network.gateway 10.4.172.1")
    print("   algo-provision config set network.provisioning_server_url http://10.4.170.10:8080/")
    print(f"2. Copy firmware images into {config.firmware_dir}")
    print("3. Run: algo-provision run ip_speakers.txt --config-blob config.txt")


if __name__ == "__main__":
    main()

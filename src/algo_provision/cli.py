"""CLI interface for the Algo provisioning pipeline."""

import sys
from pathlib import Path

import click

from algo_provision import __version__, constants
from algo_provision.config import get_config
from algo_provision.logging_config import setup_logging
from algo_provision.work_dir_resolver import resolve_work_dir, ENV_VAR_NAME


@click.group()
@click.version_option(version=__version__)
@click.option('--work-dir', type=click.Path(),
              help=f'Working directory. Priority: CLI flag > {ENV_VAR_NAME} env var > '
                   f'~/.algo-provision.config.json > /opt/algo-provision')
@click.pass_context
def main(ctx, work_dir):
    """Algo Provisioner - re-address, update and configure paging endpoints."""
    ctx.ensure_object(dict)

    resolution = resolve_work_dir(cli_work_dir=work_dir)

    config = get_config(work_dir=resolution.path)
    ctx.obj['config'] = config
    ctx.obj['work_dir_resolution'] = resolution

    log_dir = config.get_path(constants.DIR_LOGS)
    log_level = config.get("logging.level", constants.DEFAULT_LOG_LEVEL)
    logger = setup_logging(log_dir, log_level, console_output=True)
    ctx.obj['logger'] = logger

    logger.info(resolution.log_message())
    logger.info(f"Configuration loaded: {config.config_file}")


def _build_client(config):
    from algo_provision.device_client import DeviceClient
    from algo_provision.rejection_log import RejectionLog

    return DeviceClient(
        secret=config.device_secret,
        principal=config.device_principal,
        request_timeout=config.request_timeout,
        firmware_timeout=config.firmware_timeout,
        rejection_log=RejectionLog(config.rejection_log_file),
        verify_tls=config.verify_tls
    )


def _load_catalog(config):
    from algo_provision.firmware_catalog import FirmwareCatalog
    from algo_provision.exceptions import ConfigurationError

    try:
        return FirmwareCatalog.load(config.firmware_catalog_file, config.firmware_dir)
    except ConfigurationError as e:
        raise click.ClickException(str(e))


# ============================================================================
# Provisioning
# ============================================================================

@main.command()
@click.argument('device_list', type=click.Path(exists=True, dir_okay=False))
@click.option('--config-blob', type=click.Path(dir_okay=False),
              help='Configuration file pushed to every device (overrides paths.config_blob)')
@click.option('--dry-run', is_flag=True, help='Identify devices and check firmware without changing anything')
@click.option('--workers', type=int, help='Devices to provision concurrently (default: workers.max)')
@click.option('--report', type=click.Path(dir_okay=False), help='Write the JSON run report here')
@click.pass_context
def run(ctx, device_list, config_blob, dry_run, workers, report):
    """Provision every device listed in DEVICE_LIST.

    DEVICE_LIST holds one `current,desired` address pair per line. Blank
    lines and lines starting with '#' are ignored; desired defaults to
    current.

    Examples:

        algo-provision run ip_speakers.txt --config-blob config.txt

        algo-provision run ip_speakers.txt --dry-run
    """
    from algo_provision.batch_runner import BatchRunner
    from algo_provision.device_list import load_device_list
    from algo_provision.events import LoggingReporter, probe_reporter
    from algo_provision.online_wait import OnlineWaitPoller
    from algo_provision.provisioner import Provisioner, ProvisionSettings
    from algo_provision.utils.file_ops import atomic_write_json

    config = ctx.obj['config']
    logger = ctx.obj['logger']

    parsed = load_device_list(Path(device_list))
    for warning in parsed.warnings:
        click.echo(f"Warning: skipping {warning}", err=True)

    if not parsed.targets:
        click.echo("No devices to process. Add 'current,desired' lines to the device list.")
        click.echo("Completed: 0 success, 0 failed")
        sys.exit(1)

    blob_path = Path(config_blob) if config_blob else config.config_blob_file
    blob_text = None
    if blob_path is not None:
        if blob_path.is_file():
            blob_text = blob_path.read_text(encoding="utf-8")
        elif config_blob:
            raise click.ClickException(f"Configuration blob not found: {blob_path}")
        else:
            logger.warning(f"Configured blob {blob_path} missing, configuration push will be skipped")

    if not dry_run and (not config.gateway or not config.provisioning_server_url):
        raise click.ClickException(
            "network.gateway and network.provisioning_server_url must be set "
            "(algo-provision config set network.gateway 10.0.0.1)"
        )

    client = _build_client(config)
    reporter = LoggingReporter()
    poller = OnlineWaitPoller(
        probe=client.get_device_info,
        retry_interval=config.retry_interval,
        total_timeout=config.online_timeout,
        on_attempt=probe_reporter(reporter)
    )
    provisioner = Provisioner(
        client=client,
        catalog=_load_catalog(config),
        poller=poller,
        settings=ProvisionSettings.from_config(config),
        config_blob=blob_text,
        emit=reporter,
        dry_run=dry_run
    )

    runner = BatchRunner(
        provisioner,
        workers=workers if workers is not None else config.max_workers,
        emit=reporter
    )
    click.echo(f"Starting deployment for {len(parsed.targets)} devices"
               + (" (dry run)" if dry_run else ""))
    result = runner.run(parsed.targets, warnings=parsed.warnings)

    report_path = Path(report) if report else config.get_path(constants.DIR_STATUS) / constants.LAST_RUN_FILE_NAME
    atomic_write_json(report_path, result.to_dict())

    for outcome in result.failures:
        click.echo(f"FAILED {outcome.address} ({outcome.phase or 'unknown phase'}): {outcome.failure_reason}", err=True)

    summary = result.summary
    click.echo(f"Completed: {summary.succeeded_count} success, {summary.failed_count} failed")
    click.echo(f"Report written to {report_path}")

    if summary.failed_count:
        sys.exit(1)


# ============================================================================
# Device Commands
# ============================================================================

@main.group()
def device():
    """Query individual devices."""
    pass


@device.command(name='info')
@click.argument('address')
@click.pass_context
def device_info(ctx, address):
    """Identify the device at ADDRESS and compare against the catalog."""
    from algo_provision.exceptions import PipelineError

    config = ctx.obj['config']
    client = _build_client(config)
    catalog = _load_catalog(config)

    try:
        info = client.get_device_info(address)
    except PipelineError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Device {address}:")
    click.echo(f"  Model: {info.model}")
    click.echo(f"  Firmware: {info.firmware_version}")

    entry = catalog.lookup(info.model)
    if entry is None:
        click.echo("  Catalog: no firmware target for this model")
    elif catalog.needs_update(info):
        click.echo(f"  Catalog: update to {entry.target_version} ({entry.artifact})")
    else:
        click.echo(f"  Catalog: up to date (target {entry.target_version})")


# ============================================================================
# Firmware Catalog Commands
# ============================================================================

@main.group()
def catalog():
    """Inspect the firmware catalog."""
    pass


@catalog.command(name='show')
@click.pass_context
def show_catalog(ctx):
    """Show firmware targets per model."""
    config = ctx.obj['config']
    firmware_catalog = _load_catalog(config)

    click.echo(f"Firmware catalog ({config.firmware_catalog_file}):")
    for model in firmware_catalog.models():
        entry = firmware_catalog.lookup(model)
        present = (firmware_catalog.artifact_dir / entry.artifact).is_file()
        marker = "" if present else "  [artifact missing]"
        click.echo(f"  {model}: {entry.target_version} -> {entry.artifact}{marker}")


@catalog.command(name='check')
@click.argument('model')
@click.argument('version')
@click.pass_context
def check_catalog(ctx, model, version):
    """Report whether MODEL at VERSION needs a firmware update."""
    from algo_provision.models import DeviceInfo

    config = ctx.obj['config']
    firmware_catalog = _load_catalog(config)

    entry = firmware_catalog.lookup(model)
    if entry is None:
        click.echo(f"{model}: no catalog entry, firmware update would be skipped")
        return

    stale = firmware_catalog.needs_update(DeviceInfo(model=model, firmware_version=version))

    if stale:
        click.echo(f"{model} {version}: older than {entry.target_version}, would install {entry.artifact}")
    else:
        click.echo(f"{model} {version}: up to date (target {entry.target_version})")


# ============================================================================
# Configuration Commands
# ============================================================================

@main.group()
def config():
    """Manage configuration."""
    pass


_INT_KEYS = {'workers.max'}
_FLOAT_KEYS = {
    'device.request_timeout', 'device.firmware_timeout',
    'wait.reboot_grace', 'wait.firmware_grace', 'wait.retry_interval', 'wait.online_timeout',
}
_BOOL_KEYS = {'device.verify_tls'}


@config.command(name='set')
@click.argument('key')
@click.argument('value')
@click.pass_context
def set_config(ctx, key, value):
    """Set configuration value."""
    cfg = ctx.obj['config']
    logger = ctx.obj['logger']

    try:
        if key in _INT_KEYS:
            value = int(value)
        elif key in _FLOAT_KEYS:
            value = float(value)
        elif key in _BOOL_KEYS:
            value = value.lower() in ('1', 'true', 'yes', 'on')
    except ValueError:
        raise click.BadParameter(f"{key} expects a number, got {value!r}")

    cfg.set(key, value)
    logger.info(f"Configuration updated: {key}")
    click.echo(f"Set {key} = {'********' if key == 'device.secret' else value}")


@config.command()
@click.pass_context
def show(ctx):
    """Show current configuration."""
    cfg = ctx.obj['config']

    click.echo("Current Configuration:")
    click.echo(f"  Principal: {cfg.device_principal}")
    click.echo(f"  Secret: {'*' * 8 if cfg.device_secret else '(not set)'}")
    click.echo(f"  Verify TLS: {cfg.verify_tls}")
    click.echo(f"  Request Timeout: {cfg.request_timeout}s (firmware {cfg.firmware_timeout}s)")
    click.echo(f"  Netmask: {cfg.netmask}")
    click.echo(f"  Gateway: {cfg.gateway or '(not set)'}")
    click.echo(f"  Provisioning Server: {cfg.provisioning_server_url or '(not set)'}")
    click.echo(f"  Timezone: {cfg.timezone or '(unchanged)'}")
    click.echo(f"  Grace: {cfg.reboot_grace}s reboot, {cfg.firmware_grace}s firmware")
    click.echo(f"  Online Timeout: {cfg.online_timeout}s (retry every {cfg.retry_interval}s)")
    click.echo(f"  Max Workers: {cfg.max_workers}")
    click.echo(f"  Work Directory: {cfg.work_dir}")
    click.echo(f"  Firmware Catalog: {cfg.firmware_catalog_file}")
    click.echo(f"  Firmware Directory: {cfg.firmware_dir}")
    click.echo(f"  Rejection Log: {cfg.rejection_log_file}")


if __name__ == "__main__":
    main()

"""
SessionProbe Command-Line Interface

Runs the session lock probe against an Azure Service Bus namespace.

Author: SessionProbe Contributors
Date: 2026-10-18
"""

import sys
import asyncio
import logging
from pathlib import Path
from typing import Optional

import click

from sessionprobe import __version__
from sessionprobe.core.config_manager import ConfigManager, create_default_config_file
from sessionprobe.core.logging_config import setup_logging
from sessionprobe.core.runtime import ProbeRuntime
from sessionprobe.servicebus.constants import (
    DEFAULT_GRACE_PERIOD,
    DEFAULT_LOCK_DURATION,
    DEFAULT_MESSAGE_COUNT,
    DEFAULT_PREFETCH_COUNT,
    DEFAULT_QUEUE_NAME,
    DEFAULT_RECEIVE_TIMEOUT,
)
from sessionprobe.servicebus.sessions import SessionStrategy

logger = logging.getLogger("sessionprobe.cli")

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


@click.group()
@click.version_option(version=__version__, prog_name="session-lock-probe")
@click.pass_context
def cli(ctx):
    """
    SessionProbe - Azure Service Bus session lock conformance probe

    Checks that a session lock is lost once it expires without renewal.
    """
    ctx.ensure_object(dict)


@cli.command()
@click.option(
    "--connection",
    "-c",
    "connection_string",
    help="Service Bus connection string (Manage, Send, Listen) "
         "[env: SESSIONPROBE_CONNECTION_STRING]",
)
@click.option(
    "--messages",
    "-m",
    "message_count",
    type=int,
    help=f"Number of messages to put into Service Bus [default: {DEFAULT_MESSAGE_COUNT}]",
)
@click.option(
    "--prefetch",
    "-p",
    "prefetch_count",
    type=int,
    help=f"Service Bus receive prefetch size [default: {DEFAULT_PREFETCH_COUNT}]",
)
@click.option(
    "--queue",
    "-q",
    "queue_name",
    help=f"Service Bus queue name [default: {DEFAULT_QUEUE_NAME}]",
)
@click.option(
    "--lock-duration",
    type=int,
    help=f"Queue lock duration in seconds [default: {DEFAULT_LOCK_DURATION}]",
)
@click.option(
    "--grace-period",
    type=float,
    help=f"Extra wait after the lock expiry, in seconds [default: {DEFAULT_GRACE_PERIOD:g}]",
)
@click.option(
    "--receive-timeout",
    type=float,
    help=f"Bound of each receive call, in seconds [default: {DEFAULT_RECEIVE_TIMEOUT:g}]",
)
@click.option(
    "--bypass-client-lock-check/--keep-client-lock-check",
    default=None,
    help="Let the broker, not the SDK's cached expiry, decide the late completion "
         "[default: bypass]",
)
@click.option(
    "--session-strategy",
    type=click.Choice([s.value for s in SessionStrategy]),
    help="How messages are distributed into sessions [default: single]",
)
@click.option(
    "--session-count",
    type=int,
    help="Number of sessions used by the round-robin strategy",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to a YAML or JSON configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Root logging level (the log file receives every enabled record)",
)
@click.option(
    "--log-file",
    help="Log file path [default: session-lock-probe.log]",
)
@click.option(
    "--log-format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    help="Log format [default: text]",
)
@click.option(
    "--azure-log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Azure SDK logging level [default: WARNING]",
)
def run(
    connection_string: Optional[str],
    message_count: Optional[int],
    prefetch_count: Optional[int],
    queue_name: Optional[str],
    lock_duration: Optional[int],
    grace_period: Optional[float],
    receive_timeout: Optional[float],
    bypass_client_lock_check: Optional[bool],
    session_strategy: Optional[str],
    session_count: Optional[int],
    config_file: Optional[Path],
    log_level: Optional[str],
    log_file: Optional[str],
    log_format: Optional[str],
    azure_log_level: Optional[str],
):
    """
    Reset the queue, send messages, then probe the session lock.

    Examples:
        session-lock-probe run -c "Endpoint=sb://..." -m 2 -p 2
        session-lock-probe run --config probe.yaml --grace-period 300
    """
    # Console logging until the configuration is known
    setup_logging(level="INFO")

    overrides = {
        "connection_string": connection_string,
        "queue": {
            "name": queue_name,
            "lock_duration_seconds": lock_duration,
        },
        "send": {
            "message_count": message_count,
            "session_strategy": session_strategy,
            "session_count": session_count,
        },
        "probe": {
            "prefetch_count": prefetch_count,
            "grace_period_seconds": grace_period,
            "receive_timeout_seconds": receive_timeout,
            "bypass_client_lock_check": bypass_client_lock_check,
        },
        "logging": {
            "level": log_level.upper() if log_level else None,
            "file": log_file,
            "format": log_format.lower() if log_format else None,
            "azure_level": azure_log_level.upper() if azure_log_level else None,
        },
    }

    exit_code = 0
    try:
        manager = ConfigManager()
        config = manager.load(
            config_file=str(config_file) if config_file else None,
            cli_overrides=overrides,
        )
        setup_logging(
            level=config.logging.level,
            format_type=config.logging.format,
            log_file=config.logging.file,
            rotation_size=config.logging.rotation_size,
            rotation_count=config.logging.rotation_count,
            module_levels=config.logging.module_levels,
            console_level=config.logging.console_level,
            azure_level=config.logging.azure_level,
        )
        logger.info("SessionLockProbe running")
        manager.log_configuration()

        report = asyncio.run(ProbeRuntime(config).run())
        logger.info(f"Program exiting ({_outcome(report)})")
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        logger.info("Program exiting (failure)")
        exit_code = 1
    except Exception as e:
        logger.critical(f"{e}", exc_info=True)
        logger.info("Program exiting (failure)")
        exit_code = 1
    finally:
        logging.shutdown()

    sys.exit(exit_code)


@cli.command("init-config")
@click.argument(
    "path",
    default="session-lock-probe.yaml",
    type=click.Path(dir_okay=False, path_type=Path),
)
@click.option("--force", is_flag=True, help="Overwrite an existing file")
def init_config(path: Path, force: bool):
    """
    Write a default configuration file.

    Fill in the connection string, then pass the file with --config.
    """
    if path.exists() and not force:
        click.echo(f"[ERROR] {path} already exists (use --force to overwrite)", err=True)
        sys.exit(1)

    written = create_default_config_file(str(path))
    click.echo(f"Created default configuration file: {written}")
    click.echo("Run it with:")
    click.echo(f"  session-lock-probe run --config {written}")


def _outcome(report) -> str:
    if report.passed:
        return "lock lost"
    if report.inconclusive:
        return "inconclusive"
    return "anomaly reproduced"


def main():
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()

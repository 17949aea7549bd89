"""Command-line entry point for the volume enforcement daemon."""
from __future__ import annotations

import argparse
import logging
import signal
import sys
from dataclasses import replace
from threading import Event
from typing import List, Optional

from dotenv import load_dotenv

from .app.control_plane import ControlPlaneClient
from .app.enforcement import EnforcementOptions, EnforcementWorkflow
from .app.errors import ConfigError
from .app.tenants import TenantDirectory
from .config import DaemonConfig, load_daemon_config
from .notify import create_notifier
from .poller import PollContext, run_poll_job, shutdown_poller, start_poller

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def build_context(config: DaemonConfig, *, client: Optional[ControlPlaneClient] = None) -> PollContext:
    """Wire the control plane, tenant directory, notifier and workflow together."""

    control_plane = client or ControlPlaneClient(
        base_url=config.panel_url,
        admin_api_key=config.admin_api_key,
        client_api_key=config.client_api_key,
        timeout_seconds=config.http_timeout_seconds,
    )
    directory = TenantDirectory(
        control_plane,
        record_ttl_seconds=config.cumulative_cache_ttl_seconds,
        snapshot_ttl_seconds=config.servers_list_cache_ttl_seconds,
    )
    notifier = create_notifier(config)
    logger.info("Enforcement notifications via %s", notifier.name, extra=notifier.describe())
    workflow = EnforcementWorkflow(
        control_plane,
        notifier,
        directory,
        volumes_root=config.volumes_directory,
        options=EnforcementOptions.from_config(config),
    )
    return PollContext.from_config(config, directory=directory, workflow=workflow)


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="volume-guard",
        description="Detect and suspend game-server volumes that grow abusively.",
    )
    parser.add_argument("--once", action="store_true", help="Run a single poll cycle and exit")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Classify and notify without killing, wiping or suspending anything",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (DEBUG, INFO, ...)")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = _parse_args(argv)

    try:
        config = load_daemon_config()
    except ConfigError as exc:
        logging.basicConfig(level=logging.ERROR, format=LOG_FORMAT)
        logger.error("Invalid configuration: %s", exc.message)
        return 2

    if args.dry_run:
        config = replace(config, dry_run=True)

    logging.basicConfig(
        level=getattr(logging, (args.log_level or config.log_level).upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    context = build_context(config)
    logger.info(
        "Starting volume guard",
        extra={
            "panel_url": config.panel_url,
            "volumes_root": config.volumes_directory,
            "interval_seconds": config.check_interval_seconds,
            "dry_run": config.dry_run,
        },
    )

    if args.once:
        try:
            summary = run_poll_job(context)
        except Exception:
            # run_poll_job has already logged the traceback.
            return 1
        return 0 if summary is not None else 1

    stop_requested = Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Received signal %s, shutting down", signum)
        stop_requested.set()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    start_poller(context, interval=config.check_interval_seconds)
    try:
        while not stop_requested.wait(1.0):
            pass
    finally:
        shutdown_poller(timeout=config.check_interval_seconds)
    return 0


if __name__ == "__main__":
    sys.exit(main())

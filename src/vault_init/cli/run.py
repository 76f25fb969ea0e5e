"""Run command: the long-lived init/unseal loop."""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Optional

import click

from ..cluster import HvacCluster
from ..config import VaultInitConfig
from ..controller import Controller, ControllerSettings
from ..credentials import CredentialsError
from ..daemon import Daemon, install_signal_handlers, setup_logging
from ..keystore import KeystoreError, create_keystore
from ..poller import HealthPoller
from ._common import config_option, console, load_config_or_exit


def build_daemon(config: VaultInitConfig, stop_event: threading.Event) -> Daemon:
    """Wire cluster client, keystore, poller and controller together.

    Raises:
        KeystoreError: If the keystore clients cannot be created.
        CredentialsError: If AWS credentials are misconfigured.
    """
    keystore = create_keystore(config, stop_event=stop_event)
    cluster = HvacCluster.from_config(config)
    controller = Controller(
        cluster=cluster,
        keystore=keystore,
        poller=HealthPoller(cluster),
        settings=ControllerSettings.from_config(config),
    )
    return Daemon(controller, keystore, config.check_interval, stop_event=stop_event)


def register_run_commands(main: click.Group) -> None:
    """Register the run command."""

    @main.command("run")
    @config_option
    @click.option(
        "--log-level", default=None,
        help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ERROR).",
    )
    def run(config_path: Optional[Path], log_level: Optional[str]):
        """Watch Vault and initialize or unseal it as needed.

        Polls Vault every CHECK_INTERVAL seconds until SIGINT/SIGTERM.
        """
        config = load_config_or_exit(config_path)
        try:
            setup_logging(log_level or config.log_level)
        except ValueError as exc:
            console.print(f"[bold red]Invalid log level:[/] {exc}")
            sys.exit(1)

        stop_event = threading.Event()
        install_signal_handlers(stop_event)

        try:
            daemon = build_daemon(config, stop_event)
        except (KeystoreError, CredentialsError) as exc:
            console.print(f"[bold red]Failed to create {config.backend.value} keystore:[/] {exc}")
            sys.exit(1)

        daemon.run_forever()

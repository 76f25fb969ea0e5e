"""Inspection commands: status, config."""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import click
import yaml
from rich.panel import Panel

from ..cluster import HvacCluster
from ..poller import HealthPoller, PollError
from ._common import config_option, console, load_config_or_exit, state_label


def register_status_commands(main: click.Group) -> None:
    """Register status and config commands on the main CLI group."""

    @main.command()
    @config_option
    @click.option("--json-out", is_flag=True, help="Output as JSON.")
    def status(config_path: Optional[Path], json_out: bool):
        """Poll Vault once and show its state."""
        config = load_config_or_exit(config_path)
        poller = HealthPoller(HvacCluster.from_config(config))

        try:
            health = poller.poll()
        except PollError as exc:
            if json_out:
                click.echo(json.dumps({"reachable": False, "error": str(exc)}))
            else:
                console.print(f"[bold red]Vault unreachable:[/] {exc}")
            sys.exit(2)

        if json_out:
            data = health.model_dump()
            data["state"] = health.state.value
            data["reachable"] = True
            click.echo(json.dumps(data, indent=2))
            return

        console.print(
            Panel(
                f"Address: [bold]{config.vault_addr}[/]\n"
                f"State: {state_label(health.state)}\n"
                f"Initialized: {health.initialized}\n"
                f"Sealed: {health.sealed}\n"
                f"Standby: {health.standby}\n"
                f"Version: {health.version or '[dim]unknown[/]'}",
                title="Vault",
                border_style="bright_blue",
            )
        )

    @main.command("config")
    @config_option
    def show_config(config_path: Optional[Path]):
        """Print the resolved configuration (secrets masked)."""
        config = load_config_or_exit(config_path)
        click.echo(yaml.safe_dump(config.redacted(), default_flow_style=False, sort_keys=True))

"""Shared helpers for the CLI command modules."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console

from ..config import ConfigError, VaultInitConfig, load_config
from ..models import ClusterState

console = Console(stderr=True)

config_option = click.option(
    "--config", "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML config file. Environment variables take precedence.",
)


def load_config_or_exit(config_path: Optional[Path]) -> VaultInitConfig:
    """Load configuration, exiting with status 1 on any config error."""
    try:
        return load_config(config_path)
    except ConfigError as exc:
        console.print(f"[bold red]Invalid configuration:[/] {exc}")
        sys.exit(1)


def state_label(state: ClusterState) -> str:
    """Map a cluster state to Rich markup."""
    return {
        ClusterState.ACTIVE: "[bold green]ACTIVE[/]",
        ClusterState.STANDBY: "[bold cyan]STANDBY[/]",
        ClusterState.SEALED: "[bold yellow]SEALED[/]",
        ClusterState.UNINITIALIZED: "[bold red]UNINITIALIZED[/]",
    }.get(state, "[dim]UNKNOWN[/]")

"""
vault-init CLI.

The main Click group is defined here and each command group lives
in its own module, registered via a register function.

Entry point: vault_init.cli:main
"""

from __future__ import annotations

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="vault-init")
def main():
    """vault-init: initialize and unseal Vault automatically."""


from .run import register_run_commands
from .status import register_status_commands

register_run_commands(main)
register_status_commands(main)

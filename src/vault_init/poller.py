"""Cluster health poller."""

from __future__ import annotations

import logging

from .cluster import ClusterError, VaultCluster
from .models import ClusterStatus

logger = logging.getLogger("vault_init.poller")


class PollError(ClusterError):
    """The cluster state is unknown for this tick."""


class HealthPoller:
    """Wraps the health check so a failed poll reads as "unknown".

    A PollError must never be taken to mean uninitialized or sealed:
    the cluster may simply be unreachable for a moment.

    Args:
        cluster: Vault cluster client.
    """

    def __init__(self, cluster: VaultCluster) -> None:
        self._cluster = cluster

    def poll(self) -> ClusterStatus:
        try:
            status = self._cluster.health_check()
        except ClusterError as exc:
            raise PollError(str(exc)) from exc
        logger.debug(
            "Health: initialized=%s sealed=%s standby=%s",
            status.initialized, status.sealed, status.standby,
        )
        return status

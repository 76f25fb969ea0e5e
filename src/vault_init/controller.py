"""
Initialization/unseal controller.

The controller keeps no state between ticks. Each tick polls Vault,
derives what to do from that single snapshot, does it, and returns.
Any failure is logged and the tick ends; the next tick starts over
from a fresh poll.

    uninitialized -> initialize (designated replica only), store keys
    sealed        -> read keys, submit shares until unsealed
    standby       -> nothing
    active        -> nothing
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .cluster import ClusterError, VaultCluster
from .config import VaultInitConfig
from .keystore import Keystore, KeystoreError
from .models import ClusterState, KeyBundle
from .poller import HealthPoller, PollError

logger = logging.getLogger("vault_init.controller")


class TickOutcome(str, Enum):
    """What a single tick ended up doing."""

    POLL_FAILED = "poll-failed"
    INIT_SKIPPED = "init-skipped"
    INIT_FAILED = "init-failed"
    INITIALIZED = "initialized"
    UNSEAL_FAILED = "unseal-failed"
    STILL_SEALED = "still-sealed"
    UNSEALED = "unsealed"
    STANDBY = "standby"
    ACTIVE = "active"
    TICK_FAILED = "tick-failed"


@dataclass(frozen=True)
class ControllerSettings:
    """Init parameters and the designated-initializer identities.

    Attributes:
        share_count: Number of unseal shares to generate.
        share_threshold: Shares required to unseal.
        node_name: This replica's identity.
        init_node_name: Replica allowed to initialize. None lets every
            replica try, relying on the keystore's create-only writes.
    """

    share_count: int = 5
    share_threshold: int = 3
    node_name: str = ""
    init_node_name: Optional[str] = None

    @classmethod
    def from_config(cls, config: VaultInitConfig) -> "ControllerSettings":
        return cls(
            share_count=config.secret_shares,
            share_threshold=config.secret_threshold,
            node_name=config.node_name,
            init_node_name=config.init_node_name,
        )

    @property
    def designated_initializer(self) -> bool:
        return self.init_node_name is None or self.init_node_name == self.node_name


class Controller:
    """Decides and performs one step of the init/unseal lifecycle per tick.

    Args:
        cluster: Vault cluster client (init and unseal calls).
        keystore: Encrypted storage for the key bundle.
        poller: Health poller for the same cluster.
        settings: Init parameters and identities.
    """

    def __init__(
        self,
        cluster: VaultCluster,
        keystore: Keystore,
        poller: HealthPoller,
        settings: ControllerSettings,
    ) -> None:
        self._cluster = cluster
        self._keystore = keystore
        self._poller = poller
        self._settings = settings

    def tick(self) -> TickOutcome:
        """Poll the cluster once and act on what it reports."""
        try:
            status = self._poller.poll()
        except PollError as exc:
            logger.error("Health check failed, will retry next tick: %s", exc)
            return TickOutcome.POLL_FAILED

        state = status.state
        if state == ClusterState.UNINITIALIZED:
            return self._initialize()
        if state == ClusterState.SEALED:
            logger.info("Vault is sealed. Unsealing...")
            return self.unseal()
        if state == ClusterState.STANDBY:
            logger.info("Vault is unsealed and in standby mode.")
            return TickOutcome.STANDBY
        logger.debug("Vault is unsealed and active.")
        return TickOutcome.ACTIVE

    def _initialize(self) -> TickOutcome:
        if not self._settings.designated_initializer:
            logger.info(
                "Vault is not initialized. Waiting for %s to initialize it (this node: %s).",
                self._settings.init_node_name, self._settings.node_name,
            )
            return TickOutcome.INIT_SKIPPED

        logger.info("Vault is not initialized. Initializing...")
        try:
            bundle = self._cluster.initialize(
                self._settings.share_count, self._settings.share_threshold,
            )
        except ClusterError as exc:
            logger.error("Initialize failed: %s", exc)
            return TickOutcome.INIT_FAILED

        logger.info("Encrypting unseal keys and the root token...")
        try:
            self._keystore.encrypt_and_write(bundle)
        except KeystoreError as exc:
            logger.error("Storing unseal keys failed: %s", exc)
            return TickOutcome.INIT_FAILED

        logger.info("Initialization complete.")
        return TickOutcome.INITIALIZED

    def unseal(self) -> TickOutcome:
        """Read the stored bundle and submit shares until Vault unseals."""
        try:
            bundle = self._keystore.read_and_decrypt()
        except KeystoreError as exc:
            logger.error("Reading unseal keys failed: %s", exc)
            return TickOutcome.UNSEAL_FAILED
        return self._submit_shares(bundle)

    def _submit_shares(self, bundle: KeyBundle) -> TickOutcome:
        # Only Vault's sealed flag decides success; share_threshold is not
        # checked here.
        for index, share in enumerate(bundle.shares, start=1):
            try:
                result = self._cluster.unseal(share)
            except ClusterError as exc:
                logger.error("Unseal failed at share %d of %d: %s", index, len(bundle.shares), exc)
                return TickOutcome.UNSEAL_FAILED
            if not result.sealed:
                logger.info("Vault unsealed after %d share(s).", index)
                return TickOutcome.UNSEALED

        logger.warning(
            "Submitted all %d shares but Vault is still sealed.", len(bundle.shares),
        )
        return TickOutcome.STILL_SEALED

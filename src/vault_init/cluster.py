"""
Vault cluster client.

The controller only needs three calls from Vault: health, init and
unseal. ``VaultCluster`` is that interface; ``HvacCluster`` implements
it on top of hvac. Transport and API failures surface as
``ClusterError`` so callers never have to know about requests or hvac.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, Union

import hvac
import requests
from hvac import exceptions as hvac_exc
from pydantic import ValidationError

from .config import VaultInitConfig
from .models import ClusterStatus, KeyBundle, UnsealResult

logger = logging.getLogger("vault_init.cluster")

# Ask /v1/sys/health to answer 200 in every state so the body is
# always returned instead of an error status.
_HEALTH_PARAMS = {
    "standby_code": 200,
    "performance_standby_code": 200,
    "dr_secondary_code": 200,
    "sealed_code": 200,
    "uninit_code": 200,
}


class ClusterError(Exception):
    """Raised when a call to the Vault cluster fails."""


class VaultCluster(Protocol):
    """The three Vault operations vault-init depends on."""

    def health_check(self) -> ClusterStatus: ...

    def initialize(self, share_count: int, share_threshold: int) -> KeyBundle: ...

    def unseal(self, share: str) -> UnsealResult: ...


class HvacCluster:
    """VaultCluster backed by an hvac client.

    Args:
        client: An ``hvac.Client`` pointed at the cluster.
    """

    def __init__(self, client: hvac.Client) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: VaultInitConfig) -> "HvacCluster":
        verify: Union[bool, str] = not config.vault_tls_skip_verify
        if verify and config.vault_ca_cert:
            verify = str(config.vault_ca_cert)
        client = hvac.Client(
            url=config.vault_addr,
            verify=verify,
            timeout=config.vault_timeout,
        )
        return cls(client)

    def health_check(self) -> ClusterStatus:
        response = self._call(
            "health", self._client.sys.read_health_status, method="GET", **_HEALTH_PARAMS,
        )
        body = _json_body(response)
        try:
            return ClusterStatus(
                initialized=body["initialized"],
                sealed=body["sealed"],
                standby=body["standby"],
                version=body.get("version"),
                cluster_name=body.get("cluster_name"),
            )
        except (KeyError, TypeError, ValidationError) as exc:
            raise ClusterError(f"Malformed health response: {exc}") from exc

    def initialize(self, share_count: int, share_threshold: int) -> KeyBundle:
        response = self._call(
            "init",
            self._client.sys.initialize,
            secret_shares=share_count,
            secret_threshold=share_threshold,
        )
        body = dict(_json_body(response))
        body.setdefault("secret_shares", share_count)
        body.setdefault("secret_threshold", share_threshold)
        try:
            return KeyBundle.model_validate(body)
        except ValidationError as exc:
            raise ClusterError(f"Malformed init response: {exc}") from exc

    def unseal(self, share: str) -> UnsealResult:
        response = self._call("unseal", self._client.sys.submit_unseal_key, key=share)
        body = _json_body(response)
        try:
            return UnsealResult(
                sealed=body["sealed"],
                progress=body.get("progress", 0),
                threshold=body.get("t", 0),
            )
        except (KeyError, TypeError, ValidationError) as exc:
            raise ClusterError(f"Malformed unseal response: {exc}") from exc

    @staticmethod
    def _call(operation: str, func: Any, **kwargs: Any) -> Any:
        try:
            return func(**kwargs)
        except (requests.exceptions.RequestException, hvac_exc.VaultError) as exc:
            raise ClusterError(f"Vault {operation} failed: {exc}") from exc


def _json_body(response: Any) -> dict:
    """hvac returns parsed JSON for most calls and a Response for a few."""
    if isinstance(response, dict):
        return response
    if isinstance(response, requests.Response):
        try:
            data = response.json()
        except ValueError as exc:
            raise ClusterError(
                f"Vault returned non-JSON response (HTTP {response.status_code})"
            ) from exc
        if isinstance(data, dict):
            return data
    raise ClusterError(f"Unexpected Vault response: {response!r}")

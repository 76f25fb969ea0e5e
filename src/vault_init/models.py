"""
Pydantic models for the key material and the cluster state.

The KeyBundle serializes to the same JSON shape Vault returns from
``PUT /v1/sys/init`` so bundles written by earlier tooling can still
be read back.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BackendType(str, Enum):
    """Supported encrypted keystore backends."""

    GCP = "gcp"
    AWS = "aws"
    AWS_S3 = "aws-s3"


class ClusterState(str, Enum):
    """What the controller derives from a single health poll."""

    UNINITIALIZED = "uninitialized"
    SEALED = "sealed"
    STANDBY = "standby"
    ACTIVE = "active"


class KeyBundle(BaseModel):
    """Unseal shares and root token produced by a single initialization.

    Share order is significant and is preserved exactly through
    serialization.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    shares: list[str] = Field(alias="keys_base64", description="Base64 unseal shares")
    share_count: int = Field(alias="secret_shares")
    share_threshold: int = Field(alias="secret_threshold")
    root_credential: str = Field(alias="root_token")
    keys: Optional[list[str]] = Field(
        default=None, description="Hex form of the shares, as Vault returns them"
    )

    @model_validator(mode="before")
    @classmethod
    def fill_legacy_counts(cls, data: Any) -> Any:
        """Derive the counts for bundles that were stored without them."""
        if not isinstance(data, dict):
            return data
        shares = data.get("keys_base64", data.get("shares"))
        if shares is None:
            return data
        data = dict(data)
        if "secret_shares" not in data and "share_count" not in data:
            data["secret_shares"] = len(shares)
        if "secret_threshold" not in data and "share_threshold" not in data:
            data["secret_threshold"] = data.get("secret_shares", data.get("share_count"))
        return data

    @model_validator(mode="after")
    def check_shares(self) -> "KeyBundle":
        if self.share_threshold < 1:
            raise ValueError(f"share threshold must be at least 1, got {self.share_threshold}")
        if self.share_count < self.share_threshold:
            raise ValueError(
                f"share count {self.share_count} is below threshold {self.share_threshold}"
            )
        if len(self.shares) != self.share_count:
            raise ValueError(
                f"expected {self.share_count} shares, got {len(self.shares)}"
            )
        if self.keys is not None and len(self.keys) != self.share_count:
            raise ValueError(
                f"expected {self.share_count} hex keys, got {len(self.keys)}"
            )
        return self

    def to_json(self) -> bytes:
        """Serialize in Vault's init-response shape."""
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> "KeyBundle":
        return cls.model_validate_json(data)


class ClusterStatus(BaseModel):
    """Snapshot of ``/v1/sys/health``, recomputed on every tick."""

    model_config = ConfigDict(frozen=True)

    initialized: bool
    sealed: bool
    standby: bool
    version: Optional[str] = None
    cluster_name: Optional[str] = None

    @property
    def state(self) -> ClusterState:
        if not self.initialized:
            return ClusterState.UNINITIALIZED
        if self.sealed:
            return ClusterState.SEALED
        if self.standby:
            return ClusterState.STANDBY
        return ClusterState.ACTIVE


class UnsealResult(BaseModel):
    """Response to a single unseal share submission."""

    model_config = ConfigDict(frozen=True)

    sealed: bool
    progress: int = 0
    threshold: int = 0

"""
Runtime configuration for vault-init.

Settings come from an optional YAML file and are overlaid by
environment variables, then validated into a single frozen
``VaultInitConfig``. The config is built once at startup and passed
into every component; nothing reads the environment after that.

Environment variables keep the names the container images already
use (``CLOUD_PROVIDER``, ``CHECK_INTERVAL``, ``KMS_KEY_ID`` ...).
"""

from __future__ import annotations

import logging
import os
import socket
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .models import BackendType

logger = logging.getLogger("vault_init.config")

DEFAULT_VAULT_ADDR = "https://127.0.0.1:8200"
DEFAULT_CHECK_INTERVAL = 10
DEFAULT_CREDENTIALS_RETRY_INTERVAL = 5.0
SSE_CUSTOMER_KEY_LENGTH = 32

# env var -> config field
ENV_VARS = {
    "CLOUD_PROVIDER": "backend",
    "CHECK_INTERVAL": "check_interval",
    "VAULT_ADDR": "vault_addr",
    "VAULT_SKIP_VERIFY": "vault_tls_skip_verify",
    "VAULT_CACERT": "vault_ca_cert",
    "VAULT_CLIENT_TIMEOUT": "vault_timeout",
    "SECRET_SHARES": "secret_shares",
    "SECRET_THRESHOLD": "secret_threshold",
    "NODE_NAME": "node_name",
    "INIT_NODE_NAME": "init_node_name",
    "LOG_LEVEL": "log_level",
    "GCS_BUCKET_NAME": "gcs_bucket_name",
    "GCS_PREFIX": "gcs_prefix",
    "KMS_KEY_ID": "kms_key_id",
    "AWS_SECRETS_PATH": "aws_secrets_path",
    "AWS_S3_BUCKET_NAME": "s3_bucket_name",
    "AWS_S3_BUCKET_PATH": "s3_bucket_path",
    "AWS_S3_ENCRYPTION_KEY": "s3_encryption_key",
    "AWS_ENDPOINT": "aws_endpoint",
    "AWS_CREDENTIALS_RETRY_INTERVAL": "aws_credentials_retry_interval",
}

_REQUIRED_FIELDS = {
    BackendType.GCP: ("gcs_bucket_name", "kms_key_id"),
    BackendType.AWS: ("kms_key_id", "aws_secrets_path"),
    BackendType.AWS_S3: ("s3_bucket_name", "s3_encryption_key"),
}


class ConfigError(ValueError):
    """Raised when the configuration is missing or invalid."""


class AwsConfig(BaseModel):
    """Session bootstrap settings shared by the AWS keystores."""

    model_config = ConfigDict(frozen=True)

    endpoint: Optional[str] = None
    retry_on_credentials_wait: float = DEFAULT_CREDENTIALS_RETRY_INTERVAL

    @field_validator("retry_on_credentials_wait", mode="before")
    @classmethod
    def default_non_positive(cls, v: Any) -> Any:
        if v is None or float(v) <= 0:
            return DEFAULT_CREDENTIALS_RETRY_INTERVAL
        return v


class GcpKeystoreConfig(BaseModel):
    """Cloud KMS key + GCS bucket."""

    model_config = ConfigDict(frozen=True)

    bucket_name: str
    kms_key_id: str
    prefix: str = ""


class AwsSecretsKeystoreConfig(BaseModel):
    """Secrets Manager path prefix + KMS key."""

    model_config = ConfigDict(frozen=True)

    aws: AwsConfig = Field(default_factory=AwsConfig)
    kms_key_id: str
    secrets_path: str


class AwsS3KeystoreConfig(BaseModel):
    """S3 bucket with a customer-supplied (SSE-C) key."""

    model_config = ConfigDict(frozen=True)

    aws: AwsConfig = Field(default_factory=AwsConfig)
    encryption_key: str = Field(repr=False)
    bucket_name: str
    bucket_path: str = ""

    @field_validator("encryption_key")
    @classmethod
    def key_is_aes256(cls, v: str) -> str:
        if len(v.encode("utf-8")) != SSE_CUSTOMER_KEY_LENGTH:
            raise ValueError(
                f"SSE-C encryption key must be exactly {SSE_CUSTOMER_KEY_LENGTH} bytes"
            )
        return v


class VaultInitConfig(BaseModel):
    """Complete, immutable vault-init configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    backend: BackendType = BackendType.GCP
    check_interval: int = DEFAULT_CHECK_INTERVAL
    log_level: str = "INFO"

    vault_addr: str = DEFAULT_VAULT_ADDR
    vault_tls_skip_verify: bool = True
    vault_ca_cert: Optional[Path] = None
    vault_timeout: int = 30

    secret_shares: int = 5
    secret_threshold: int = 3
    node_name: str = Field(default_factory=socket.gethostname)
    init_node_name: Optional[str] = None

    # GCP
    gcs_bucket_name: Optional[str] = None
    gcs_prefix: str = ""
    kms_key_id: Optional[str] = None

    # AWS Secrets Manager
    aws_secrets_path: Optional[str] = None

    # AWS S3 SSE-C
    s3_bucket_name: Optional[str] = None
    s3_bucket_path: str = ""
    s3_encryption_key: Optional[str] = Field(default=None, repr=False)

    # AWS session bootstrap
    aws_endpoint: Optional[str] = None
    aws_credentials_retry_interval: float = DEFAULT_CREDENTIALS_RETRY_INTERVAL

    @field_validator("backend", mode="before")
    @classmethod
    def normalize_backend(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("check_interval", "vault_timeout")
    @classmethod
    def positive_seconds(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"must be a positive number of seconds, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level '{v}'")
        return level

    @field_validator("init_node_name", "aws_endpoint", mode="before")
    @classmethod
    def blank_is_unset(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def check_backend_settings(self) -> "VaultInitConfig":
        if self.secret_threshold < 1 or self.secret_shares < self.secret_threshold:
            raise ValueError(
                "secret_threshold must be between 1 and secret_shares "
                f"(got {self.secret_threshold} of {self.secret_shares})"
            )
        missing = [f for f in _REQUIRED_FIELDS[self.backend] if not getattr(self, f)]
        if missing:
            names = [_env_name(f) for f in missing]
            raise ValueError(
                f"{', '.join(names)} must be set and not empty for backend '{self.backend.value}'"
            )
        if self.backend == BackendType.AWS_S3:
            if len(self.s3_encryption_key.encode("utf-8")) != SSE_CUSTOMER_KEY_LENGTH:
                raise ValueError(
                    f"AWS_S3_ENCRYPTION_KEY must be exactly {SSE_CUSTOMER_KEY_LENGTH} bytes"
                )
        return self

    @property
    def aws(self) -> AwsConfig:
        return AwsConfig(
            endpoint=self.aws_endpoint,
            retry_on_credentials_wait=self.aws_credentials_retry_interval,
        )

    def gcp_keystore(self) -> GcpKeystoreConfig:
        return GcpKeystoreConfig(
            bucket_name=self.gcs_bucket_name,
            kms_key_id=self.kms_key_id,
            prefix=self.gcs_prefix,
        )

    def aws_secrets_keystore(self) -> AwsSecretsKeystoreConfig:
        return AwsSecretsKeystoreConfig(
            aws=self.aws,
            kms_key_id=self.kms_key_id,
            secrets_path=self.aws_secrets_path,
        )

    def aws_s3_keystore(self) -> AwsS3KeystoreConfig:
        return AwsS3KeystoreConfig(
            aws=self.aws,
            encryption_key=self.s3_encryption_key,
            bucket_name=self.s3_bucket_name,
            bucket_path=self.s3_bucket_path,
        )

    def redacted(self) -> dict[str, Any]:
        """Config as a plain dict with secret material masked."""
        data = self.model_dump(mode="json")
        if data.get("s3_encryption_key"):
            data["s3_encryption_key"] = "********"
        return data


def _env_name(field: str) -> str:
    for env, name in ENV_VARS.items():
        if name == field:
            return env
    return field.upper()


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        msg = err["msg"]
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def load_config(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> VaultInitConfig:
    """Build the configuration from a YAML file and the environment.

    Args:
        path: Optional YAML file whose keys are VaultInitConfig field names.
        environ: Environment mapping. Defaults to ``os.environ``.

    Returns:
        The validated, frozen configuration.

    Raises:
        ConfigError: If a required setting is missing or a value is invalid.
    """
    environ = os.environ if environ is None else environ
    data: dict[str, Any] = {}

    if path is not None:
        data.update(_read_yaml(Path(path)))

    for env, field in ENV_VARS.items():
        value = environ.get(env)
        if value is not None and value != "":
            data[field] = value

    try:
        config = VaultInitConfig(**data)
    except ValidationError as exc:
        raise ConfigError(_format_validation_error(exc)) from exc
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc

    logger.debug("Configuration loaded: backend=%s interval=%ds", config.backend.value, config.check_interval)
    return config

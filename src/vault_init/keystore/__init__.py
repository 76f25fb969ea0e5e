"""
Encrypted keystores for the Vault init response.

Each backend gets a thin adapter behind the same Keystore interface.
The backend is chosen once, at startup, from ``config.backend``.

Currently supports:
- gcp:    Cloud KMS + Cloud Storage
- aws:    AWS Secrets Manager (KMS server-side encryption)
- aws-s3: Amazon S3 with a customer-supplied key (SSE-C)
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, Optional

from ..config import VaultInitConfig
from ..credentials import RetryPolicy
from ..models import BackendType
from .aws_s3 import AwsS3Keystore
from .aws_secrets import AwsSecretsKeystore
from .base import ROOT_TOKEN_FILE, UNSEAL_KEYS_FILE, Keystore, KeystoreError, object_path
from .gcp import GcpKeystore

logger = logging.getLogger("vault_init.keystore")

__all__ = [
    "AwsS3Keystore",
    "AwsSecretsKeystore",
    "GcpKeystore",
    "Keystore",
    "KeystoreError",
    "ROOT_TOKEN_FILE",
    "UNSEAL_KEYS_FILE",
    "create_keystore",
    "object_path",
    "register_keystore",
]

KeystoreFactory = Callable[[VaultInitConfig, Optional[threading.Event]], Keystore]

_KEYSTORES: Dict[str, KeystoreFactory] = {}


def register_keystore(name: str):
    """Decorator to register a keystore factory under a backend name.

    Args:
        name: Backend name (e.g. 'gcp', 'aws', 'aws-s3').
    """
    def wrapper(factory: KeystoreFactory) -> KeystoreFactory:
        _KEYSTORES[name] = factory
        return factory
    return wrapper


@register_keystore(BackendType.GCP.value)
def _gcp(config: VaultInitConfig, stop_event: Optional[threading.Event]) -> Keystore:
    return GcpKeystore(config.gcp_keystore())


@register_keystore(BackendType.AWS.value)
def _aws(config: VaultInitConfig, stop_event: Optional[threading.Event]) -> Keystore:
    return AwsSecretsKeystore(
        config.aws_secrets_keystore(),
        retry_policy=RetryPolicy.from_config(config.aws, stop_event=stop_event),
    )


@register_keystore(BackendType.AWS_S3.value)
def _aws_s3(config: VaultInitConfig, stop_event: Optional[threading.Event]) -> Keystore:
    return AwsS3Keystore(
        config.aws_s3_keystore(),
        retry_policy=RetryPolicy.from_config(config.aws, stop_event=stop_event),
    )


def create_keystore(
    config: VaultInitConfig,
    stop_event: Optional[threading.Event] = None,
) -> Keystore:
    """Instantiate the keystore selected by ``config.backend``.

    Args:
        config: Validated configuration.
        stop_event: Interrupts the AWS credential wait when set.

    Returns:
        Ready-to-use keystore.

    Raises:
        KeystoreError: If the backend is unknown or its clients cannot
            be created.
        CredentialsError: If AWS credentials are misconfigured.
    """
    factory = _KEYSTORES.get(config.backend.value)
    if factory is None:
        raise KeystoreError(f"Unknown keystore backend: {config.backend.value}")
    keystore = factory(config, stop_event)
    logger.info("Using %s keystore", keystore.name)
    return keystore

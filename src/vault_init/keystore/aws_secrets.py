"""
AWS Secrets Manager keystore.

Secrets Manager encrypts each secret server-side with the configured
KMS key. Secrets are created, never updated: CreateSecret fails with
ResourceExistsException if another replica already stored a bundle,
which keeps a second initialization from overwriting the first.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from ..config import AwsSecretsKeystoreConfig
from ..credentials import RetryPolicy, session_client, wait_until_valid_session
from ..models import KeyBundle
from .base import ROOT_TOKEN_FILE, UNSEAL_KEYS_FILE, Keystore, KeystoreError, object_path

logger = logging.getLogger("vault_init.keystore.aws_secrets")


def _error_code(exc: ClientError) -> str:
    return exc.response.get("Error", {}).get("Code", "")


class AwsSecretsKeystore(Keystore):
    """Secrets Manager keystore.

    Args:
        config: KMS key id and secret path prefix.
        client: Pre-built secretsmanager client. When omitted, one is
            created from a session obtained by waiting for credentials.
        retry_policy: Credential wait policy.
    """

    def __init__(
        self,
        config: AwsSecretsKeystoreConfig,
        client: Optional[Any] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._config = config
        if client is None:
            session = wait_until_valid_session(config.aws, retry_policy)
            client = session_client(session, "secretsmanager", config.aws)
        self._client = client

    @property
    def name(self) -> str:
        return "aws"

    def secret_path(self, name: str) -> str:
        return object_path(self._config.secrets_path, name)

    def encrypt_and_write(self, bundle: KeyBundle) -> None:
        self._create_secret(UNSEAL_KEYS_FILE, bundle.to_json())
        self._create_secret(
            ROOT_TOKEN_FILE, json.dumps(bundle.root_credential).encode("utf-8")
        )

    def read_and_decrypt(self) -> KeyBundle:
        secret_id = self.secret_path(UNSEAL_KEYS_FILE)
        try:
            response = self._client.get_secret_value(SecretId=secret_id)
        except ClientError as exc:
            if _error_code(exc) == "ResourceNotFoundException":
                raise KeystoreError(f"Secret '{secret_id}' not found") from exc
            raise KeystoreError(f"Failed to read secret '{secret_id}': {exc}") from exc
        except BotoCoreError as exc:
            raise KeystoreError(f"Failed to read secret '{secret_id}': {exc}") from exc

        data = response.get("SecretBinary")
        if data is None:
            raise KeystoreError(f"Secret '{secret_id}' has no binary value")
        try:
            return KeyBundle.from_json(data)
        except ValidationError as exc:
            raise KeystoreError(f"Secret '{secret_id}' is not a valid key bundle: {exc}") from exc

    def close(self) -> None:
        # boto3 clients hold no resources that need releasing
        pass

    def _create_secret(self, name: str, content: bytes) -> None:
        secret_id = self.secret_path(name)
        try:
            self._client.create_secret(
                Name=secret_id,
                KmsKeyId=self._config.kms_key_id,
                SecretBinary=content,
            )
        except ClientError as exc:
            if _error_code(exc) == "ResourceExistsException":
                raise KeystoreError(f"Secret '{secret_id}' already exists") from exc
            raise KeystoreError(f"Failed to create secret '{secret_id}': {exc}") from exc
        except BotoCoreError as exc:
            raise KeystoreError(f"Failed to create secret '{secret_id}': {exc}") from exc

        logger.info("Secret written to secretsmanager as '%s'", secret_id)

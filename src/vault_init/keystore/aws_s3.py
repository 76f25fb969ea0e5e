"""
AWS S3 keystore with customer-supplied encryption keys (SSE-C).

S3 encrypts each object with a key we send on every request and
never stores that key. Every PutObject and GetObject therefore
carries the base64 key, the base64 MD5 of the raw key, and the
AES256 algorithm; a GetObject with a different key is rejected by S3.

botocore only base64-encodes the key itself when no MD5 is passed,
so both headers are encoded here.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from ..config import AwsS3KeystoreConfig
from ..credentials import RetryPolicy, session_client, wait_until_valid_session
from ..models import KeyBundle
from .base import ROOT_TOKEN_FILE, UNSEAL_KEYS_FILE, Keystore, KeystoreError, object_path

logger = logging.getLogger("vault_init.keystore.aws_s3")

SSE_CUSTOMER_ALGORITHM = "AES256"


def key_fingerprint(key: str) -> str:
    """Base64 MD5 digest of the customer key, as S3 expects it."""
    return base64.b64encode(hashlib.md5(key.encode("utf-8")).digest()).decode("ascii")


class AwsS3Keystore(Keystore):
    """SSE-C S3 keystore.

    Args:
        config: Bucket, path prefix and 32-byte customer key.
        client: Pre-built s3 client. When omitted, one is created from
            a session obtained by waiting for credentials.
        retry_policy: Credential wait policy.
    """

    def __init__(
        self,
        config: AwsS3KeystoreConfig,
        client: Optional[Any] = None,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        self._config = config
        self._key_b64 = base64.b64encode(config.encryption_key.encode("utf-8")).decode("ascii")
        self._key_md5 = key_fingerprint(config.encryption_key)
        if client is None:
            session = wait_until_valid_session(config.aws, retry_policy)
            client = session_client(session, "s3", config.aws)
        self._client = client

    @property
    def name(self) -> str:
        return "aws-s3"

    @property
    def key_fingerprint(self) -> str:
        return self._key_md5

    def bucket_path(self, name: str) -> str:
        return object_path(self._config.bucket_path, name)

    def _sse_params(self) -> dict[str, str]:
        return {
            "SSECustomerAlgorithm": SSE_CUSTOMER_ALGORITHM,
            "SSECustomerKey": self._key_b64,
            "SSECustomerKeyMD5": self._key_md5,
        }

    def encrypt_and_write(self, bundle: KeyBundle) -> None:
        self._put(self.bucket_path(UNSEAL_KEYS_FILE), bundle.to_json())
        self._put(
            self.bucket_path(ROOT_TOKEN_FILE),
            json.dumps(bundle.root_credential).encode("utf-8"),
        )

    def read_and_decrypt(self) -> KeyBundle:
        key = self.bucket_path(UNSEAL_KEYS_FILE)
        location = f"s3://{self._config.bucket_name}/{key}"
        try:
            response = self._client.get_object(
                Bucket=self._config.bucket_name, Key=key, **self._sse_params()
            )
            body = response["Body"]
            try:
                data = body.read()
            finally:
                body.close()
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in ("NoSuchKey", "404"):
                raise KeystoreError(f"Unseal keys not found at {location}") from exc
            raise KeystoreError(f"Failed to read {location}: {exc}") from exc
        except BotoCoreError as exc:
            raise KeystoreError(f"Failed to read {location}: {exc}") from exc

        try:
            return KeyBundle.from_json(data)
        except ValidationError as exc:
            raise KeystoreError(f"{location} is not a valid key bundle: {exc}") from exc

    def close(self) -> None:
        # boto3 clients hold no resources that need releasing
        pass

    def _put(self, key: str, content: bytes) -> None:
        try:
            self._client.put_object(
                Bucket=self._config.bucket_name,
                Key=key,
                Body=content,
                **self._sse_params(),
            )
        except (BotoCoreError, ClientError) as exc:
            raise KeystoreError(
                f"Failed to write s3://{self._config.bucket_name}/{key}: {exc}"
            ) from exc

        logger.info("Object written to s3://%s/%s", self._config.bucket_name, key)

"""
GCP keystore: Cloud KMS encryption, Cloud Storage persistence.

Both the init response and the root token are encrypted with the
configured KMS CryptoKey and written as separate blobs:

    gs://<bucket>/<prefix>/unseal-keys.json.enc
    gs://<bucket>/<prefix>/root-token.enc

Blob contents are the base64 ciphertext, the same text the KMS JSON
API returns, so objects written by earlier vault-init releases stay
readable.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Optional

import requests
from google.api_core import exceptions as gexc
from google.api_core.client_info import ClientInfo
from google.auth import exceptions as auth_exc
from google.cloud import kms, storage
from pydantic import ValidationError

from .. import USER_AGENT
from ..config import GcpKeystoreConfig
from ..models import KeyBundle
from .base import ROOT_TOKEN_FILE, UNSEAL_KEYS_FILE, Keystore, KeystoreError, object_path

logger = logging.getLogger("vault_init.keystore.gcp")

ENCRYPTED_SUFFIX = ".enc"

# Token refresh and HTTP transport failures are not GoogleAPIErrors.
CLIENT_ERRORS = (
    gexc.GoogleAPIError,
    auth_exc.GoogleAuthError,
    requests.exceptions.RequestException,
)


class GcpKeystore(Keystore):
    """KMS + GCS keystore.

    Args:
        config: Bucket, key and optional prefix.
        kms_client: Pre-built KeyManagementServiceClient (tests).
        storage_client: Pre-built storage.Client (tests).
    """

    def __init__(
        self,
        config: GcpKeystoreConfig,
        kms_client: Optional[Any] = None,
        storage_client: Optional[Any] = None,
    ) -> None:
        self._config = config
        self._closed = False
        try:
            self._kms = kms_client or kms.KeyManagementServiceClient()
            self._storage = storage_client or storage.Client(
                client_info=ClientInfo(user_agent=USER_AGENT),
            )
        except CLIENT_ERRORS as exc:
            raise KeystoreError(f"Failed to create GCP clients: {exc}") from exc

    @property
    def name(self) -> str:
        return "gcp"

    @property
    def unseal_keys_object(self) -> str:
        return object_path(self._config.prefix, UNSEAL_KEYS_FILE + ENCRYPTED_SUFFIX)

    @property
    def root_token_object(self) -> str:
        return object_path(self._config.prefix, ROOT_TOKEN_FILE + ENCRYPTED_SUFFIX)

    def encrypt_and_write(self, bundle: KeyBundle) -> None:
        root_token_ct = self._encrypt(bundle.root_credential.encode("utf-8"))
        unseal_keys_ct = self._encrypt(bundle.to_json())

        self._upload(self.unseal_keys_object, unseal_keys_ct)
        logger.info(
            "Unseal keys written to gs://%s/%s",
            self._config.bucket_name, self.unseal_keys_object,
        )

        self._upload(self.root_token_object, root_token_ct)
        logger.info(
            "Root token written to gs://%s/%s",
            self._config.bucket_name, self.root_token_object,
        )

    def read_and_decrypt(self) -> KeyBundle:
        path = self.unseal_keys_object
        blob = self._storage.bucket(self._config.bucket_name).blob(path)
        try:
            data = blob.download_as_bytes()
        except gexc.NotFound as exc:
            raise KeystoreError(
                f"Unseal keys not found at gs://{self._config.bucket_name}/{path}"
            ) from exc
        except CLIENT_ERRORS as exc:
            raise KeystoreError(f"Failed to read gs://{self._config.bucket_name}/{path}: {exc}") from exc

        try:
            ciphertext = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise KeystoreError(f"Unseal keys object {path} is not valid base64") from exc

        plaintext = self._decrypt(ciphertext)
        try:
            return KeyBundle.from_json(plaintext)
        except ValidationError as exc:
            raise KeystoreError(f"Decrypted unseal keys are invalid: {exc}") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for label, closer in (
            ("storage", getattr(self._storage, "close", None)),
            ("kms", getattr(getattr(self._kms, "transport", None), "close", None)),
        ):
            if closer is None:
                continue
            try:
                closer()
            except Exception as exc:
                logger.debug("Error closing %s client: %s", label, exc)

    def _encrypt(self, plaintext: bytes) -> bytes:
        try:
            response = self._kms.encrypt(
                request={"name": self._config.kms_key_id, "plaintext": plaintext}
            )
        except CLIENT_ERRORS as exc:
            raise KeystoreError(f"KMS encrypt failed: {exc}") from exc
        return base64.b64encode(response.ciphertext)

    def _decrypt(self, ciphertext: bytes) -> bytes:
        try:
            response = self._kms.decrypt(
                request={"name": self._config.kms_key_id, "ciphertext": ciphertext}
            )
        except CLIENT_ERRORS as exc:
            raise KeystoreError(f"KMS decrypt failed: {exc}") from exc
        return response.plaintext

    def _upload(self, path: str, data: bytes) -> None:
        blob = self._storage.bucket(self._config.bucket_name).blob(path)
        try:
            # generation 0: only create, never overwrite existing key material
            blob.upload_from_string(
                data, content_type="application/octet-stream", if_generation_match=0,
            )
        except gexc.PreconditionFailed as exc:
            raise KeystoreError(
                f"gs://{self._config.bucket_name}/{path} already exists"
            ) from exc
        except CLIENT_ERRORS as exc:
            raise KeystoreError(
                f"Failed to write gs://{self._config.bucket_name}/{path}: {exc}"
            ) from exc

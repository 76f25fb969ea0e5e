"""
Keystore interface -- where the unseal keys live between restarts.

Every backend stores two independently encrypted objects: the full
init response (unseal shares + root token) and the root token on its
own, so operators can grant access to one without the other.
"""

from __future__ import annotations

import posixpath
from abc import ABC, abstractmethod

from ..models import KeyBundle

UNSEAL_KEYS_FILE = "unseal-keys.json"
ROOT_TOKEN_FILE = "root-token"


class KeystoreError(Exception):
    """Raised when key material cannot be written, read, or decrypted."""


def object_path(prefix: str, name: str) -> str:
    """Join a storage prefix and an object name.

    Trailing separators on the prefix are dropped; an empty prefix
    yields the bare name.
    """
    prefix = (prefix or "").rstrip("/")
    if not prefix:
        return name
    return posixpath.join(prefix, name)


class Keystore(ABC):
    """Abstract encrypted keystore for a single KeyBundle."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name, as used in configuration."""

    @abstractmethod
    def encrypt_and_write(self, bundle: KeyBundle) -> None:
        """Encrypt and persist the bundle and the root token.

        Called once per initialization. Not idempotent: a second call
        may fail because the objects already exist.

        Raises:
            KeystoreError: If either object could not be written.
        """

    @abstractmethod
    def read_and_decrypt(self) -> KeyBundle:
        """Fetch and decrypt the full bundle.

        Raises:
            KeystoreError: If the object is missing, corrupt, or fails
                decryption.
        """

    def close(self) -> None:
        """Release clients. Safe to call more than once."""

    def __enter__(self) -> "Keystore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

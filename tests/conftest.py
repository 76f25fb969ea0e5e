"""Shared test fixtures for vault-init.

All cloud and Vault calls go to in-memory fakes -- no real
infrastructure required.
"""

from __future__ import annotations

import pytest

from fakes import FakeKms, FakeS3, FakeSecretsManager, FakeStorage, make_bundle
from vault_init.models import KeyBundle


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def bundle() -> KeyBundle:
    return make_bundle()


@pytest.fixture
def fake_kms() -> FakeKms:
    return FakeKms()


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def fake_secrets() -> FakeSecretsManager:
    return FakeSecretsManager()


@pytest.fixture
def fake_s3() -> FakeS3:
    return FakeS3()


@pytest.fixture
def clean_env(monkeypatch) -> dict:
    """Environment with none of the vault-init variables set."""
    from vault_init.config import ENV_VARS

    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return {}

"""Tests for the SSE-C S3 keystore."""

from __future__ import annotations

import base64
import io
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import boto3
import pytest
from botocore.awsrequest import AWSResponse

from fakes import OTHER_SSE_KEY, SSE_KEY
from vault_init.config import AwsS3KeystoreConfig
from vault_init.keystore import AwsS3Keystore, KeystoreError
from vault_init.keystore.aws_s3 import key_fingerprint


SSE_KEY_B64 = "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY="


def _keystore(client, key=SSE_KEY, path="vault"):
    config = AwsS3KeystoreConfig(encryption_key=key, bucket_name="vault-keys", bucket_path=path)
    return AwsS3Keystore(config, client=client)


class TestKeyFingerprint:

    def test_known_value(self):
        # base64(md5("0123456789abcdef0123456789abcdef"))
        assert key_fingerprint(SSE_KEY) == "hRasmdxgYDKV3nvbahU1MA=="

    def test_stable(self):
        assert key_fingerprint(SSE_KEY) == key_fingerprint(SSE_KEY)
        assert key_fingerprint(SSE_KEY) != key_fingerprint(OTHER_SSE_KEY)

    def test_cached_on_keystore(self, fake_s3):
        assert _keystore(fake_s3).key_fingerprint == key_fingerprint(SSE_KEY)

    def test_same_key_same_fingerprint_across_instances(self, fake_s3):
        first = _keystore(fake_s3)
        second = _keystore(MagicMock())
        assert first.key_fingerprint == second.key_fingerprint
        assert first.key_fingerprint != _keystore(fake_s3, key=OTHER_SSE_KEY).key_fingerprint


class TestConfig:

    def test_key_must_be_32_bytes(self):
        with pytest.raises(ValueError, match="32 bytes"):
            AwsS3KeystoreConfig(encryption_key="short", bucket_name="b")

    def test_key_hidden_from_repr(self):
        config = AwsS3KeystoreConfig(encryption_key=SSE_KEY, bucket_name="b")
        assert SSE_KEY not in repr(config)


class TestWriteAndRead:
    """Every request carries the customer key."""

    def test_round_trip(self, fake_s3, bundle):
        ks = _keystore(fake_s3)
        ks.encrypt_and_write(bundle)
        assert ks.read_and_decrypt() == bundle

    def test_object_keys(self, fake_s3, bundle):
        _keystore(fake_s3, path="prod/vault/").encrypt_and_write(bundle)
        assert set(fake_s3.objects) == {
            ("vault-keys", "prod/vault/unseal-keys.json"),
            ("vault-keys", "prod/vault/root-token"),
        }

    def test_empty_path_uses_bare_names(self, fake_s3, bundle):
        _keystore(fake_s3, path="").encrypt_and_write(bundle)
        assert ("vault-keys", "unseal-keys.json") in fake_s3.objects

    def test_root_token_stored_as_json_string(self, fake_s3, bundle):
        _keystore(fake_s3).encrypt_and_write(bundle)
        data = fake_s3.objects[("vault-keys", "vault/root-token")]["data"]
        assert json.loads(data) == "s.root-token"

    def test_sse_headers_on_every_request(self, fake_s3, bundle):
        ks = _keystore(fake_s3)
        ks.encrypt_and_write(bundle)
        ks.read_and_decrypt()
        assert len(fake_s3.requests) == 3
        for params in fake_s3.requests:
            assert params == {
                "SSECustomerAlgorithm": "AES256",
                "SSECustomerKey": SSE_KEY_B64,
                "SSECustomerKeyMD5": key_fingerprint(SSE_KEY),
            }

    def test_different_key_cannot_read(self, fake_s3, bundle):
        _keystore(fake_s3).encrypt_and_write(bundle)
        with pytest.raises(KeystoreError, match="Failed to read"):
            _keystore(fake_s3, key=OTHER_SSE_KEY).read_and_decrypt()

    def test_missing_object(self, fake_s3):
        with pytest.raises(KeystoreError, match="not found"):
            _keystore(fake_s3).read_and_decrypt()

    def test_body_closed_after_read(self, bundle):
        body = MagicMock()
        body.read.return_value = bundle.to_json()
        client = MagicMock()
        client.get_object.return_value = {"Body": body}
        assert _keystore(client).read_and_decrypt() == bundle
        body.close.assert_called_once()

    def test_invalid_bundle(self):
        body = MagicMock()
        body.read.return_value = b"[]"
        client = MagicMock()
        client.get_object.return_value = {"Body": body}
        with pytest.raises(KeystoreError, match="not a valid key bundle"):
            _keystore(client).read_and_decrypt()


class TestWireHeaders:
    """Headers as serialized by a real boto3 S3 client."""

    @pytest.fixture
    def wire(self):
        session = boto3.session.Session(
            aws_access_key_id="AKIDEXAMPLE",
            aws_secret_access_key="secret",
            region_name="us-east-1",
        )
        wire = SimpleNamespace(client=session.client("s3"), sent=[], get_body=b"")

        def intercept(params, model, **kwargs):
            wire.sent.append((model.name, dict(params["headers"])))
            http = AWSResponse("https://s3.amazonaws.com", 200, {}, None)
            if model.name == "PutObject":
                return http, {"ResponseMetadata": {"HTTPStatusCode": 200}}
            return http, {"Body": io.BytesIO(wire.get_body), "ResponseMetadata": {"HTTPStatusCode": 200}}

        wire.client.meta.events.register("before-call.s3", intercept)
        return wire

    def test_key_header_is_base64(self, wire, bundle):
        ks = _keystore(wire.client)
        ks.encrypt_and_write(bundle)

        name, headers = wire.sent[0]
        assert name == "PutObject"
        assert headers["x-amz-server-side-encryption-customer-key"] == SSE_KEY_B64
        assert headers["x-amz-server-side-encryption-customer-key-MD5"] == key_fingerprint(SSE_KEY)
        assert headers["x-amz-server-side-encryption-customer-algorithm"] == "AES256"
        assert base64.b64decode(SSE_KEY_B64) == SSE_KEY.encode()

    def test_get_carries_same_headers(self, wire, bundle):
        ks = _keystore(wire.client)
        wire.get_body = bundle.to_json()
        ks.encrypt_and_write(bundle)
        ks.read_and_decrypt()

        put_headers = wire.sent[0][1]
        name, get_headers = wire.sent[-1]
        assert name == "GetObject"
        for header in (
            "x-amz-server-side-encryption-customer-key",
            "x-amz-server-side-encryption-customer-key-MD5",
        ):
            assert get_headers[header] == put_headers[header]

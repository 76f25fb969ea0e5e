"""Tests for configuration loading and validation."""

from __future__ import annotations

import socket

import pytest
from pydantic import ValidationError

from fakes import SSE_KEY
from vault_init.config import (
    DEFAULT_CHECK_INTERVAL,
    DEFAULT_CREDENTIALS_RETRY_INTERVAL,
    DEFAULT_VAULT_ADDR,
    ConfigError,
    load_config,
)
from vault_init.models import BackendType

GCP_ENV = {"GCS_BUCKET_NAME": "vault-keys", "KMS_KEY_ID": "projects/p/keys/k"}


class TestDefaults:
    """Defaults when only the required settings are given."""

    def test_gcp_is_default_backend(self):
        config = load_config(environ=GCP_ENV)
        assert config.backend == BackendType.GCP
        assert config.check_interval == DEFAULT_CHECK_INTERVAL
        assert config.vault_addr == DEFAULT_VAULT_ADDR
        assert config.vault_tls_skip_verify is True
        assert config.secret_shares == 5
        assert config.secret_threshold == 3
        assert config.init_node_name is None

    def test_node_name_defaults_to_hostname(self):
        assert load_config(environ=GCP_ENV).node_name == socket.gethostname()

    def test_uses_process_environment(self, clean_env, monkeypatch):
        monkeypatch.setenv("GCS_BUCKET_NAME", "b")
        monkeypatch.setenv("KMS_KEY_ID", "k")
        monkeypatch.setenv("CHECK_INTERVAL", "30")
        config = load_config()
        assert config.gcs_bucket_name == "b"
        assert config.check_interval == 30


class TestEnvironment:
    """Environment variable parsing."""

    def test_backend_is_case_insensitive(self):
        env = {
            "CLOUD_PROVIDER": "AWS",
            "KMS_KEY_ID": "alias/vault",
            "AWS_SECRETS_PATH": "vault/",
        }
        assert load_config(environ=env).backend == BackendType.AWS

    def test_aws_s3_backend(self):
        env = {
            "CLOUD_PROVIDER": "aws-s3",
            "AWS_S3_BUCKET_NAME": "keys",
            "AWS_S3_BUCKET_PATH": "prod/vault",
            "AWS_S3_ENCRYPTION_KEY": SSE_KEY,
        }
        config = load_config(environ=env)
        ks = config.aws_s3_keystore()
        assert ks.bucket_name == "keys"
        assert ks.bucket_path == "prod/vault"
        assert ks.encryption_key == SSE_KEY

    def test_empty_values_are_unset(self):
        env = dict(GCP_ENV, CHECK_INTERVAL="", VAULT_ADDR="")
        config = load_config(environ=env)
        assert config.check_interval == DEFAULT_CHECK_INTERVAL
        assert config.vault_addr == DEFAULT_VAULT_ADDR

    def test_skip_verify_parsed_as_bool(self):
        config = load_config(environ=dict(GCP_ENV, VAULT_SKIP_VERIFY="false"))
        assert config.vault_tls_skip_verify is False

    def test_init_node_name(self):
        config = load_config(environ=dict(GCP_ENV, INIT_NODE_NAME="vault-0", NODE_NAME="vault-1"))
        assert config.init_node_name == "vault-0"
        assert config.node_name == "vault-1"

    def test_blank_init_node_name_is_none(self):
        config = load_config(environ=dict(GCP_ENV, INIT_NODE_NAME="  "))
        assert config.init_node_name is None

    def test_aws_settings(self):
        env = {
            "CLOUD_PROVIDER": "aws",
            "KMS_KEY_ID": "alias/vault",
            "AWS_SECRETS_PATH": "vault",
            "AWS_ENDPOINT": "http://localstack:4566",
            "AWS_CREDENTIALS_RETRY_INTERVAL": "2",
        }
        ks = load_config(environ=env).aws_secrets_keystore()
        assert ks.aws.endpoint == "http://localstack:4566"
        assert ks.aws.retry_on_credentials_wait == 2.0
        assert ks.secrets_path == "vault"

    def test_non_positive_retry_interval_uses_default(self):
        env = {
            "CLOUD_PROVIDER": "aws",
            "KMS_KEY_ID": "k",
            "AWS_SECRETS_PATH": "p",
            "AWS_CREDENTIALS_RETRY_INTERVAL": "0",
        }
        assert load_config(environ=env).aws.retry_on_credentials_wait == DEFAULT_CREDENTIALS_RETRY_INTERVAL

    def test_log_level_normalized(self):
        assert load_config(environ=dict(GCP_ENV, LOG_LEVEL="debug")).log_level == "DEBUG"


class TestValidation:
    """Invalid configurations fail at load time."""

    def test_missing_gcp_settings(self):
        with pytest.raises(ConfigError, match="GCS_BUCKET_NAME, KMS_KEY_ID must be set"):
            load_config(environ={})

    def test_missing_aws_secrets_path(self):
        with pytest.raises(ConfigError, match="AWS_SECRETS_PATH"):
            load_config(environ={"CLOUD_PROVIDER": "aws", "KMS_KEY_ID": "k"})

    def test_missing_s3_key(self):
        env = {"CLOUD_PROVIDER": "aws-s3", "AWS_S3_BUCKET_NAME": "b"}
        with pytest.raises(ConfigError, match="AWS_S3_ENCRYPTION_KEY"):
            load_config(environ=env)

    def test_s3_key_must_be_32_bytes(self):
        env = {
            "CLOUD_PROVIDER": "aws-s3",
            "AWS_S3_BUCKET_NAME": "b",
            "AWS_S3_ENCRYPTION_KEY": "too-short",
        }
        with pytest.raises(ConfigError, match="exactly 32 bytes"):
            load_config(environ=env)

    def test_unknown_backend(self):
        with pytest.raises(ConfigError, match="backend"):
            load_config(environ=dict(GCP_ENV, CLOUD_PROVIDER="azure"))

    @pytest.mark.parametrize("value", ["0", "-5", "ten"])
    def test_bad_check_interval(self, value):
        with pytest.raises(ConfigError, match="check_interval"):
            load_config(environ=dict(GCP_ENV, CHECK_INTERVAL=value))

    def test_threshold_above_shares(self):
        with pytest.raises(ConfigError, match="secret_threshold"):
            load_config(environ=dict(GCP_ENV, SECRET_SHARES="2", SECRET_THRESHOLD="3"))

    def test_unknown_log_level(self):
        with pytest.raises(ConfigError, match="log level"):
            load_config(environ=dict(GCP_ENV, LOG_LEVEL="chatty"))

    def test_config_is_frozen(self):
        config = load_config(environ=GCP_ENV)
        with pytest.raises(ValidationError):
            config.check_interval = 1


class TestYamlFile:
    """YAML config file with environment overlay."""

    def test_file_values(self, tmp_path):
        path = tmp_path / "vault-init.yaml"
        path.write_text(
            "backend: aws\n"
            "kms_key_id: alias/vault\n"
            "aws_secrets_path: vault/prod\n"
            "check_interval: 15\n"
        )
        config = load_config(path, environ={})
        assert config.backend == BackendType.AWS
        assert config.check_interval == 15

    def test_environment_overrides_file(self, tmp_path):
        path = tmp_path / "vault-init.yaml"
        path.write_text("gcs_bucket_name: from-file\nkms_key_id: k\ncheck_interval: 15\n")
        config = load_config(path, environ={"CHECK_INTERVAL": "60"})
        assert config.check_interval == 60
        assert config.gcs_bucket_name == "from-file"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path, environ=GCP_ENV).gcs_bucket_name == "vault-keys"

    def test_unknown_key_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("gcs_bucket_name: b\nkms_key_id: k\nbucket: typo\n")
        with pytest.raises(ConfigError, match="bucket"):
            load_config(path, environ={})

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path, environ={})

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("key: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path, environ={})

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="Cannot read"):
            load_config(tmp_path / "nope.yaml", environ={})


class TestRedaction:
    """Secret material never leaves redacted()."""

    def test_s3_key_masked(self):
        env = {
            "CLOUD_PROVIDER": "aws-s3",
            "AWS_S3_BUCKET_NAME": "b",
            "AWS_S3_ENCRYPTION_KEY": SSE_KEY,
        }
        config = load_config(environ=env)
        data = config.redacted()
        assert data["s3_encryption_key"] == "********"
        assert data["backend"] == "aws-s3"
        assert SSE_KEY not in repr(config)

    def test_gcp_config_has_no_key(self):
        assert load_config(environ=GCP_ENV).redacted()["s3_encryption_key"] is None

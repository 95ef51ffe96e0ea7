"""
Unit tests for configuration loading.

Tests cover:
- Defaults
- Environment overrides
- Secret files
- Validation
- Logging setup
"""

import logging

import json_log_formatter
import pytest

from scalar_store.config import (
    AuthConfig,
    ObservabilityConfig,
    ScalarConfig,
    StoreConfig,
    setup_logging,
)
from scalar_store.errors import ConfigurationError


class TestConfig:
    """Tests for configuration classes."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        """Remove SCALAR_* variables from the environment."""
        for name in (
            "SCALAR_ENDPOINT",
            "SCALAR_NAMESPACE",
            "SCALAR_DATABASE",
            "SCALAR_ROOT_USER",
            "SCALAR_ROOT_PASSWORD",
            "SCALAR_ROOT_PASSWORD_FILE",
            "SCALAR_TOKEN_SECRET",
            "SCALAR_TOKEN_SECRET_FILE",
            "SCALAR_TOKEN_TTL_SECONDS",
            "SCALAR_LOG_FORMAT",
        ):
            monkeypatch.delenv(name, raising=False)

    def test_defaults(self):
        """Defaults work for local development."""
        config = ScalarConfig.from_env()
        assert config.store.namespace == "scalar"
        assert config.store.database == "scalar"
        assert config.auth.root_username == "root"
        assert config.auth.token_ttl_seconds == 3600

    def test_no_default_secrets(self):
        """The root password and token secret are never defaulted."""
        auth = AuthConfig.from_env()
        assert auth.root_password is None
        assert auth.token_secret is None

    def test_env_overrides(self, monkeypatch):
        """Environment variables override defaults."""
        monkeypatch.setenv("SCALAR_ENDPOINT", "/tmp/scalar")
        monkeypatch.setenv("SCALAR_NAMESPACE", "cms")
        monkeypatch.setenv("SCALAR_DATABASE", "site")
        monkeypatch.setenv("SCALAR_ROOT_PASSWORD", "hunter2")

        config = ScalarConfig.from_env()
        assert config.store.endpoint == "/tmp/scalar"
        assert config.store.namespace == "cms"
        assert config.store.database == "site"
        assert config.auth.root_password == "hunter2"

    def test_secret_file(self, monkeypatch, tmp_path):
        """Secrets can be read from mounted files."""
        secret = tmp_path / "root_password"
        secret.write_text("from-file\n")
        monkeypatch.setenv("SCALAR_ROOT_PASSWORD_FILE", str(secret))

        assert AuthConfig.from_env().root_password == "from-file"

    def test_missing_secret_file(self, monkeypatch, tmp_path):
        """An unreadable secret file is a configuration error."""
        monkeypatch.setenv("SCALAR_TOKEN_SECRET_FILE", str(tmp_path / "missing"))

        with pytest.raises(ConfigurationError):
            AuthConfig.from_env()

    def test_secrets_not_in_repr(self):
        """Secrets are hidden from repr."""
        auth = AuthConfig(root_password="hunter2", token_secret="s3cret")
        assert "hunter2" not in repr(auth)
        assert "s3cret" not in repr(auth)

    def test_validate_ttl(self):
        """Token TTL must be positive."""
        config = ScalarConfig(auth=AuthConfig(token_ttl_seconds=0))
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_validate_log_format(self):
        """Only json and text log formats are accepted."""
        config = ScalarConfig(observability=ObservabilityConfig(log_format="xml"))
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_validate_namespace(self):
        """Namespace and database must be set."""
        config = ScalarConfig(store=StoreConfig(namespace=""))
        with pytest.raises(ConfigurationError):
            config.validate()


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        """Restore the root logger after each test."""
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers = handlers
        root.setLevel(level)

    def test_json_format(self):
        """JSON format installs the JSON formatter."""
        setup_logging(ScalarConfig(observability=ObservabilityConfig(log_level="DEBUG")))

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, json_log_formatter.JSONFormatter)

    def test_text_format(self):
        """Text format installs a plain formatter."""
        setup_logging(ScalarConfig(observability=ObservabilityConfig(log_format="text")))

        formatter = logging.getLogger().handlers[0].formatter
        assert not isinstance(formatter, json_log_formatter.JSONFormatter)

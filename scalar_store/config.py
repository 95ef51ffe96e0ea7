"""
Configuration management for scalar-store.

All configuration is done via environment variables. Secrets may also be
read from files (``*_FILE`` variables) so they can be mounted by the
deployment instead of living in the environment.

Invariants:
    - All settings have sensible defaults for local development
    - The root credential and token secret have no literal defaults
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep secrets out of log_config()
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import json_log_formatter

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


def _read_secret(name: str) -> str | None:
    """Read a secret from ``NAME`` or from the file named by ``NAME_FILE``."""
    value = os.getenv(name)
    if value:
        return value

    path = os.getenv(f"{name}_FILE")
    if not path:
        return None
    try:
        return Path(path).read_text().strip() or None
    except OSError as e:
        raise ConfigurationError(f"Cannot read {name}_FILE: {e.strerror}", setting=f"{name}_FILE") from e


@dataclass(frozen=True)
class StoreConfig:
    """Backing store configuration.

    Attributes:
        endpoint: Directory holding one SQLite file per namespace/database
        namespace: Namespace every session is bound to
        database: Database every session is bound to
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    endpoint: str = "./data"
    namespace: str = "scalar"
    database: str = "scalar"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StoreConfig:
        """Load configuration from environment variables."""
        return cls(
            endpoint=os.getenv("SCALAR_ENDPOINT", "./data"),
            namespace=os.getenv("SCALAR_NAMESPACE", "scalar"),
            database=os.getenv("SCALAR_DATABASE", "scalar"),
            wal_mode=os.getenv("SCALAR_SQLITE_WAL_MODE", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("SCALAR_SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class AuthConfig:
    """Authentication configuration.

    Attributes:
        root_username: Privileged principal used by init_system()
        root_password: Bootstrap credential for the privileged principal
        token_secret: HMAC key used to sign and verify bearer tokens
        token_ttl_seconds: Lifetime of issued bearer tokens
    """

    root_username: str = "root"
    root_password: str | None = field(default=None, repr=False)
    token_secret: str | None = field(default=None, repr=False)
    token_ttl_seconds: int = 3600

    @classmethod
    def from_env(cls) -> AuthConfig:
        """Load configuration from environment variables."""
        return cls(
            root_username=os.getenv("SCALAR_ROOT_USER", "root"),
            root_password=_read_secret("SCALAR_ROOT_PASSWORD"),
            token_secret=_read_secret("SCALAR_TOKEN_SECRET"),
            token_ttl_seconds=int(os.getenv("SCALAR_TOKEN_TTL_SECONDS", "3600")),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("SCALAR_LOG_LEVEL", "INFO"),
            log_format=os.getenv("SCALAR_LOG_FORMAT", "json"),
        )


@dataclass
class ScalarConfig:
    """Complete configuration.

    Attributes:
        store: Backing store configuration
        auth: Authentication configuration
        observability: Logging configuration
    """

    store: StoreConfig = field(default_factory=StoreConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ScalarConfig:
        """Load complete configuration from environment variables.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        config = cls(
            store=StoreConfig.from_env(),
            auth=AuthConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ConfigurationError: If configuration is invalid.
        """
        if not self.store.endpoint:
            raise ConfigurationError("SCALAR_ENDPOINT must not be empty", setting="SCALAR_ENDPOINT")
        if not self.store.namespace or not self.store.database:
            raise ConfigurationError(
                "SCALAR_NAMESPACE and SCALAR_DATABASE must not be empty",
                setting="SCALAR_NAMESPACE",
            )
        if self.auth.token_ttl_seconds <= 0:
            raise ConfigurationError(
                "SCALAR_TOKEN_TTL_SECONDS must be positive",
                setting="SCALAR_TOKEN_TTL_SECONDS",
            )
        if self.observability.log_format not in ("json", "text"):
            raise ConfigurationError(
                f"Invalid SCALAR_LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text",
                setting="SCALAR_LOG_FORMAT",
            )

        if not os.path.exists(self.store.endpoint):
            logger.warning(
                f"Endpoint directory does not exist: {self.store.endpoint}. "
                "It will be created on first connection."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Configuration loaded",
            extra={
                "endpoint": self.store.endpoint,
                "namespace": self.store.namespace,
                "database": self.store.database,
                "root_user": self.auth.root_username,
                "root_password_set": self.auth.root_password is not None,
                "token_secret_set": self.auth.token_secret is not None,
                "log_level": self.observability.log_level,
            },
        )


def setup_logging(config: ScalarConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Store configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

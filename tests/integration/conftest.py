"""
Integration test fixtures for scalar-store.

Every test gets its own SQLite endpoint directory.
"""

import tempfile

import pytest

from scalar_store.config import AuthConfig, ScalarConfig, StoreConfig


@pytest.fixture
def data_dir():
    """Create temporary endpoint directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def config(data_dir) -> ScalarConfig:
    """Configuration with a root credential and token secret."""
    return ScalarConfig(
        store=StoreConfig(endpoint=data_dir, namespace="test_ns", database="test_db"),
        auth=AuthConfig(
            root_username="root",
            root_password="root-password",
            token_secret="test-token-secret-0123456789abcdef",
        ),
    )

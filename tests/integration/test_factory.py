"""
Integration tests for the connection factory and provisioning.

Tests cover:
- Anonymous and system sessions
- Root credential handling
- Provisioning permissions and idempotency
"""

import pytest
from pydantic import BaseModel

from scalar_store.config import AuthConfig, ScalarConfig
from scalar_store.db.factory import ConnectionFactory
from scalar_store.db.query import Query
from scalar_store.db.schema import create_editor, init, init_doc
from scalar_store.db.session import PrincipalKind
from scalar_store.document import document
from scalar_store.errors import ConfigurationError, InvalidAuthError, QueryError


@document("note")
class Note(BaseModel):
    text: str


class TestConnectionFactory:
    """Tests for ConnectionFactory."""

    @pytest.mark.asyncio
    async def test_init_is_anonymous(self, config):
        """init() returns an unauthenticated session."""
        session = await ConnectionFactory(config).init()

        assert session.principal.kind is PrincipalKind.ANONYMOUS
        assert session.namespace == "test_ns"
        assert session.database == "test_db"

    @pytest.mark.asyncio
    async def test_init_system_is_root(self, config):
        """init_system() signs in as root."""
        async with await ConnectionFactory(config).init_system() as system:
            assert system.principal.is_root

        assert system.closed
        assert system.principal.kind is PrincipalKind.ANONYMOUS

    @pytest.mark.asyncio
    async def test_init_system_requires_credential(self, config):
        """A system session needs an externally supplied root credential."""
        no_root = ScalarConfig(store=config.store, auth=AuthConfig(token_secret="x" * 32))

        with pytest.raises(ConfigurationError):
            await ConnectionFactory(no_root).init_system()

    @pytest.mark.asyncio
    async def test_wrong_root_password_rejected(self, config):
        """The store rejects a wrong root password."""
        session = await ConnectionFactory(config).init()

        with pytest.raises(InvalidAuthError):
            await session.signin_root("root", "not-the-password")

    @pytest.mark.asyncio
    async def test_sessions_share_database(self, config):
        """Sessions from one factory see the same data."""
        factory = ConnectionFactory(config)
        async with await factory.init_system() as system:
            await system.query(Query().query("CREATE TABLE shared (id TEXT)"))
            await system.query(Query().query("INSERT INTO shared (id) VALUES ('a')"))

        session = await factory.init()
        response = await session.query(Query(readonly=True).query("SELECT id FROM shared"))
        assert response.take(0) == [{"id": "a"}]


class TestProvisioning:
    """Tests for provisioning helpers."""

    @pytest.mark.asyncio
    async def test_requires_system_session(self, config):
        """Provisioning on an anonymous session is rejected."""
        session = await ConnectionFactory(config).init()

        with pytest.raises(InvalidAuthError):
            await init_doc(session, Note)
        with pytest.raises(InvalidAuthError):
            await create_editor(session, "Eve", "eve@example.com", "pw")

    @pytest.mark.asyncio
    async def test_init_is_idempotent(self, config):
        """Running init twice keeps existing tables and rows."""
        async with await ConnectionFactory(config).init_system() as system:
            await init(system, Note)
            await system.query(
                Query()
                .query(
                    'INSERT INTO "note_meta" (id, created_at, modified_at) '
                    "VALUES ('n1', '2024-01-01T00:00:00+00:00', '2024-01-01T00:00:00+00:00')"
                )
            )
            await init(system, Note)

            response = await system.query(Query(readonly=True).query('SELECT id FROM "note_meta"'))
            assert response.take(0) == [{"id": "n1"}]

    @pytest.mark.asyncio
    async def test_editor_email_is_unique(self, config):
        """Two editors cannot share an email."""
        async with await ConnectionFactory(config).init_system() as system:
            await init(system)
            await create_editor(system, "Ada", "ada@example.com", "pw")

            with pytest.raises(QueryError):
                await create_editor(system, "Ada Again", "ada@example.com", "pw2")

    @pytest.mark.asyncio
    async def test_editor_password_is_hashed(self, config):
        """Editor passwords are never stored in clear text."""
        async with await ConnectionFactory(config).init_system() as system:
            await init(system)
            editor_id = await create_editor(system, "Ada", "ada@example.com", "pw")

            response = await system.query(
                Query(readonly=True)
                .query('SELECT password FROM "sc__editor" WHERE id = :id')
                .bind("id", editor_id)
            )
            assert response.take_one(0)["password"] != "pw"

"""
Provisioning of document and editor tables.

init_doc() creates the three tables of a document type, init_auth() the
editor table and its record access method. Both are idempotent and must
run on a root session (see ConnectionFactory.init_system).

Example:
    >>> async with await factory.init_system() as system:
    ...     await init(system, Article, Page)
    ...     await create_editor(system, "Ada", "ada@example.com", "secret", admin=True)
"""

from __future__ import annotations

import logging
from typing import Any

from werkzeug.security import generate_password_hash

from ..document import identifier_of
from ..errors import InvalidAuthError
from .auth import EDITOR_ACCESS
from .query import Query, Tables, quote_identifier
from .session import ACCESS_TABLE, Session

logger = logging.getLogger(__name__)


def _require_root(session: Session) -> None:
    if not session.principal.is_root:
        raise InvalidAuthError("Provisioning requires a system session")


async def init_doc(session: Session, doc: Any) -> None:
    """Create the published, draft and meta tables for a document type."""
    _require_root(session)
    tables = Tables.for_identifier(identifier_of(doc))
    await session.query(
        Query(tables)
        .query(
            "CREATE TABLE IF NOT EXISTS {published} ("
            "id TEXT PRIMARY KEY, "
            "\"inner\" TEXT NOT NULL DEFAULT '{{}}', "
            "published_at TEXT)"
        )
        .query(
            "CREATE TABLE IF NOT EXISTS {draft} ("
            "id TEXT PRIMARY KEY, "
            "\"inner\" TEXT NOT NULL DEFAULT '{{}}')"
        )
        .query(
            "CREATE TABLE IF NOT EXISTS {meta} ("
            "id TEXT PRIMARY KEY, "
            "created_at TEXT NOT NULL, "
            "modified_at TEXT NOT NULL, "
            "draft TEXT REFERENCES {draft}(id), "
            "published TEXT REFERENCES {published}(id))"
        )
    )
    logger.info("Initialized document tables", extra={"identifier": tables.identifier})


async def init_auth(session: Session) -> None:
    """Create the editor table and register the editor access method."""
    _require_root(session)
    editors = quote_identifier(EDITOR_ACCESS)
    access = quote_identifier(ACCESS_TABLE)
    await session.query(
        Query()
        .query(
            f"CREATE TABLE IF NOT EXISTS {access} ("
            "name TEXT PRIMARY KEY, "
            "table_name TEXT NOT NULL, "
            "identity_field TEXT NOT NULL, "
            "secret_field TEXT NOT NULL)"
        )
        .query(
            f"CREATE TABLE IF NOT EXISTS {editors} ("
            "id TEXT PRIMARY KEY DEFAULT (lower(hex(randomblob(10)))), "
            "name TEXT NOT NULL, "
            "email TEXT NOT NULL UNIQUE CHECK (email LIKE '%_@_%'), "
            "password TEXT NOT NULL, "
            "admin INTEGER NOT NULL DEFAULT 0)"
        )
        .query(
            f"INSERT INTO {access} (name, table_name, identity_field, secret_field) "
            "VALUES (:name, :name, 'email', 'password') "
            "ON CONFLICT(name) DO UPDATE SET table_name = excluded.table_name, "
            "identity_field = excluded.identity_field, secret_field = excluded.secret_field"
        )
        .bind("name", EDITOR_ACCESS)
    )
    logger.info("Initialized editor access", extra={"access": EDITOR_ACCESS})


async def init(session: Session, *docs: Any) -> None:
    """Initialize editor access and the tables of every document type."""
    await init_auth(session)
    for doc in docs:
        await init_doc(session, doc)


async def create_editor(
    session: Session,
    name: str,
    email: str,
    password: str,
    admin: bool = False,
) -> str:
    """Create an editor account that can sign in with email and password.

    Returns:
        The editor's record id
    """
    _require_root(session)
    editors = quote_identifier(EDITOR_ACCESS)
    response = await session.query(
        Query()
        .query(
            f"INSERT INTO {editors} (name, email, password, admin) "
            "VALUES (:name, :email, :password, :admin) RETURNING id"
        )
        .bind(
            {
                "name": name,
                "email": email,
                "password": generate_password_hash(password),
                "admin": int(admin),
            }
        )
    )
    record = response.take_one(0)
    logger.info("Created editor", extra={"admin": admin})
    return record["id"]

"""
scalar-store - Typed content items with a draft/publish lifecycle.

Each document type gets three tables in a transactional store:
- ``I``        published records, publicly visible content
- ``I_draft``  draft records, pending unpublished content
- ``I_meta``   meta records, existence marker and bookkeeping

Example:
    >>> from pydantic import BaseModel
    >>> from scalar_store import ConnectionFactory, VersionedStore, document, init
    >>>
    >>> @document("article")
    ... class Article(BaseModel):
    ...     title: str
    >>>
    >>> factory = ConnectionFactory()
    >>> async with await factory.init_system() as system:
    ...     await init(system, Article)
    ...     store = VersionedStore(system)
    ...     await store.draft(Article, "intro", {"title": "Hello"})
    ...     await store.publish(Article, "intro")

Invariants:
    - A meta record exists iff the logical item exists
    - The merged view shows the draft payload when a draft exists
    - Multi-record mutations are atomic

Version: see _version.py.
"""

from ._version import __version__

# db must be imported before document (document depends on db.query)
from .db import (
    EDITOR_ACCESS,
    ConnectionFactory,
    Query,
    QueryResponse,
    Session,
    Tables,
    VersionedStore,
    authenticate,
    create_editor,
    init,
    init_auth,
    init_doc,
    signin,
)
from .config import ScalarConfig, setup_logging
from .document import DeletedItem, Document, Item, document
from .errors import (
    AuthenticationError,
    BadCredentialsError,
    BadTokenError,
    ConfigurationError,
    IdentifierError,
    InvalidAuthError,
    InvariantViolationError,
    ItemNotFoundError,
    QueryError,
    ScalarError,
    StoreError,
    StoreUnavailableError,
)

__all__ = [
    "__version__",
    # Documents
    "Document",
    "DeletedItem",
    "Item",
    "document",
    # Database
    "ConnectionFactory",
    "EDITOR_ACCESS",
    "Query",
    "QueryResponse",
    "Session",
    "Tables",
    "VersionedStore",
    "authenticate",
    "signin",
    "create_editor",
    "init",
    "init_auth",
    "init_doc",
    # Configuration
    "ScalarConfig",
    "setup_logging",
    # Errors
    "ScalarError",
    "StoreError",
    "QueryError",
    "StoreUnavailableError",
    "InvalidAuthError",
    "AuthenticationError",
    "BadTokenError",
    "BadCredentialsError",
    "InvariantViolationError",
    "ItemNotFoundError",
    "IdentifierError",
    "ConfigurationError",
]

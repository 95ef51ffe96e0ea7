"""
Database layer for scalar-store.

This module handles:
- Query building with validated table names and bound parameters
- SQLite-backed sessions with atomic multi-statement queries
- The draft/publish versioning engine
- Authentication and connection factories
- Provisioning of document and editor tables

Invariants:
    - Every multi-row mutation is one transaction
    - Table names are derived only from validated document identifiers
    - Data values are always bound, never formatted into SQL

How to change safely:
    - Import query before the modules that depend on scalar_store.document
"""

from .query import Query, Tables, quote_identifier, validate_identifier
from .session import Principal, PrincipalKind, QueryResponse, Session
from .versioning import VersionedStore
from .auth import EDITOR_ACCESS, authenticate, signin
from .factory import ConnectionFactory
from .schema import create_editor, init, init_auth, init_doc

__all__ = [
    "Query",
    "Tables",
    "quote_identifier",
    "validate_identifier",
    "Principal",
    "PrincipalKind",
    "QueryResponse",
    "Session",
    "VersionedStore",
    "EDITOR_ACCESS",
    "authenticate",
    "signin",
    "ConnectionFactory",
    "create_editor",
    "init",
    "init_auth",
    "init_doc",
]

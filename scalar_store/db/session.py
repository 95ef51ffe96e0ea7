"""
Database session over a per-database SQLite file.

A Session is bound to one namespace/database pair and offers:
- Atomic multi-statement execution of a Query (one transaction)
- Named-parameter binding and LET intermediates between statements
- Per-statement result extraction via QueryResponse
- Principal state: anonymous, root, or a signed-in record

Invariants:
    - Every Query runs in exactly one transaction; on any failure the
      transaction is rolled back and nothing is durably observable
    - A connection is opened per query, so sessions can be shared by
      concurrent callers without in-process locking
    - sqlite3 errors surface as StoreError: StoreUnavailableError when the
      store itself cannot serve (locked, I/O, unopenable file, closed
      session), QueryError for statement failures, InvalidAuthError for
      rejected credentials

How to change safely:
    - Keep BEGIN IMMEDIATE for writes so writers queue on the busy timeout
      instead of failing on lock upgrade
    - Never log bound parameters; they carry payloads and secrets
"""

from __future__ import annotations

import asyncio
import hmac
import logging
import sqlite3
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import jwt
from werkzeug.security import check_password_hash

from ..errors import InvalidAuthError, QueryError, StoreUnavailableError
from .query import Query, quote_identifier

logger = logging.getLogger(__name__)

ACCESS_TABLE = "sc__access"
TOKEN_ALGORITHM = "HS256"

# OperationalError messages that describe the store, not the statement
_UNAVAILABLE_MESSAGES = (
    "database is locked",
    "database table is locked",
    "database is busy",
    "disk i/o error",
    "unable to open database",
    "database or disk is full",
    "attempt to write a readonly database",
)


def _is_unavailable(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return any(fragment in message for fragment in _UNAVAILABLE_MESSAGES)


class PrincipalKind(Enum):
    """Kinds of identity a session can act as."""

    ANONYMOUS = "anonymous"
    ROOT = "root"
    RECORD = "record"


@dataclass(frozen=True)
class Principal:
    """Identity a session acts as.

    Attributes:
        kind: Anonymous, root or record
        access: Access method used for record sign-in
        record_id: Id of the signed-in record
    """

    kind: PrincipalKind = PrincipalKind.ANONYMOUS
    access: str | None = None
    record_id: str | None = None

    @property
    def is_root(self) -> bool:
        return self.kind is PrincipalKind.ROOT

    @property
    def is_authenticated(self) -> bool:
        return self.kind is not PrincipalKind.ANONYMOUS


ANONYMOUS = Principal()


@dataclass(frozen=True)
class RootCredential:
    """Root user definition known to the store."""

    username: str
    password: str


class QueryResponse:
    """Rows returned by each statement of a query, in order."""

    def __init__(self, results: list[list[dict[str, Any]]]) -> None:
        self._results = results

    def __len__(self) -> int:
        return len(self._results)

    def take(self, index: int) -> list[dict[str, Any]]:
        """Return all rows produced by statement ``index``.

        Raises:
            IndexError: If the query has no such statement
        """
        return self._results[index]

    def take_one(self, index: int) -> dict[str, Any] | None:
        """Return the single row produced by statement ``index``, or None.

        Raises:
            QueryError: If the statement produced more than one row
        """
        rows = self.take(index)
        if len(rows) > 1:
            raise QueryError(f"Expected at most one row from statement {index}, got {len(rows)}")
        return rows[0] if rows else None


class Session:
    """Namespace/database scoped session.

    Example:
        >>> session = Session("/var/lib/scalar", "scalar", "scalar", token_secret="...")
        >>> response = await session.query(Query().query("SELECT 1 AS one"))
        >>> response.take_one(0)
        {'one': 1}
    """

    def __init__(
        self,
        endpoint: str,
        namespace: str,
        database: str,
        token_secret: str | None = None,
        token_ttl_seconds: int = 3600,
        root: RootCredential | None = None,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the session.

        Args:
            endpoint: Directory holding the database files
            namespace: Namespace this session is bound to
            database: Database this session is bound to
            token_secret: Key for signing and verifying bearer tokens
            token_ttl_seconds: Lifetime of issued tokens
            root: Root user definition, if root sign-in is allowed
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.endpoint = Path(endpoint)
        self.namespace = namespace
        self.database = database
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._token_secret = token_secret
        self._token_ttl_seconds = token_ttl_seconds
        self._root = root
        self._principal = ANONYMOUS
        self._closed = False

    @property
    def principal(self) -> Principal:
        return self._principal

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def db_path(self) -> Path:
        """Database file path for this namespace/database."""
        # Sanitize names to prevent path traversal
        safe_ns = "".join(c for c in self.namespace if c.isalnum() or c in "-_")
        safe_db = "".join(c for c in self.database if c.isalnum() or c in "-_")
        return self.endpoint / safe_ns / f"{safe_db}.db"

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        db_path = self.db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(
            str(db_path),
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # Autocommit by default, explicit transactions
        )
        conn.row_factory = sqlite3.Row

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            conn.execute("PRAGMA foreign_keys = ON")

            yield conn
        finally:
            conn.close()

    def _execute(self, query: Query) -> list[list[dict[str, Any]]]:
        """Run every statement of a query inside one transaction."""
        params = query.bindings
        results: list[list[dict[str, Any]]] = []
        sql = None

        try:
            with self._get_connection() as conn:
                conn.execute("BEGIN" if query.readonly else "BEGIN IMMEDIATE")
                try:
                    for statement in query.statements:
                        sql = statement.sql
                        cursor = conn.execute(sql, params)
                        rows = [dict(row) for row in cursor.fetchall()]
                        if statement.let is not None:
                            params[statement.let] = next(iter(rows[0].values())) if rows else None
                            results.append([])
                        else:
                            results.append(rows)
                    conn.execute("COMMIT")
                except Exception:
                    # SQLite may already have rolled back (e.g. SQLITE_FULL)
                    if conn.in_transaction:
                        conn.execute("ROLLBACK")
                    raise
        except sqlite3.OperationalError as e:
            if _is_unavailable(e):
                raise StoreUnavailableError(str(e), statement=sql) from e
            raise QueryError(str(e), statement=sql) from e
        except sqlite3.Error as e:
            raise QueryError(str(e), statement=sql) from e
        except OSError as e:
            raise StoreUnavailableError(str(e), statement=sql) from e

        return results

    async def query(self, query: Query) -> QueryResponse:
        """Submit a query as one atomic transaction.

        Raises:
            QueryError: If any statement fails; nothing is committed
            StoreUnavailableError: If the store is locked, unreachable, or the
                session is closed; nothing is committed
        """
        self._ensure_open()
        loop = asyncio.get_running_loop()
        results = await loop.run_in_executor(None, self._execute, query)

        logger.debug(
            "Executed query",
            extra={
                "namespace": self.namespace,
                "database": self.database,
                "statements": len(query),
            },
        )
        return QueryResponse(results)

    async def signin_root(self, username: str, password: str) -> None:
        """Sign in as the root principal.

        Raises:
            InvalidAuthError: If the credential does not match the root user
        """
        self._ensure_open()
        root = self._root
        if (
            root is None
            or not hmac.compare_digest(username.encode(), root.username.encode())
            or not hmac.compare_digest(password.encode(), root.password.encode())
        ):
            raise InvalidAuthError()

        self._principal = Principal(kind=PrincipalKind.ROOT)
        logger.info("Root sign-in", extra={"namespace": self.namespace, "database": self.database})

    async def signin_record(
        self,
        namespace: str,
        database: str,
        access: str,
        params: Mapping[str, Any],
    ) -> str:
        """Sign in with a record access method and return a bearer token.

        The access method (a row of ``sc__access``) names the table holding
        the records and the fields carrying the identity and the password
        hash. ``params`` are forwarded as given.

        Raises:
            InvalidAuthError: If the access method is unknown or credentials do not match
            QueryError: If the access method's table cannot be queried
        """
        self._ensure_open()
        if namespace != self.namespace or database != self.database:
            raise InvalidAuthError()

        definition = await self._access_definition(access)
        identity = params.get(definition["identity_field"])
        secret = params.get(definition["secret_field"])
        if not isinstance(identity, str) or not isinstance(secret, str):
            raise InvalidAuthError()

        table = quote_identifier(definition["table_name"])
        identity_field = quote_identifier(definition["identity_field"])
        secret_field = quote_identifier(definition["secret_field"])
        response = await self.query(
            Query(readonly=True)
            .query(f"SELECT id, {secret_field} AS secret FROM {table} WHERE {identity_field} = :identity")
            .bind("identity", identity)
        )
        record = response.take_one(0)
        if record is None or not check_password_hash(record["secret"], secret):
            raise InvalidAuthError()

        record_id = str(record["id"])
        token = self._issue_token(access, record_id)
        self._principal = Principal(kind=PrincipalKind.RECORD, access=access, record_id=record_id)

        logger.info(
            "Record sign-in",
            extra={"namespace": self.namespace, "database": self.database, "access": access},
        )
        return token

    async def authenticate(self, token: str) -> None:
        """Authenticate the session with a bearer token.

        Raises:
            InvalidAuthError: If the token is invalid, expired, issued for another
                database, or its record no longer exists
        """
        self._ensure_open()
        if not self._token_secret:
            raise InvalidAuthError()
        try:
            claims = jwt.decode(
                token,
                self._token_secret,
                algorithms=[TOKEN_ALGORITHM],
                options={"require": ["exp", "iat", "ns", "db", "ac", "id"]},
            )
        except jwt.InvalidTokenError as e:
            raise InvalidAuthError() from e

        if claims["ns"] != self.namespace or claims["db"] != self.database:
            raise InvalidAuthError()

        definition = await self._access_definition(claims["ac"])
        table = quote_identifier(definition["table_name"])
        response = await self.query(
            Query(readonly=True).query(f"SELECT id FROM {table} WHERE id = :id").bind("id", claims["id"])
        )
        if response.take_one(0) is None:
            raise InvalidAuthError()

        self._principal = Principal(
            kind=PrincipalKind.RECORD,
            access=claims["ac"],
            record_id=str(claims["id"]),
        )

    def invalidate(self) -> None:
        """Drop the session's principal back to anonymous."""
        self._principal = ANONYMOUS

    async def _access_definition(self, access: str) -> dict[str, Any]:
        response = await self.query(
            Query(readonly=True)
            .query(
                f"SELECT table_name, identity_field, secret_field FROM {quote_identifier(ACCESS_TABLE)} "
                "WHERE name = :access"
            )
            .bind("access", access)
        )
        definition = response.take_one(0)
        if definition is None:
            raise InvalidAuthError()
        return definition

    def _issue_token(self, access: str, record_id: str) -> str:
        if not self._token_secret:
            raise InvalidAuthError("Token signing is not configured")
        iat = int(time.time())
        payload = {
            "iat": iat,
            "exp": iat + self._token_ttl_seconds,
            "ns": self.namespace,
            "db": self.database,
            "ac": access,
            "id": record_id,
        }
        return jwt.encode(payload, self._token_secret, algorithm=TOKEN_ALGORITHM)

    def _ensure_open(self) -> None:
        if self._closed:
            raise StoreUnavailableError("Session is closed")

    async def close(self) -> None:
        """Close the session. Connections are per query, so nothing is held."""
        self._closed = True
        self._principal = ANONYMOUS

    async def __aenter__(self) -> Session:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

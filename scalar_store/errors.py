"""
Error types for scalar-store.

This module defines all exception types raised by the store:
- ScalarError: Base exception
- StoreError: Failures reported by the backing store (QueryError, InvalidAuthError,
  StoreUnavailableError)
- AuthenticationError: Stable auth taxonomy (BadTokenError, BadCredentialsError)
- InvariantViolationError: A row the engine guarantees is missing
- IdentifierError: Document identifier unsafe for table-name embedding
- ConfigurationError: Required configuration is missing or invalid

Invariants:
    - All errors inherit from ScalarError
    - Authentication errors never carry store internals in their message
    - InvariantViolationError is never used for a normal "not found"
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ScalarError(Exception):
    """Base exception for all scalar-store errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SCALAR_ERROR"
        self.details = details or {}


class StoreError(ScalarError):
    """Error reported by the backing store."""

    def __init__(self, message: str, code: str = "STORE_ERROR") -> None:
        super().__init__(message, code=code)


class QueryError(StoreError):
    """A statement failed to parse, bind, or execute.

    Raised when:
    - A referenced table does not exist
    - A constraint is violated
    - A bound parameter is missing
    """

    def __init__(self, message: str, statement: Optional[str] = None) -> None:
        super().__init__(message, code="QUERY_ERROR")
        self.statement = statement
        self.details = {"statement": statement}


class StoreUnavailableError(StoreError):
    """The store could not be reached or used.

    Raised when:
    - The database file cannot be opened
    - The database stays locked past the busy timeout
    - A disk I/O error occurs
    - The session is closed

    These failures are transient or environmental; callers decide whether
    to retry.
    """

    def __init__(self, message: str, statement: Optional[str] = None) -> None:
        super().__init__(message, code="STORE_UNAVAILABLE")
        self.statement = statement
        self.details = {"statement": statement}


class InvalidAuthError(StoreError):
    """The store rejected a sign-in, token, or privileged operation."""

    def __init__(self, message: str = "There was a problem with authentication") -> None:
        super().__init__(message, code="INVALID_AUTH")


class AuthenticationError(ScalarError):
    """Authentication failed in a way that is safe to show to end users."""

    pass


class BadTokenError(AuthenticationError):
    """Bearer token is malformed, expired, or not valid for this database."""

    def __init__(self) -> None:
        super().__init__("Invalid or expired token", code="BAD_TOKEN")


class BadCredentialsError(AuthenticationError):
    """Sign-in credentials were rejected."""

    def __init__(self) -> None:
        super().__init__("Invalid credentials", code="BAD_CREDENTIALS")


class InvariantViolationError(ScalarError):
    """A row the engine guarantees to exist was not returned.

    Signals a schema/engine mismatch or a writer bypassing the
    table-per-type convention. Never handled as "not found".
    """

    def __init__(self, message: str, table: Optional[str] = None, item_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="INVARIANT_VIOLATION",
            details={"table": table, "id": item_id},
        )
        self.table = table
        self.item_id = item_id


class ItemNotFoundError(ScalarError):
    """A mutation targeted an item that does not exist."""

    def __init__(self, identifier: str, item_id: str) -> None:
        super().__init__(
            f"Item '{item_id}' does not exist in '{identifier}'",
            code="NOT_FOUND",
            details={"identifier": identifier, "id": item_id},
        )
        self.identifier = identifier
        self.item_id = item_id


class IdentifierError(ScalarError, ValueError):
    """Document identifier cannot be embedded as a table name."""

    def __init__(self, identifier: str, reason: str) -> None:
        super().__init__(
            f"Invalid document identifier {identifier!r}: {reason}",
            code="INVALID_IDENTIFIER",
            details={"identifier": identifier, "reason": reason},
        )
        self.identifier = identifier
        self.reason = reason


class ConfigurationError(ScalarError):
    """Required configuration is missing or invalid."""

    def __init__(self, message: str, setting: Optional[str] = None) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR", details={"setting": setting})
        self.setting = setting

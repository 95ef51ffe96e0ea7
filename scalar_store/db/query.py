"""
Query and binding builder.

A Query is an ordered list of SQL statements plus named parameters that the
Session submits as one transaction. Two kinds of values reach the SQL text:

- Data values (ids, payloads, timestamps) are always bound as ``:name``
  parameters and never interpolated.
- Table names cannot be bound, so they are embedded with ``{published}``,
  ``{draft}`` and ``{meta}`` placeholders. They come only from Tables,
  whose identifiers are validated against a restricted charset first.

A statement added with ``let()`` binds its first column of the first row
as a parameter visible to every later statement of the same query.

Example:
    >>> tables = Tables.for_identifier("article")
    >>> q = (
    ...     Query(tables)
    ...     .let("now", NOW)
    ...     .query("UPDATE {meta} SET modified_at = :now WHERE id = :id")
    ...     .bind("id", "intro")
    ... )
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from ..errors import IdentifierError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
MAX_IDENTIFIER_LENGTH = 64

# Tables used by the store itself
SYSTEM_PREFIX = "sc__"
DRAFT_SUFFIX = "_draft"
META_SUFFIX = "_meta"

# Current time, evaluated inside the transaction
NOW = "SELECT strftime('%Y-%m-%dT%H:%M:%f+00:00', 'now')"


def validate_identifier(identifier: str) -> str:
    """Check that a document identifier is safe to embed as a table name.

    Returns:
        The identifier unchanged

    Raises:
        IdentifierError: If the identifier is rejected
    """
    if not isinstance(identifier, str) or not identifier:
        raise IdentifierError(str(identifier), "must be a non-empty string")
    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise IdentifierError(identifier, f"longer than {MAX_IDENTIFIER_LENGTH} characters")
    if not IDENTIFIER_PATTERN.match(identifier):
        raise IdentifierError(
            identifier, "must start with a letter and contain only letters, digits and '_'"
        )
    if identifier.lower().startswith(SYSTEM_PREFIX):
        raise IdentifierError(identifier, f"prefix '{SYSTEM_PREFIX}' is reserved")
    if identifier.endswith((DRAFT_SUFFIX, META_SUFFIX)):
        raise IdentifierError(identifier, "must not end with a derived table suffix")
    return identifier


def quote_identifier(name: str) -> str:
    """Quote a schema name for embedding in statement text.

    Accepts system names (``sc__*``) and derived names, but applies the
    same charset check as validate_identifier().
    """
    if not name or len(name) > MAX_IDENTIFIER_LENGTH + len(DRAFT_SUFFIX):
        raise IdentifierError(name, "invalid length")
    if not IDENTIFIER_PATTERN.match(name):
        raise IdentifierError(name, "contains characters unsafe for a table name")
    return f'"{name}"'


@dataclass(frozen=True)
class Tables:
    """Quoted physical table names for one document identifier.

    Attributes:
        identifier: Validated document identifier
        published: Published records table (``I``)
        draft: Draft records table (``I_draft``)
        meta: Meta records table (``I_meta``)
    """

    identifier: str
    published: str
    draft: str
    meta: str

    @classmethod
    def for_identifier(cls, identifier: str) -> Tables:
        """Derive the table family for an identifier.

        Raises:
            IdentifierError: If the identifier is rejected
        """
        validate_identifier(identifier)
        return cls(
            identifier=identifier,
            published=quote_identifier(identifier),
            draft=quote_identifier(f"{identifier}{DRAFT_SUFFIX}"),
            meta=quote_identifier(f"{identifier}{META_SUFFIX}"),
        )

    def as_mapping(self) -> dict[str, str]:
        return {"published": self.published, "draft": self.draft, "meta": self.meta}


@dataclass(frozen=True)
class Statement:
    """One statement of a query.

    Attributes:
        sql: Statement text with table names already embedded
        let: Parameter name bound to the statement's first value, if any
    """

    sql: str
    let: str | None = None


def encode_value(value: Any) -> Any:
    """Encode a data value for SQLite parameter binding."""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class Query:
    """Ordered statements and bound parameters for one transaction.

    Builder methods return the query so calls can be chained. Every
    template is rendered with str.format, with or without a table family:
    literal braces are always written doubled (``{{`` and ``}}``), and a
    table placeholder without a table family raises KeyError.
    """

    def __init__(self, tables: Tables | None = None, readonly: bool = False) -> None:
        """Initialize an empty query.

        Args:
            tables: Table family embedded into statement templates
            readonly: Run in a deferred (read) transaction
        """
        self.tables = tables
        self.readonly = readonly
        self._statements: list[Statement] = []
        self._bindings: dict[str, Any] = {}

    def _render(self, template: str) -> str:
        mapping = self.tables.as_mapping() if self.tables is not None else {}
        return template.format(**mapping)

    def query(self, template: str) -> Query:
        """Append a statement."""
        self._statements.append(Statement(self._render(template)))
        return self

    def let(self, name: str, template: str) -> Query:
        """Append a statement whose first value is bound as ``:name``."""
        self._check_param_name(name)
        self._statements.append(Statement(self._render(template), let=name))
        return self

    def bind(self, name: str | Mapping[str, Any], value: Any = None) -> Query:
        """Bind one named parameter, or every entry of a mapping."""
        items = name.items() if isinstance(name, Mapping) else [(name, value)]
        for key, val in items:
            self._check_param_name(key)
            self._bindings[key] = encode_value(val)
        return self

    @staticmethod
    def _check_param_name(name: str) -> None:
        if not IDENTIFIER_PATTERN.match(name):
            raise ValueError(f"Invalid parameter name: {name!r}")

    @property
    def statements(self) -> list[Statement]:
        return list(self._statements)

    @property
    def bindings(self) -> dict[str, Any]:
        return dict(self._bindings)

    def __len__(self) -> int:
        return len(self._statements)

    def __repr__(self) -> str:
        return f"Query(statements={len(self._statements)}, params={sorted(self._bindings)})"

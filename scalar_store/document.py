"""
Document capability and the caller-facing item view.

A document type is any class exposing a stable ``identifier()``. The
identifier names the family of tables its items live in. Payload classes
are usually pydantic models so that ``put`` and ``delete`` can decode the
stored JSON back into the type.

Example:
    >>> from pydantic import BaseModel
    >>> from scalar_store import document
    >>>
    >>> @document("article")
    ... class Article(BaseModel):
    ...     title: str
    ...     body: str = ""
    >>>
    >>> Article.identifier()
    'article'
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generic, Protocol, TypeVar, runtime_checkable

from .db.query import validate_identifier

D = TypeVar("D")
T = TypeVar("T", bound=type)


@runtime_checkable
class Document(Protocol):
    """Capability every document type provides."""

    @classmethod
    def identifier(cls) -> str:
        """Stable name of the document's table family."""
        ...


def document(identifier: str) -> Callable[[T], T]:
    """Class decorator giving a payload class the Document capability.

    The identifier is validated at decoration time so that a bad name
    fails on import rather than on the first query.

    Raises:
        IdentifierError: If the identifier is not safe to use as a table name
    """
    validate_identifier(identifier)

    def wrap(cls: T) -> T:
        cls.identifier = classmethod(lambda _cls: identifier)  # type: ignore[attr-defined]
        return cls

    return wrap


@dataclass
class Item(Generic[D]):
    """Merged view of a logical content item.

    Attributes:
        id: Shared id of the meta, draft and published records
        created_at: When the item was first created
        modified_at: Last draft or publish mutation
        published_at: Timestamp of the published record, if any
        inner: Draft payload when a draft exists, else the published payload
    """

    id: str
    created_at: datetime
    modified_at: datetime
    published_at: datetime | None
    inner: D


@dataclass(frozen=True)
class DeletedItem:
    """Marker for an item that no longer exists after an operation."""

    id: str


def identifier_of(doc: Any) -> str:
    """Return the validated identifier of a document type."""
    if not isinstance(doc, Document):
        raise TypeError(f"{doc!r} does not provide identifier()")
    return validate_identifier(doc.identifier())

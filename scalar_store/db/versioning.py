"""
Document versioning engine.

Every logical item of a document type ``I`` is stored as up to three rows
sharing one id:

    I        published record   (id, inner, published_at)
    I_draft  draft record       (id, inner)
    I_meta   meta record        (id, created_at, modified_at, draft, published)

Invariants:
    - The meta row exists iff the item exists
    - While the meta row exists, at least one of draft/published is set
    - The merged inner is the draft payload if a draft exists, else published
    - published_at is the published record's timestamp only
    - Every operation touching more than one row is a single Query, so a
      partial write is never durably observable
    - Writes and draft content need a signed-in principal (root or record);
      anonymous sessions only see published content

How to change safely:
    - Order statements so meta references never point at a missing row
      (foreign keys are enforced per statement)
    - Keep table names flowing through Tables only; never format ids into SQL
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, TypeAdapter

from ..document import DeletedItem, Item, identifier_of
from ..errors import InvalidAuthError, InvariantViolationError, ItemNotFoundError
from .query import NOW, Query, Tables
from .session import Session

logger = logging.getLogger(__name__)

_ANY: TypeAdapter[Any] = TypeAdapter(Any)

ITEM_PROJECTION = """
    SELECT
        m.id AS id,
        m.created_at AS created_at,
        m.modified_at AS modified_at,
        CASE WHEN m.draft IS NOT NULL THEN d."inner" ELSE p."inner" END AS "inner",
        p.published_at AS published_at
    FROM {meta} AS m
    LEFT JOIN {draft} AS d ON d.id = m.draft
    LEFT JOIN {published} AS p ON p.id = m.published
"""

PUBLISHED_PROJECTION = """
    SELECT
        m.id AS id,
        m.created_at AS created_at,
        m.modified_at AS modified_at,
        p."inner" AS "inner",
        p.published_at AS published_at
    FROM {meta} AS m
    JOIN {published} AS p ON p.id = m.published
"""


@lru_cache(maxsize=None)
def _adapter(doc: type) -> TypeAdapter[Any]:
    return TypeAdapter(doc)


def _parse_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require_principal(session: Session) -> None:
    if not session.principal.is_authenticated:
        raise InvalidAuthError("Writing documents requires a signed-in session")


def _check_payload(doc: Any, payload: Any) -> None:
    # Drafts stay schema-free JSON but must decode as the document type
    if isinstance(doc, type) and issubclass(doc, BaseModel):
        _adapter(doc).validate_python(payload)


def _to_item(row: dict[str, Any], adapter: TypeAdapter[Any] = _ANY) -> Item[Any]:
    raw = row["inner"]
    return Item(
        id=row["id"],
        created_at=_parse_timestamp(row["created_at"]),
        modified_at=_parse_timestamp(row["modified_at"]),
        published_at=_parse_timestamp(row["published_at"]),
        inner=adapter.validate_python(json.loads(raw)) if raw is not None else None,
    )


class VersionedStore:
    """Draft/publish lifecycle over the three-record model.

    The store holds no state besides its session; every method takes the
    document type so one store serves any number of types.

    Example:
        >>> store = VersionedStore(session)
        >>> await store.draft(Article, "intro", {"title": "Hello"})
        >>> await store.publish(Article, "intro")
        >>> item = await store.get_by_id(Article, "intro")
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    async def draft(self, doc: Any, id: str, payload: Any) -> Item[Any]:
        """Create or replace the draft of an item.

        Creates the meta record on first use. Repeated calls converge on the
        latest payload. Payloads for pydantic document types must validate
        against the model; the payload is stored as given.

        Raises:
            InvalidAuthError: If the session is not signed in
            pydantic.ValidationError: If the payload does not fit the document type
            InvariantViolationError: If the merged row is missing after the write
        """
        tables = Tables.for_identifier(identifier_of(doc))
        _require_principal(self.session)
        _check_payload(doc, payload)
        response = await self.session.query(
            Query(tables)
            .let("now", NOW)
            .query(
                'INSERT INTO {draft} (id, "inner") VALUES (:id, :inner) '
                'ON CONFLICT(id) DO UPDATE SET "inner" = excluded."inner"'
            )
            .query(
                "INSERT INTO {meta} (id, created_at, modified_at, draft) VALUES (:id, :now, :now, :id) "
                "ON CONFLICT(id) DO UPDATE SET draft = excluded.draft, modified_at = excluded.modified_at"
            )
            .query(ITEM_PROJECTION + " WHERE m.id = :id")
            .bind({"id": id, "inner": json.dumps(_ANY.dump_python(payload, mode="json"))})
        )

        row = response.take_one(3)
        if row is None:
            raise InvariantViolationError(
                "Drafted item has no meta record", table=tables.meta, item_id=id
            )

        logger.debug("Drafted item", extra={"identifier": tables.identifier, "id": id})
        return _to_item(row)

    async def publish(self, doc: Any, id: str) -> Item[Any]:
        """Promote the draft of an item to its published record.

        Stamps published_at, clears the draft reference and removes the
        draft row. An item without a draft is returned unchanged.

        Returns:
            The published item

        Raises:
            InvalidAuthError: If the session is not signed in
            ItemNotFoundError: If the item does not exist
        """
        tables = Tables.for_identifier(identifier_of(doc))
        _require_principal(self.session)
        response = await self.session.query(
            Query(tables)
            .let("now", NOW)
            .query(
                'INSERT INTO {published} (id, "inner", published_at) '
                'SELECT d.id, d."inner", :now FROM {draft} AS d '
                "JOIN {meta} AS m ON m.draft = d.id WHERE d.id = :id "
                'ON CONFLICT(id) DO UPDATE SET "inner" = excluded."inner", published_at = excluded.published_at'
            )
            .query(
                "UPDATE {meta} SET published = :id, draft = NULL, modified_at = :now "
                "WHERE id = :id AND draft IS NOT NULL"
            )
            .query("DELETE FROM {draft} WHERE id = :id")
            .query(ITEM_PROJECTION + " WHERE m.id = :id")
            .bind("id", id)
        )

        row = response.take_one(4)
        if row is None:
            raise ItemNotFoundError(tables.identifier, id)

        logger.debug("Published item", extra={"identifier": tables.identifier, "id": id})
        return _to_item(row)

    async def delete_draft(self, doc: Any, id: str) -> Item[Any] | DeletedItem:
        """Remove the draft of an item.

        If the item has no published record it is removed entirely.

        Returns:
            The remaining published item, or DeletedItem if nothing remains

        Raises:
            InvalidAuthError: If the session is not signed in
            ItemNotFoundError: If the item does not exist
        """
        tables = Tables.for_identifier(identifier_of(doc))
        _require_principal(self.session)
        response = await self.session.query(
            Query(tables)
            .let("now", NOW)
            .query(
                "UPDATE {meta} SET draft = NULL, modified_at = :now "
                "WHERE id = :id AND draft IS NOT NULL"
            )
            .query("DELETE FROM {draft} WHERE id = :id")
            .query("DELETE FROM {meta} WHERE id = :id AND published IS NULL RETURNING id")
            .query(ITEM_PROJECTION + " WHERE m.id = :id")
            .bind("id", id)
        )

        row = response.take_one(4)
        if row is not None:
            logger.debug("Deleted draft", extra={"identifier": tables.identifier, "id": id})
            return _to_item(row)

        if response.take_one(3) is not None:
            logger.debug("Deleted draft-only item", extra={"identifier": tables.identifier, "id": id})
            return DeletedItem(id=id)

        raise ItemNotFoundError(tables.identifier, id)

    async def put(self, doc: Any, item: Item[Any]) -> Item[Any]:
        """Replace the published record of an item.

        The draft reference is left untouched. The meta record is created
        when absent. published_at is taken from the item, or set to now.

        Returns:
            The published item as stored

        Raises:
            InvalidAuthError: If the session is not signed in
            InvariantViolationError: If the stored row cannot be read back
        """
        tables = Tables.for_identifier(identifier_of(doc))
        _require_principal(self.session)
        adapter = _adapter(doc)
        published_at = item.published_at
        if published_at is not None and published_at.tzinfo is None:
            published_at = published_at.replace(tzinfo=timezone.utc)

        response = await self.session.query(
            Query(tables)
            .let("now", NOW)
            .query(
                'INSERT INTO {published} (id, "inner", published_at) '
                "VALUES (:id, :inner, COALESCE(:published_at, :now)) "
                'ON CONFLICT(id) DO UPDATE SET "inner" = excluded."inner", published_at = excluded.published_at'
            )
            .query(
                "INSERT INTO {meta} (id, created_at, modified_at, published) VALUES (:id, :now, :now, :id) "
                "ON CONFLICT(id) DO UPDATE SET published = excluded.published, modified_at = excluded.modified_at"
            )
            .query(PUBLISHED_PROJECTION + " WHERE m.id = :id")
            .bind(
                {
                    "id": item.id,
                    "inner": adapter.dump_json(item.inner).decode(),
                    "published_at": published_at,
                }
            )
        )

        row = response.take_one(3)
        if row is None:
            raise InvariantViolationError(
                "Stored item cannot be read back", table=tables.published, item_id=item.id
            )

        logger.debug("Put item", extra={"identifier": tables.identifier, "id": item.id})
        return _to_item(row, adapter)

    async def delete(self, doc: Any, id: str) -> Item[Any]:
        """Remove an item with its draft and published records.

        Returns:
            The merged item as it was before deletion

        Raises:
            InvalidAuthError: If the session is not signed in
            ItemNotFoundError: If the item does not exist
        """
        tables = Tables.for_identifier(identifier_of(doc))
        _require_principal(self.session)
        response = await self.session.query(
            Query(tables)
            .query(ITEM_PROJECTION + " WHERE m.id = :id")
            .query("DELETE FROM {meta} WHERE id = :id")
            .query("DELETE FROM {draft} WHERE id = :id")
            .query("DELETE FROM {published} WHERE id = :id")
            .bind("id", id)
        )

        row = response.take_one(0)
        if row is None:
            raise ItemNotFoundError(tables.identifier, id)

        logger.debug("Deleted item", extra={"identifier": tables.identifier, "id": id})
        return _to_item(row, _adapter(doc))

    def _projection(self) -> str:
        if self.session.principal.is_authenticated:
            return ITEM_PROJECTION
        return PUBLISHED_PROJECTION

    async def get_by_id(self, doc: Any, id: str) -> Item[Any] | None:
        """Get the merged view of an item, or None if it does not exist.

        Anonymous sessions see the published record only; an item without
        one is None for them.
        """
        tables = Tables.for_identifier(identifier_of(doc))
        response = await self.session.query(
            Query(tables, readonly=True).query(self._projection() + " WHERE m.id = :id").bind("id", id)
        )
        row = response.take_one(0)
        return _to_item(row) if row is not None else None

    async def get_all(self, doc: Any) -> list[Item[Any]]:
        """Get the merged view of every item of a document type (unordered).

        Anonymous sessions get published items only.
        """
        tables = Tables.for_identifier(identifier_of(doc))
        response = await self.session.query(Query(tables, readonly=True).query(self._projection()))
        return [_to_item(row) for row in response.take(0)]

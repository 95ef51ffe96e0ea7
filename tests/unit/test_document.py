"""
Unit tests for the document capability and item view.

Tests cover:
- The document() decorator
- Identifier lookup
- Item and DeletedItem
"""

from datetime import datetime, timezone

import pytest
from pydantic import BaseModel

from scalar_store.document import DeletedItem, Document, Item, document, identifier_of
from scalar_store.errors import IdentifierError


@document("article")
class Article(BaseModel):
    title: str


class Page:
    """Document type implementing the capability by hand."""

    @classmethod
    def identifier(cls) -> str:
        return "page"


class TestDocument:
    """Tests for the Document capability."""

    def test_decorator_sets_identifier(self):
        """Decorated classes expose identifier()."""
        assert Article.identifier() == "article"

    def test_decorated_class_is_still_a_model(self):
        """The decorator does not change the payload class."""
        assert Article(title="x").title == "x"

    def test_protocol_check(self):
        """Both decorated and hand-written types satisfy Document."""
        assert isinstance(Article, Document)
        assert isinstance(Page, Document)
        assert not isinstance(str, Document)

    def test_decorator_validates_identifier(self):
        """A bad identifier fails when the class is defined."""
        with pytest.raises(IdentifierError):

            @document("not valid")
            class Broken(BaseModel):
                pass

    def test_identifier_of(self):
        """identifier_of returns the validated identifier."""
        assert identifier_of(Article) == "article"
        assert identifier_of(Page) == "page"

    def test_identifier_of_rejects_non_documents(self):
        """Types without identifier() are rejected."""
        with pytest.raises(TypeError):
            identifier_of(dict)

    def test_identifier_of_validates(self):
        """Hand-written identifiers are validated too."""

        class Crafted:
            @classmethod
            def identifier(cls) -> str:
                return "x; DROP TABLE y"

        with pytest.raises(IdentifierError):
            identifier_of(Crafted)


class TestItem:
    """Tests for Item and DeletedItem."""

    def test_item_fields(self):
        """Item carries timestamps and payload."""
        now = datetime.now(timezone.utc)
        item = Item(id="a", created_at=now, modified_at=now, published_at=None, inner={"x": 1})
        assert item.id == "a"
        assert item.published_at is None
        assert item.inner == {"x": 1}

    def test_deleted_item_equality(self):
        """DeletedItem compares by id."""
        assert DeletedItem(id="a") == DeletedItem(id="a")
        assert DeletedItem(id="a") != DeletedItem(id="b")

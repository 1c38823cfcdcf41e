"""Models describing queries against, and documents from, the remote store.

The remote document store is an external collaborator; these models are
the narrow vocabulary the data layer uses to talk to it.  All of them
are frozen: a descriptor handed to a live subscription must not change
under it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DOCUMENT_ID_FIELD = "__name__"
"""Pseudo-field that filters on the document id rather than on a stored field."""


class FilterOp(str, Enum):  # noqa: UP042
    """Comparison operators supported in query filters."""

    EQ = "=="
    NE = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    IN = "in"
    ARRAY_CONTAINS = "array-contains"


class QueryFilter(BaseModel):
    """A single ``field <op> value`` predicate."""

    model_config = ConfigDict(frozen=True)

    field: str
    op: FilterOp = FilterOp.EQ
    value: Any = None


class QueryDescriptor(BaseModel):
    """Collection query: filters are ANDed, then ordered, then limited."""

    model_config = ConfigDict(frozen=True)

    collection: str
    filters: tuple[QueryFilter, ...] = ()
    order_by: str | None = None
    descending: bool = False
    limit: int | None = Field(default=None, ge=1)

    @classmethod
    def where(cls, collection: str, **equals: Any) -> QueryDescriptor:
        """Shorthand for a collection query made only of equality filters."""
        return cls(
            collection=collection,
            filters=tuple(QueryFilter(field=k, value=v) for k, v in equals.items()),
        )


class Document(BaseModel):
    """A document snapshot: its id plus field data."""

    model_config = ConfigDict(frozen=True)

    id: str
    data: dict[str, Any] = Field(default_factory=dict)

    def to_record(self) -> dict[str, Any]:
        """Flatten into a JSON-friendly dict with ``id`` alongside the fields."""
        return {"id": self.id, **self.data}

"""Narrow interface to the collection-oriented document store."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Sequence


class _ServerTimestamp:
    """Placeholder the store replaces with its own clock reading on write."""

    _instance: "_ServerTimestamp | None" = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP: Any = _ServerTimestamp()

RANGE_OPERATORS = ("<", "<=", ">", ">=")


class DocumentNotFoundError(LookupError):
    """Raised when a write targets a document that does not exist."""

    def __init__(self, collection: str, document_id: str) -> None:
        super().__init__(f"Document {collection}/{document_id} does not exist.")
        self.collection = collection
        self.document_id = document_id


@dataclass(frozen=True, slots=True)
class RangeFilter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in RANGE_OPERATORS:
            raise ValueError(f"Unsupported range operator: {self.op!r}")

    def matches(self, candidate: Any) -> bool:
        if candidate is None:
            return False
        if self.op == "<":
            return candidate < self.value
        if self.op == "<=":
            return candidate <= self.value
        if self.op == ">":
            return candidate > self.value
        return candidate >= self.value


@dataclass(slots=True)
class StoredDocument:
    id: str
    data: dict[str, Any]


class DocumentStore(Protocol):
    """Per-document atomic reads and writes plus query-by-field."""

    async def get(self, collection: str, document_id: str) -> StoredDocument | None: ...

    async def query(
        self,
        collection: str,
        equals: Mapping[str, Any] | None = None,
        ranges: Sequence[RangeFilter] = (),
    ) -> list[StoredDocument]: ...

    async def add(self, collection: str, data: Mapping[str, Any]) -> str: ...

    async def update(self, collection: str, document_id: str, data: Mapping[str, Any]) -> None: ...

    async def delete(self, collection: str, document_id: str) -> None: ...

    async def increment_field(
        self, collection: str, document_id: str, field: str, delta: int
    ) -> None: ...

"""In-process document store used for local runs and tests."""

from __future__ import annotations

import copy
from datetime import datetime
from typing import Any, Callable, Mapping, Sequence
from uuid import uuid4

from classquiz.core.models import utc_now
from classquiz.core.store import (
    SERVER_TIMESTAMP,
    DocumentNotFoundError,
    RangeFilter,
    StoredDocument,
)


class InMemoryDocumentStore:
    """Keeps collections as dicts of deep-copied documents keyed by id."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}

    def seed(self, collection: str, document_id: str, data: Mapping[str, Any]) -> None:
        """Insert or replace a document synchronously; meant for fixtures."""
        self._bucket(collection)[document_id] = self._resolve(data)

    def count(self, collection: str) -> int:
        return len(self._collections.get(collection, {}))

    async def get(self, collection: str, document_id: str) -> StoredDocument | None:
        data = self._collections.get(collection, {}).get(document_id)
        if data is None:
            return None
        return StoredDocument(id=document_id, data=copy.deepcopy(data))

    async def query(
        self,
        collection: str,
        equals: Mapping[str, Any] | None = None,
        ranges: Sequence[RangeFilter] = (),
    ) -> list[StoredDocument]:
        equals = equals or {}
        matches: list[StoredDocument] = []
        for document_id, data in self._collections.get(collection, {}).items():
            if any(data.get(name) != value for name, value in equals.items()):
                continue
            if not all(flt.matches(data.get(flt.field)) for flt in ranges):
                continue
            matches.append(StoredDocument(id=document_id, data=copy.deepcopy(data)))
        return matches

    async def add(self, collection: str, data: Mapping[str, Any]) -> str:
        document_id = uuid4().hex
        self._bucket(collection)[document_id] = self._resolve(data)
        return document_id

    async def update(self, collection: str, document_id: str, data: Mapping[str, Any]) -> None:
        existing = self._require(collection, document_id)
        existing.update(self._resolve(data))

    async def delete(self, collection: str, document_id: str) -> None:
        self._require(collection, document_id)
        del self._collections[collection][document_id]

    async def increment_field(
        self, collection: str, document_id: str, field: str, delta: int
    ) -> None:
        existing = self._require(collection, document_id)
        existing[field] = (existing.get(field) or 0) + delta

    def _bucket(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def _require(self, collection: str, document_id: str) -> dict[str, Any]:
        existing = self._collections.get(collection, {}).get(document_id)
        if existing is None:
            raise DocumentNotFoundError(collection, document_id)
        return existing

    def _resolve(self, data: Mapping[str, Any]) -> dict[str, Any]:
        now = self._clock()
        return {
            name: now if value is SERVER_TIMESTAMP else copy.deepcopy(value)
            for name, value in data.items()
        }

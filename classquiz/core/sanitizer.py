"""Free-text cleanup applied before anything is persisted."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from markdown_it.common.utils import escapeHtml

from classquiz.constants.quiz_constants import MAX_DOCUMENT_SIZE_BYTES


def sanitize_text(value: Any, max_length: int) -> str:
    """Trim and HTML-escape, keeping the escaped result within ``max_length``.

    Truncation happens on whole characters, so an entity such as ``&lt;`` is
    never cut in half.
    """
    if value is None:
        return ""
    pieces: list[str] = []
    used = 0
    for char in str(value).strip():
        piece = escapeHtml(char)
        if used + len(piece) > max_length:
            break
        pieces.append(piece)
        used += len(piece)
    return "".join(pieces)


def sanitize_tags(tags: Any, max_length: int) -> list[str]:
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    cleaned = (sanitize_text(tag, max_length) for tag in tags)
    return [tag for tag in cleaned if tag]


@dataclass(slots=True)
class DocumentSize:
    size: int
    max_size: int

    @property
    def valid(self) -> bool:
        return self.size <= self.max_size

    @property
    def size_kb(self) -> int:
        return round(self.size / 1024)

    @property
    def max_size_kb(self) -> int:
        return round(self.max_size / 1024)


def measure_document(data: dict[str, Any], max_size: int = MAX_DOCUMENT_SIZE_BYTES) -> DocumentSize:
    """Approximate a document's stored size as its UTF-8 JSON encoding."""
    encoded = json.dumps(data, default=str, ensure_ascii=False).encode("utf-8")
    return DocumentSize(size=len(encoded), max_size=max_size)

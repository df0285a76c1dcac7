"""Cursor-based pagination over lists sorted by name."""

from __future__ import annotations

import base64
import binascii
from bisect import bisect_right
from typing import Optional, Protocol, Sequence, TypeVar


class _Named(Protocol):
    name: str


T = TypeVar("T", bound=_Named)


def encode_cursor(name: str) -> str:
    """Encode an item name as an opaque cursor."""
    return base64.b64encode(name.encode("utf-8")).decode("ascii")


def decode_cursor(cursor: str) -> str:
    """Decode a cursor back to the item name; raises ValueError if malformed."""
    try:
        raw = base64.b64decode(cursor, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"illegal cursor {cursor!r}: {exc}") from exc
    return raw.decode("utf-8", errors="surrogateescape")


def paginate(
    items: Sequence[T], cursor: Optional[str], limit: Optional[int]
) -> tuple[list[T], str]:
    """Return one page of name-sorted items after the cursor, and the next cursor.

    The next cursor is empty when no limit is set or the page is shorter than it.
    """
    start = 0
    if cursor:
        after = decode_cursor(cursor)
        start = bisect_right(items, after, key=lambda item: item.name)
    end = len(items)
    if limit is not None and end > start + limit:
        end = start + limit
    page = list(items[start:end])
    next_cursor = ""
    if limit is not None and page and len(page) >= limit:
        next_cursor = encode_cursor(page[-1].name)
    return page, next_cursor
"""
Pagination helpers.

Two kinds of pagination live here:
- Row pagination for table queries: a plain slice over the concatenated
  rows, with hasMore = offset + limit < totalRows
- Listing pagination for shares/schemas/tables: opaque page tokens that
  carry an offset and expire after an hour

Page tokens are base64 JSON {"offset": N, "timestamp": ms}. An invalid or
expired token restarts from offset 0.
"""

from __future__ import annotations

import base64
import binascii
import json
import time
from dataclasses import dataclass
from typing import Generic, Mapping, Sequence, TypeVar

T = TypeVar("T")

PAGE_TOKEN_TTL_MS = 60 * 60 * 1000
DEFAULT_MAX_RESULTS = 100
MAX_RESULTS_CAP = 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


def slice_rows(rows: Sequence[T], offset: int, limit: int) -> tuple[list[T], bool]:
    """Return rows[offset:offset+limit] and whether more rows follow."""
    return list(rows[offset : offset + limit]), offset + limit < len(rows)


def encode_page_token(offset: int, now_ms: int | None = None) -> str:
    """Encode a listing offset into an opaque page token."""
    payload = {"offset": offset, "timestamp": now_ms if now_ms is not None else _now_ms()}
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def decode_page_token(token: str, now_ms: int | None = None) -> int | None:
    """Decode a page token back to an offset.

    Returns:
        The offset, or None if the token is invalid or expired
    """
    try:
        payload = json.loads(base64.b64decode(token, validate=True).decode("utf-8"))
    except (binascii.Error, ValueError):
        return None

    if not isinstance(payload, dict):
        return None
    offset = payload.get("offset")
    issued = payload.get("timestamp")
    if not isinstance(offset, int) or not isinstance(issued, (int, float)):
        return None
    if offset < 0:
        return None

    now = now_ms if now_ms is not None else _now_ms()
    if now - issued > PAGE_TOKEN_TTL_MS:
        return None
    return offset


@dataclass
class Page(Generic[T]):
    """One page of a listing."""

    items: list[T]
    next_page_token: str | None = None


def paginate(
    items: Sequence[T],
    max_results: int = DEFAULT_MAX_RESULTS,
    page_token: str | None = None,
) -> Page[T]:
    """Return the page of items selected by max_results and page_token."""
    offset = 0
    if page_token:
        offset = decode_page_token(page_token) or 0

    page, has_more = slice_rows(items, offset, max_results)
    return Page(
        items=page,
        next_page_token=encode_page_token(offset + max_results) if has_more else None,
    )


def parse_pagination_params(query: Mapping[str, str]) -> tuple[int, str | None]:
    """Read maxResults/pageToken from query parameters.

    maxResults defaults to 100 and is capped at 1000; non-positive or
    non-numeric values fall back to the default.
    """
    max_results = DEFAULT_MAX_RESULTS
    raw = query.get("maxResults")
    if raw:
        try:
            parsed = int(raw)
        except ValueError:
            parsed = 0
        if parsed > 0:
            max_results = min(parsed, MAX_RESULTS_CAP)
    return max_results, query.get("pageToken") or None

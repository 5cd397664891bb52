"""Opaque keyset-pagination cursors.

A cursor is the ``(created_at, id)`` pair of the last row a client has seen.
It is serialized as compact JSON and then as unpadded URL-safe base64 so the
token can be dropped into a query string without escaping.
"""

from __future__ import annotations

import base64
import json
from dataclasses import dataclass
from datetime import datetime


class InvalidCursor(ValueError):
    """Raised when a client supplies a token that is not a valid cursor."""


@dataclass(frozen=True, slots=True)
class Cursor:
    created_at: datetime
    id: str


def encode_cursor(cursor: Cursor) -> str:
    payload = json.dumps(
        {"c": cursor.created_at.isoformat(), "i": cursor.id},
        separators=(",", ":"),
    )
    token = base64.urlsafe_b64encode(payload.encode("utf-8"))
    return token.decode("ascii").rstrip("=")


def decode_cursor(token: str | None) -> Cursor | None:
    """Decode a token produced by :func:`encode_cursor`; empty means no cursor."""

    if not token:
        return None
    try:
        raw = token.encode("ascii")
        raw += b"=" * (-len(raw) % 4)
        data = json.loads(base64.b64decode(raw, altchars=b"-_", validate=True).decode("utf-8"))
    except ValueError as exc:  # binascii, unicode and JSON errors
        raise InvalidCursor("cursor is not a valid token") from exc

    if not isinstance(data, dict):
        raise InvalidCursor("cursor payload must be an object")
    created_raw, cursor_id = data.get("c"), data.get("i")
    if not isinstance(created_raw, str) or not isinstance(cursor_id, str) or not cursor_id:
        raise InvalidCursor("cursor payload is missing fields")
    try:
        created_at = datetime.fromisoformat(created_raw)
    except ValueError as exc:
        raise InvalidCursor("cursor timestamp is malformed") from exc
    return Cursor(created_at=created_at, id=cursor_id)

"""Opaque pagination cursors: URL-safe base64 over a compact JSON object."""
import base64
import binascii
import json
import math
from typing import Any, Optional

from feedcore.errors import ValidationError

# Different feeds name their score differently; any of these is accepted.
SCORE_FIELDS = ("score", "rankScore", "trendScore", "createdAt")
ID_FIELDS = ("_id", "id")


def encode_cursor(payload: dict[str, Any]) -> str:
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(token: Optional[str]) -> Optional[dict[str, Any]]:
    """Return the cursor payload, or None when no cursor was supplied."""
    if not token:
        return None
    try:
        raw = base64.urlsafe_b64decode(token.encode("ascii"))
        payload = json.loads(raw.decode("utf-8"))
    except (ValueError, UnicodeError, binascii.Error) as exc:
        raise ValidationError("Invalid cursor") from exc
    if not isinstance(payload, dict):
        raise ValidationError("Invalid cursor")
    return payload


def cursor_position(payload: Optional[dict[str, Any]]) -> tuple[float, str]:
    """
    Extract (score, member) from a decoded cursor.

    With no cursor the position is (+inf, ""), i.e. the head of the feed.
    """
    if payload is None:
        return math.inf, ""

    score: Any = None
    for field in SCORE_FIELDS:
        if payload.get(field) is not None:
            score = payload[field]
            break
    member = ""
    for field in ID_FIELDS:
        if payload.get(field):
            member = str(payload[field])
            break

    if score is None:
        return math.inf, member
    try:
        value = float(score)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Invalid cursor score") from exc
    if math.isnan(value):
        raise ValidationError("Invalid cursor score")
    return value, member

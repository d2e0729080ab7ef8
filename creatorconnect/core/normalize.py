from __future__ import annotations

import re

from bson import ObjectId
from bson.errors import InvalidId

from .errors import NotFoundError, ValidationError

CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")


def normalize_currency(s: str) -> str:
    s = (s or "").strip()
    if not CURRENCY_RE.match(s):
        raise ValidationError("Currency must be a three-letter code")
    return s.upper()


def parse_object_id(s: str, entity: str = "Record") -> ObjectId:
    try:
        return ObjectId(s)
    except (InvalidId, TypeError) as exc:
        raise NotFoundError(f"{entity} not found") from exc

from __future__ import annotations

import base64
import json
from typing import Optional

from bson import ObjectId


def encode_cursor(last_id: Optional[ObjectId]) -> Optional[str]:
    if last_id is None:
        return None
    raw = json.dumps({"after": str(last_id)}, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def decode_cursor(cursor: Optional[str]) -> Optional[ObjectId]:
    if not cursor:
        return None
    s = cursor.strip()
    pad = "=" * ((4 - (len(s) % 4)) % 4)
    try:
        raw = base64.urlsafe_b64decode((s + pad).encode("utf-8"))
        obj = json.loads(raw.decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    after = obj.get("after") if isinstance(obj, dict) else None
    if isinstance(after, str) and ObjectId.is_valid(after):
        return ObjectId(after)
    return None

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from creatorconnect.records import serialize


def ok(data: Any = None, message: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True}
    if message:
        body["message"] = message
    body["data"] = data
    body.update(extra)
    return body


def one(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return serialize(doc)


def many(docs: Iterable[Dict[str, Any]]) -> list:
    return [serialize(d) for d in docs]

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from pymongo import DESCENDING

from creatorconnect.core.cursor import decode_cursor, encode_cursor
from creatorconnect.core.errors import NotFoundError
from creatorconnect.core.normalize import parse_object_id
from creatorconnect.core.time import utcnow
from creatorconnect.records import NotificationRecord, build_document

logger = logging.getLogger(__name__)

MAX_PAGE = 100


class NotificationService:
    def __init__(self, notifications: Any):
        self._coll = notifications

    def notify(self, user_id: str, title: str, message: str, type: Optional[str] = None, link: str = "") -> Dict[str, Any]:
        doc = build_document(
            NotificationRecord,
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            link=link,
        )
        self._coll.insert_one(doc)
        logger.debug("Notification %s (%s) -> %s", doc["_id"], doc["type"], user_id)
        return doc

    def mark_read(self, notification_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        query: Dict[str, Any] = {"_id": parse_object_id(notification_id, "Notification")}
        if user_id is not None:
            query["user_id"] = user_id
        doc = self._coll.find_one(query)
        if not doc:
            raise NotFoundError("Notification not found")
        if doc.get("is_read"):
            return doc
        now = utcnow()
        self._coll.update_one({"_id": doc["_id"]}, {"$set": {"is_read": True, "updated_at": now}})
        doc["is_read"] = True
        doc["updated_at"] = now
        return doc

    def mark_all_read(self, user_id: str) -> int:
        res = self._coll.update_many(
            {"user_id": user_id, "is_read": False},
            {"$set": {"is_read": True, "updated_at": utcnow()}},
        )
        return int(res.modified_count)

    def unread_count(self, user_id: str) -> int:
        return int(self._coll.count_documents({"user_id": user_id, "is_read": False}))

    def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = 20,
        cursor: Optional[str] = None,
    ) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        limit = max(1, min(int(limit), MAX_PAGE))
        query: Dict[str, Any] = {"user_id": user_id}
        if unread_only:
            query["is_read"] = False
        after = decode_cursor(cursor)
        if after is not None:
            query["_id"] = {"$lt": after}

        # one extra row tells us whether another page exists
        items = list(self._coll.find(query).sort([("_id", DESCENDING)]).limit(limit + 1))
        next_cursor = None
        if len(items) > limit:
            items = items[:limit]
            next_cursor = encode_cursor(items[-1]["_id"])
        return items, next_cursor

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING

from creatorconnect.core.time import as_utc, utcnow
from creatorconnect.records import SupportRecord, build_document

logger = logging.getLogger(__name__)


class SupportService:
    """One-off supporter payments. Recording a support never touches the ledger."""

    def __init__(self, supports: Any):
        self._coll = supports

    def record_support(
        self,
        supporter_id: str,
        creator_id: str,
        amount: float,
        message: str = "",
        access_expiry: Optional[datetime] = None,
        provider_payment_ref: str = "",
    ) -> Dict[str, Any]:
        doc = build_document(
            SupportRecord,
            supporter_id=supporter_id,
            creator_id=creator_id,
            amount=amount,
            message=message,
            access_expiry=access_expiry,
            provider_payment_ref=provider_payment_ref,
        )
        self._coll.insert_one(doc)
        logger.info("Support %s supporter=%s creator=%s amount=%.2f", doc["_id"], supporter_id, creator_id, doc["amount"])
        return doc

    def has_supporter_access(self, supporter_id: str, creator_id: str, at: Optional[datetime] = None) -> bool:
        at = as_utc(at) if at is not None else utcnow()
        query = {
            "supporter_id": supporter_id,
            "creator_id": creator_id,
            "$or": [{"access_expiry": None}, {"access_expiry": {"$gt": at}}],
        }
        return self._coll.find_one(query) is not None

    def list_given(self, supporter_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return list(self._coll.find({"supporter_id": supporter_id}).sort([("created_at", DESCENDING)]).limit(limit))

    def list_received(self, creator_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return list(self._coll.find({"creator_id": creator_id}).sort([("created_at", DESCENDING)]).limit(limit))

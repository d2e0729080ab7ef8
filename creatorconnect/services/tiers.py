from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from pymongo import DESCENDING

from creatorconnect.core.errors import NotFoundError
from creatorconnect.core.normalize import parse_object_id
from creatorconnect.records import TierRecord, build_document

logger = logging.getLogger(__name__)


class TierService:
    def __init__(self, membership_tiers: Any):
        self._coll = membership_tiers

    def create_tier(
        self,
        creator_id: str,
        title: str,
        description: str,
        price: float,
        currency: str = "USD",
        benefits: Iterable[str] = (),
        provider_price_ref: str = "",
    ) -> Dict[str, Any]:
        doc = build_document(
            TierRecord,
            creator_id=creator_id,
            title=title,
            description=description,
            price=price,
            currency=currency,
            benefits=[b.strip() for b in benefits if b and b.strip()],
            provider_price_ref=provider_price_ref,
        )
        self._coll.insert_one(doc)
        logger.info("Tier %s created for creator %s at %.2f %s", doc["_id"], creator_id, doc["price"], doc["currency"])
        return doc

    def get_tier(self, tier_id: str) -> Dict[str, Any]:
        doc = self._coll.find_one({"_id": parse_object_id(tier_id, "Tier")})
        if not doc:
            raise NotFoundError("Tier not found")
        return doc

    def list_for_creator(self, creator_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        return list(self._coll.find({"creator_id": creator_id}).sort([("created_at", DESCENDING)]).limit(limit))

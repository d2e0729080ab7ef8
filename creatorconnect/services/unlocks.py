"""
Per-post access grants.

One record per (supporter_id, post_id), held by the unique index
`uniq_unlock_per_supporter_post`. Granting again re-opens access on the
existing record instead of inserting a second one.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from creatorconnect.core.time import utcnow
from creatorconnect.records import PostUnlockRecord, UnlockMethod, build_document

logger = logging.getLogger(__name__)


class UnlockService:
    def __init__(self, unlocks: Any):
        self._coll = unlocks

    def grant_unlock(self, supporter_id: str, creator_id: str, post_id: str, unlocked_by: str) -> Dict[str, Any]:
        doc = build_document(
            PostUnlockRecord,
            supporter_id=supporter_id,
            creator_id=creator_id,
            post_id=post_id,
            unlocked_by=unlocked_by,
        )
        try:
            self._coll.insert_one(doc)
        except DuplicateKeyError:
            existing = self._coll.find_one_and_update(
                {"supporter_id": supporter_id, "post_id": post_id},
                {"$set": {"has_access": True, "unlocked_by": doc["unlocked_by"], "updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
            logger.info("Unlock re-granted supporter=%s post=%s by=%s", supporter_id, post_id, doc["unlocked_by"])
            return existing
        logger.info("Unlock supporter=%s post=%s by=%s", supporter_id, post_id, doc["unlocked_by"])
        return doc

    def has_unlocked(self, supporter_id: str, post_id: str) -> bool:
        return self._coll.find_one({"supporter_id": supporter_id, "post_id": post_id, "has_access": True}) is not None

    def revoke_membership_unlocks(self, supporter_id: str, creator_id: str) -> int:
        """Close membership-granted access; paid unlocks are kept."""
        res = self._coll.update_many(
            {
                "supporter_id": supporter_id,
                "creator_id": creator_id,
                "unlocked_by": UnlockMethod.MEMBERSHIP.value,
                "has_access": True,
            },
            {"$set": {"has_access": False, "updated_at": utcnow()}},
        )
        if res.modified_count:
            logger.info("Revoked %d membership unlocks supporter=%s creator=%s", res.modified_count, supporter_id, creator_id)
        return res.modified_count

    def list_for_supporter(self, supporter_id: str, creator_id: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"supporter_id": supporter_id, "has_access": True}
        if creator_id:
            query["creator_id"] = creator_id
        return list(self._coll.find(query).sort([("created_at", DESCENDING)]).limit(limit))

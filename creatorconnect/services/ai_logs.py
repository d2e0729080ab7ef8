from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING

from creatorconnect.records import AILogRecord, build_document

logger = logging.getLogger(__name__)


class AILogService:
    """Append-only record of AI prompts and responses."""

    def __init__(self, ai_logs: Any):
        self._coll = ai_logs

    def log_interaction(self, user_id: str, prompt: str, response: str, purpose: Optional[str] = None) -> Dict[str, Any]:
        doc = build_document(AILogRecord, user_id=user_id, prompt=prompt, response=response, purpose=purpose)
        self._coll.insert_one(doc)
        logger.debug("AI log %s user=%s purpose=%s", doc["_id"], user_id, doc["purpose"])
        return doc

    def list_for_user(self, user_id: str, purpose: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"user_id": user_id}
        if purpose:
            query["purpose"] = purpose
        return list(self._coll.find(query).sort([("created_at", DESCENDING)]).limit(limit))

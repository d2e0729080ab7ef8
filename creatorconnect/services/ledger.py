from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, FrozenSet, List, Optional

from pymongo import DESCENDING, ReturnDocument

from creatorconnect.core.errors import InvalidTransitionError, NotFoundError
from creatorconnect.core.normalize import parse_object_id
from creatorconnect.core.time import utcnow
from creatorconnect.records import TransactionRecord, TransactionStatus, build_document

logger = logging.getLogger(__name__)

PENDING = TransactionStatus.PENDING.value
SUCCEEDED = TransactionStatus.SUCCEEDED.value
FAILED = TransactionStatus.FAILED.value
REFUNDED = TransactionStatus.REFUNDED.value

# target status -> statuses it may be reached from
ALLOWED_FROM: Dict[str, FrozenSet[str]] = {
    SUCCEEDED: frozenset({PENDING}),
    FAILED: frozenset({PENDING}),
    REFUNDED: frozenset({SUCCEEDED}),
}


class LedgerService:
    def __init__(self, transactions: Any):
        self._coll = transactions

    def record_transaction(
        self,
        user_id: str,
        creator_id: str,
        type: str,
        provider_payment_ref: str = "",
        amount: float = 0,
        currency: str = "USD",
        status: str = PENDING,
    ) -> Dict[str, Any]:
        doc = build_document(
            TransactionRecord,
            user_id=user_id,
            creator_id=creator_id,
            type=type,
            provider_payment_ref=provider_payment_ref,
            amount=amount,
            currency=currency,
            status=status,
        )
        self._coll.insert_one(doc)
        logger.info(
            "Ledger %s %s %.2f %s user=%s creator=%s status=%s",
            doc["_id"], doc["type"], doc["amount"], doc["currency"], user_id, creator_id, doc["status"],
        )
        return doc

    def get(self, transaction_id: str) -> Dict[str, Any]:
        doc = self._coll.find_one({"_id": parse_object_id(transaction_id, "Transaction")})
        if not doc:
            raise NotFoundError("Transaction not found")
        return doc

    def find_by_provider_ref(self, provider_payment_ref: str) -> Optional[Dict[str, Any]]:
        if not provider_payment_ref:
            return None
        return self._coll.find_one({"provider_payment_ref": provider_payment_ref})

    def _transition(self, transaction_id: str, target: str) -> Dict[str, Any]:
        oid = parse_object_id(transaction_id, "Transaction")
        updated = self._coll.find_one_and_update(
            {"_id": oid, "status": {"$in": sorted(ALLOWED_FROM[target])}},
            {"$set": {"status": target, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if updated is not None:
            logger.info("Transaction %s -> %s", oid, target)
            return updated

        current = self._coll.find_one({"_id": oid})
        if current is None:
            raise NotFoundError("Transaction not found")
        if current["status"] == target:
            return current
        raise InvalidTransitionError("transaction", current["status"], target)

    def mark_succeeded(self, transaction_id: str) -> Dict[str, Any]:
        return self._transition(transaction_id, SUCCEEDED)

    def mark_failed(self, transaction_id: str) -> Dict[str, Any]:
        return self._transition(transaction_id, FAILED)

    def mark_refunded(self, transaction_id: str) -> Dict[str, Any]:
        return self._transition(transaction_id, REFUNDED)

    def mark(self, transaction_id: str, status: str) -> Dict[str, Any]:
        if status not in ALLOWED_FROM:
            current = self.get(transaction_id)
            if current["status"] == status:
                return current
            raise InvalidTransitionError("transaction", current["status"], status)
        return self._transition(transaction_id, status)

    def _list(self, query: Dict[str, Any], type: Optional[str], status: Optional[str], limit: int) -> List[Dict[str, Any]]:
        if type:
            query["type"] = type
        if status:
            query["status"] = status
        return list(self._coll.find(query).sort([("created_at", DESCENDING)]).limit(limit))

    def list_for_user(self, user_id: str, type: Optional[str] = None, status: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        return self._list({"user_id": user_id}, type, status, limit)

    def list_for_creator(self, creator_id: str, type: Optional[str] = None, status: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        return self._list({"creator_id": creator_id}, type, status, limit)

    def creator_earnings(self, creator_id: str) -> Dict[str, float]:
        totals: Dict[str, float] = defaultdict(float)
        for doc in self._coll.find({"creator_id": creator_id, "status": SUCCEEDED}):
            totals[doc["currency"]] += float(doc["amount"])
        return {currency: round(total, 2) for currency, total in sorted(totals.items())}

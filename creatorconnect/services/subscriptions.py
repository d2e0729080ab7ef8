"""
Subscription lifecycle.

Invariant: at most one subscription with status=active per
(supporter_id, creator_id). It is held by the partial unique index
`uniq_active_subscription_per_pair`; both the insert in create_subscription()
and any update back to active go through that index, so concurrent writers
race at the storage layer and the loser gets a ConflictError.

Status changes are compare-and-swap on the previous status: a writer that
lost a race re-reads the record and re-validates the transition.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from creatorconnect.core.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from creatorconnect.core.normalize import parse_object_id
from creatorconnect.core.time import as_utc, utcnow
from creatorconnect.records import SubscriptionRecord, SubscriptionStatus, build_document

logger = logging.getLogger(__name__)

ACTIVE = SubscriptionStatus.ACTIVE.value
PAST_DUE = SubscriptionStatus.PAST_DUE.value
UNPAID = SubscriptionStatus.UNPAID.value
CANCELED = SubscriptionStatus.CANCELED.value

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    ACTIVE: frozenset({PAST_DUE, UNPAID, CANCELED}),
    PAST_DUE: frozenset({ACTIVE, UNPAID, CANCELED}),
    UNPAID: frozenset({ACTIVE, CANCELED}),
    CANCELED: frozenset(),
}

_MAX_CAS_ATTEMPTS = 3


@dataclass(frozen=True)
class StatusChange:
    subscription: Dict[str, Any]
    previous_status: str
    changed: bool


def _active_conflict(doc: Dict[str, Any]) -> ConflictError:
    return ConflictError(
        f"An active subscription already exists for supporter {doc['supporter_id']} and creator {doc['creator_id']}"
    )


class SubscriptionService:
    def __init__(self, subscriptions: Any):
        self._coll = subscriptions

    def create_subscription(
        self,
        supporter_id: str,
        creator_id: str,
        tier_id: str,
        provider_subscription_ref: str,
        renewal_date: datetime,
    ) -> Dict[str, Any]:
        doc = build_document(
            SubscriptionRecord,
            supporter_id=supporter_id,
            creator_id=creator_id,
            tier_id=tier_id,
            provider_subscription_ref=provider_subscription_ref,
            renewal_date=renewal_date,
            status=ACTIVE,
        )
        try:
            self._coll.insert_one(doc)
        except DuplicateKeyError as exc:
            if self._coll.find_one({"provider_subscription_ref": provider_subscription_ref}):
                logger.info("Duplicate provider subscription ref %s", provider_subscription_ref)
                raise ConflictError(f"Subscription {provider_subscription_ref} already exists") from exc
            logger.info("Rejected second active subscription supporter=%s creator=%s", supporter_id, creator_id)
            raise _active_conflict(doc) from exc
        logger.info(
            "Subscription %s created supporter=%s creator=%s tier=%s",
            provider_subscription_ref, supporter_id, creator_id, tier_id,
        )
        return doc

    def get(self, subscription_id: str) -> Dict[str, Any]:
        doc = self._coll.find_one({"_id": parse_object_id(subscription_id, "Subscription")})
        if not doc:
            raise NotFoundError("Subscription not found")
        return doc

    def get_by_ref(self, provider_subscription_ref: str) -> Dict[str, Any]:
        doc = self._coll.find_one({"provider_subscription_ref": provider_subscription_ref})
        if not doc:
            raise NotFoundError(f"Subscription {provider_subscription_ref} not found")
        return doc

    def update_subscription_status(self, provider_subscription_ref: str, new_status: str) -> StatusChange:
        if new_status not in ALLOWED_TRANSITIONS:
            raise ValidationError(f"Unknown subscription status: {new_status}")

        for _ in range(_MAX_CAS_ATTEMPTS):
            current = self.get_by_ref(provider_subscription_ref)
            previous = current["status"]
            if previous == new_status:
                return StatusChange(subscription=current, previous_status=previous, changed=False)
            if new_status not in ALLOWED_TRANSITIONS.get(previous, frozenset()):
                raise InvalidTransitionError("subscription", previous, new_status)

            try:
                updated = self._coll.find_one_and_update(
                    {"_id": current["_id"], "status": previous},
                    {"$set": {"status": new_status, "updated_at": utcnow()}},
                    return_document=ReturnDocument.AFTER,
                )
            except DuplicateKeyError as exc:
                logger.info("Reactivation of %s blocked by another active subscription", provider_subscription_ref)
                raise _active_conflict(current) from exc

            if updated is not None:
                logger.info("Subscription %s: %s -> %s", provider_subscription_ref, previous, new_status)
                return StatusChange(subscription=updated, previous_status=previous, changed=True)

        raise ConflictError(f"Subscription {provider_subscription_ref} is being updated concurrently")

    def renew(self, provider_subscription_ref: str, next_renewal_date: datetime) -> StatusChange:
        current = self.get_by_ref(provider_subscription_ref)
        next_renewal_date = as_utc(next_renewal_date)
        if current["status"] == CANCELED:
            raise InvalidTransitionError("subscription", CANCELED, ACTIVE)
        if next_renewal_date <= as_utc(current["renewal_date"]):
            raise ValidationError("Renewal date must move forward")

        previous = current["status"]
        try:
            updated = self._coll.find_one_and_update(
                {"_id": current["_id"], "status": previous, "renewal_date": current["renewal_date"]},
                {"$set": {"status": ACTIVE, "renewal_date": next_renewal_date, "updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as exc:
            raise _active_conflict(current) from exc
        if updated is None:
            raise ConflictError(f"Subscription {provider_subscription_ref} was updated concurrently")

        logger.info("Subscription %s renewed until %s", provider_subscription_ref, next_renewal_date.isoformat())
        return StatusChange(subscription=updated, previous_status=previous, changed=previous != ACTIVE)

    def has_active_subscription(self, supporter_id: str, creator_id: str) -> bool:
        return self._coll.find_one({"supporter_id": supporter_id, "creator_id": creator_id, "status": ACTIVE}) is not None

    def _list(self, query: Dict[str, Any], status: Optional[str], limit: int) -> List[Dict[str, Any]]:
        if status:
            query["status"] = status
        return list(self._coll.find(query).sort([("created_at", DESCENDING)]).limit(limit))

    def list_for_supporter(self, supporter_id: str, status: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        return self._list({"supporter_id": supporter_id}, status, limit)

    def list_for_creator(self, creator_id: str, status: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
        return self._list({"creator_id": creator_id}, status, limit)

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from creatorconnect.auth.deps import get_current_user_id
from creatorconnect.core.errors import NotFoundError
from creatorconnect.core.responses import many, ok, one
from creatorconnect.metrics import record_ledger_entry, record_subscription_change
from creatorconnect.models import SubscribeReq, SubscriptionStatusResp
from creatorconnect.services.container import Services, get_services
from creatorconnect.services.subscriptions import ACTIVE, CANCELED

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.post("", status_code=201)
def subscribe(body: SubscribeReq, user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    outcome = svc.payments.subscribe(
        supporter_id=user_id,
        tier_id=body.tier_id,
        provider_subscription_ref=body.provider_subscription_ref,
        renewal_date=body.renewal_date,
        provider_payment_ref=body.provider_payment_ref,
    )
    record_subscription_change(ACTIVE)
    record_ledger_entry(outcome.transaction)
    return ok(
        {"subscription": one(outcome.subscription), "transaction": one(outcome.transaction)},
        "Subscribed successfully",
    )


@router.get("/mine")
def my_subscriptions(
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    svc: Services = Depends(get_services),
):
    return ok(many(svc.subscriptions.list_for_supporter(user_id, status=status, limit=limit)))


@router.get("/subscribers")
def my_subscribers(
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    svc: Services = Depends(get_services),
):
    return ok(many(svc.subscriptions.list_for_creator(user_id, status=status, limit=limit)))


@router.post("/{provider_subscription_ref}/cancel", response_model=SubscriptionStatusResp)
def cancel_subscription(
    provider_subscription_ref: str,
    user_id: str = Depends(get_current_user_id),
    svc: Services = Depends(get_services),
):
    current = svc.subscriptions.get_by_ref(provider_subscription_ref)
    if current["supporter_id"] != user_id:
        raise NotFoundError(f"Subscription {provider_subscription_ref} not found")

    outcome = svc.payments.apply_subscription_status(provider_subscription_ref, CANCELED)
    if outcome.changed:
        record_subscription_change(CANCELED)
    sub = outcome.subscription
    return SubscriptionStatusResp(
        id=str(sub["_id"]),
        provider_subscription_ref=sub["provider_subscription_ref"],
        status=sub["status"],
        changed=outcome.changed,
        previous_status=outcome.previous_status,
    )

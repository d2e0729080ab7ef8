from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from creatorconnect.auth.deps import get_current_user_id
from creatorconnect.core.errors import NotFoundError
from creatorconnect.core.responses import many, ok, one
from creatorconnect.metrics import record_ledger_entry
from creatorconnect.models import SupportReq, UnlockReq
from creatorconnect.services.container import Services, get_services

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("/support", status_code=201)
def support_creator(body: SupportReq, user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    outcome = svc.payments.support_creator(
        supporter_id=user_id,
        creator_id=body.creator_id,
        amount=body.amount,
        currency=body.currency,
        message=body.message,
        access_expiry=body.access_expiry,
        provider_payment_ref=body.provider_payment_ref,
        tip=body.tip,
        post_id=body.post_id,
    )
    record_ledger_entry(outcome.transaction)
    return ok(
        {"support": one(outcome.support), "transaction": one(outcome.transaction), "unlock": one(outcome.unlock)},
        "Support recorded successfully",
    )


@router.get("/supports/given")
def supports_given(limit: int = Query(50, ge=1, le=100), user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    return ok(many(svc.supports.list_given(user_id, limit)))


@router.get("/supports/received")
def supports_received(limit: int = Query(50, ge=1, le=100), user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    return ok(many(svc.supports.list_received(user_id, limit)))


@router.get("/access/{creator_id}")
def creator_access(creator_id: str, user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    return ok({
        "supporter": svc.supports.has_supporter_access(user_id, creator_id),
        "member": svc.subscriptions.has_active_subscription(user_id, creator_id),
    })


@router.get("/transactions")
def list_transactions(
    role: str = Query("payer", pattern="^(payer|creator)$"),
    type: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    svc: Services = Depends(get_services),
):
    if role == "creator":
        items = svc.ledger.list_for_creator(user_id, type=type, status=status, limit=limit)
    else:
        items = svc.ledger.list_for_user(user_id, type=type, status=status, limit=limit)
    return ok(many(items))


@router.get("/transactions/{transaction_id}")
def get_transaction(transaction_id: str, user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    tx = svc.ledger.get(transaction_id)
    if user_id not in (tx["user_id"], tx["creator_id"]):
        raise NotFoundError("Transaction not found")
    return ok(one(tx))


@router.get("/earnings")
def earnings(user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    return ok({"creator_id": user_id, "totals": svc.ledger.creator_earnings(user_id)})


@router.post("/unlocks", status_code=201)
def unlock_post(body: UnlockReq, user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    unlock = svc.payments.unlock_with_membership(user_id, body.creator_id, body.post_id)
    return ok(one(unlock), "Post unlocked")


@router.get("/unlocks")
def list_unlocks(
    creator_id: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    svc: Services = Depends(get_services),
):
    return ok(many(svc.unlocks.list_for_supporter(user_id, creator_id=creator_id, limit=limit)))


@router.get("/unlocks/{post_id}")
def post_access(post_id: str, user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    return ok({"post_id": post_id, "unlocked": svc.unlocks.has_unlocked(user_id, post_id)})

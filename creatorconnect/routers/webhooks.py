from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pymongo.errors import DuplicateKeyError

from creatorconnect.core.settings import Settings
from creatorconnect.core.time import utcnow
from creatorconnect.metrics import record_ledger_entry, record_subscription_change, record_webhook_event
from creatorconnect.services.container import Services, get_services
from creatorconnect.services.payments import Charge
from creatorconnect.services.subscriptions import ACTIVE, ALLOWED_TRANSITIONS, CANCELED, PAST_DUE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])

SETTLEMENT_EVENTS = {
    "payment_intent.succeeded": "succeeded",
    "payment_intent.payment_failed": "failed",
    "charge.refunded": "refunded",
}


def mark_event_processed(events: Any, event_id: str, event_type: str) -> bool:
    try:
        events.insert_one({"event_id": event_id, "type": event_type, "created_at": utcnow()})
        return True
    except DuplicateKeyError:
        return False


def _minor_to_major(value: Any) -> float:
    return int(value or 0) / 100.0


def _invoice_charge(invoice: Dict[str, Any], amount_field: str) -> Charge:
    return Charge(
        amount=_minor_to_major(invoice.get(amount_field)),
        currency=(invoice.get("currency") or "usd").upper(),
        provider_payment_ref=invoice.get("payment_intent") or invoice.get("id") or "",
    )


def _invoice_period_end(invoice: Dict[str, Any]) -> Optional[datetime]:
    lines = (invoice.get("lines") or {}).get("data") or []
    end = None
    if lines:
        end = (lines[0].get("period") or {}).get("end")
    end = end or invoice.get("period_end")
    if not end:
        return None
    return datetime.fromtimestamp(int(end), tz=timezone.utc)


def dispatch_event(svc: Services, event: Dict[str, Any]) -> str:
    """Apply one verified provider event. Returns a short outcome label."""
    event_type = event["type"]
    obj = event["data"]["object"]

    if event_type in ("customer.subscription.updated", "customer.subscription.deleted"):
        status = CANCELED if event_type.endswith("deleted") else obj.get("status")
        if status not in ALLOWED_TRANSITIONS:
            return "ignored"
        outcome = svc.payments.apply_subscription_status(obj["id"], status)
        if outcome.changed:
            record_subscription_change(status)
            record_ledger_entry(outcome.transaction)
            return "applied"
        return "unchanged"

    if event_type == "invoice.payment_succeeded":
        ref = obj.get("subscription")
        period_end = _invoice_period_end(obj)
        if not ref or period_end is None or obj.get("billing_reason") == "subscription_create":
            return "ignored"
        outcome = svc.payments.renew_subscription(ref, period_end, _invoice_charge(obj, "amount_paid"))
        if outcome.previous_status != ACTIVE:
            record_subscription_change(ACTIVE)
        record_ledger_entry(outcome.transaction)
        return "applied"

    if event_type == "invoice.payment_failed":
        ref = obj.get("subscription")
        if not ref:
            return "ignored"
        outcome = svc.payments.apply_subscription_status(ref, PAST_DUE, _invoice_charge(obj, "amount_due"))
        if outcome.changed:
            record_subscription_change(PAST_DUE)
            record_ledger_entry(outcome.transaction)
            return "applied"
        return "unchanged"

    if event_type in SETTLEMENT_EVENTS:
        ref = obj.get("payment_intent") if event_type == "charge.refunded" else obj.get("id")
        if not ref:
            return "ignored"
        updated = svc.payments.settle_transaction(ref, SETTLEMENT_EVENTS[event_type])
        return "applied" if updated is not None else "ignored"

    return "ignored"


@router.post("/stripe")
async def stripe_webhook(req: Request, svc: Services = Depends(get_services)) -> Dict[str, Any]:
    settings: Settings = req.app.state.settings
    if not settings.stripe_webhook_secret:
        raise HTTPException(501, "Stripe webhook secret not configured")
    if settings.stripe_secret_key:
        stripe.api_key = settings.stripe_secret_key

    payload = await req.body()
    sig = req.headers.get("stripe-signature")

    try:
        event = stripe.Webhook.construct_event(payload=payload, sig_header=sig, secret=settings.stripe_webhook_secret)
    except (ValueError, stripe.SignatureVerificationError) as exc:
        logger.warning("Rejected Stripe webhook: %s", exc)
        raise HTTPException(400, f"Webhook error: {exc}") from exc

    event_id = event["id"]
    event_type = event["type"]
    if not await run_in_threadpool(mark_event_processed, svc.webhook_events, event_id, event_type):
        record_webhook_event(event_type, "deduped")
        return {"received": True, "deduped": True}

    try:
        outcome = await run_in_threadpool(dispatch_event, svc, event)
    except HTTPException as exc:
        # domain rejections (unknown ref, illegal transition) will not succeed on retry
        logger.info("Stripe event %s (%s) not applied: %s", event_id, event_type, exc.detail)
        record_webhook_event(event_type, "rejected")
        return {"received": True, "applied": False, "reason": exc.detail}
    except Exception:
        # let the provider retry
        await run_in_threadpool(svc.webhook_events.delete_one, {"event_id": event_id})
        record_webhook_event(event_type, "error")
        raise

    logger.info("Stripe event %s (%s): %s", event_id, event_type, outcome)
    record_webhook_event(event_type, outcome)
    return {"received": True, "applied": outcome == "applied"}

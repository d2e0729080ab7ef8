"""
Payment flows that span several collections.

Each step is its own single-document write; there is no multi-document
transaction. The ledger entry and the notification are written here, after
the primary record, so the stores stay independent of each other. When a
follow-up write fails the primary record is kept, the failure is logged with
the identifiers needed to reconcile, and the error propagates to the caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, TypeVar

from pymongo.errors import PyMongoError

from creatorconnect.core.errors import ForbiddenError, ValidationError
from creatorconnect.core.normalize import normalize_currency
from creatorconnect.records import (
    NOTIFICATION_MESSAGE_MAX,
    NotificationType,
    TransactionStatus,
    TransactionType,
    UnlockMethod,
)
from creatorconnect.services.ledger import LedgerService
from creatorconnect.services.notifications import NotificationService
from creatorconnect.services.subscriptions import ACTIVE, CANCELED, PAST_DUE, UNPAID, SubscriptionService
from creatorconnect.services.supports import SupportService
from creatorconnect.services.tiers import TierService
from creatorconnect.services.unlocks import UnlockService

logger = logging.getLogger(__name__)

T = TypeVar("T")

# subscription status -> ledger status of the charge that caused it
CHARGE_STATUS_FOR = {
    ACTIVE: TransactionStatus.SUCCEEDED.value,
    PAST_DUE: TransactionStatus.FAILED.value,
    UNPAID: TransactionStatus.FAILED.value,
}

SUBSCRIPTION_MESSAGES = {
    ACTIVE: ("Membership active", "Your membership is active again."),
    PAST_DUE: ("Payment failed", "We could not charge your membership. Please update your payment method."),
    UNPAID: ("Membership unpaid", "Your membership is unpaid and access has been paused."),
    CANCELED: ("Membership canceled", "Your membership has been canceled."),
}

SETTLEMENT_MESSAGES = {
    TransactionStatus.SUCCEEDED.value: ("Payment received", "Your payment of {amount:.2f} {currency} succeeded."),
    TransactionStatus.FAILED.value: ("Payment failed", "Your payment of {amount:.2f} {currency} failed."),
    TransactionStatus.REFUNDED.value: ("Payment refunded", "Your payment of {amount:.2f} {currency} was refunded."),
}


@dataclass(frozen=True)
class Charge:
    amount: float
    currency: str = "USD"
    provider_payment_ref: str = ""


@dataclass(frozen=True)
class SupportOutcome:
    support: Dict[str, Any]
    transaction: Dict[str, Any]
    notification: Dict[str, Any]
    unlock: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class SubscriptionOutcome:
    subscription: Dict[str, Any]
    changed: bool
    previous_status: Optional[str] = None
    transaction: Optional[Dict[str, Any]] = None
    notification: Optional[Dict[str, Any]] = None


class PaymentsService:
    def __init__(
        self,
        tiers: TierService,
        supports: SupportService,
        subscriptions: SubscriptionService,
        ledger: LedgerService,
        notifications: NotificationService,
        unlocks: UnlockService,
        default_currency: str = "USD",
    ):
        self.tiers = tiers
        self.supports = supports
        self.subscriptions = subscriptions
        self.ledger = ledger
        self.notifications = notifications
        self.unlocks = unlocks
        self.default_currency = default_currency

    def _follow_up(self, what: str, ref: Any, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except PyMongoError:
            logger.exception("Failed to write %s after primary record %s", what, ref)
            raise

    def support_creator(
        self,
        supporter_id: str,
        creator_id: str,
        amount: float,
        currency: Optional[str] = None,
        message: str = "",
        access_expiry: Optional[datetime] = None,
        provider_payment_ref: str = "",
        status: Optional[str] = None,
        tip: bool = False,
        post_id: Optional[str] = None,
    ) -> SupportOutcome:
        currency = normalize_currency(currency or self.default_currency)
        support = self.supports.record_support(
            supporter_id=supporter_id,
            creator_id=creator_id,
            amount=amount,
            message=message,
            access_expiry=access_expiry,
            provider_payment_ref=provider_payment_ref,
        )
        tx_type = TransactionType.TIP.value if tip else TransactionType.SUPPORT.value
        transaction = self._follow_up("transaction", support["_id"], lambda: self.ledger.record_transaction(
            user_id=supporter_id,
            creator_id=creator_id,
            type=tx_type,
            provider_payment_ref=provider_payment_ref,
            amount=amount,
            currency=currency,
            status=status or TransactionStatus.PENDING.value,
        ))
        body = f"You received {support['amount']:.2f} {currency} from a supporter."
        if support["message"]:
            body = f"{body} \"{support['message']}\""
        notification = self._follow_up("notification", support["_id"], lambda: self.notifications.notify(
            user_id=creator_id,
            title="New support",
            message=body[:NOTIFICATION_MESSAGE_MAX],
            type=NotificationType.SUPPORT.value,
        ))
        unlock = None
        if post_id:
            unlock = self._follow_up("unlock", support["_id"], lambda: self.unlocks.grant_unlock(
                supporter_id, creator_id, post_id, UnlockMethod.PAYMENT.value
            ))
        return SupportOutcome(support=support, transaction=transaction, notification=notification, unlock=unlock)

    def unlock_with_membership(self, supporter_id: str, creator_id: str, post_id: str) -> Dict[str, Any]:
        if not self.subscriptions.has_active_subscription(supporter_id, creator_id):
            raise ForbiddenError("An active membership is required to unlock this post")
        return self.unlocks.grant_unlock(supporter_id, creator_id, post_id, UnlockMethod.MEMBERSHIP.value)

    def subscribe(
        self,
        supporter_id: str,
        tier_id: str,
        provider_subscription_ref: str,
        renewal_date: datetime,
        provider_payment_ref: str = "",
    ) -> SubscriptionOutcome:
        tier = self.tiers.get_tier(tier_id)
        creator_id = tier["creator_id"]
        if supporter_id == creator_id:
            raise ValidationError("You cannot subscribe to your own tier")

        subscription = self.subscriptions.create_subscription(
            supporter_id=supporter_id,
            creator_id=creator_id,
            tier_id=str(tier["_id"]),
            provider_subscription_ref=provider_subscription_ref,
            renewal_date=renewal_date,
        )
        transaction = self._follow_up("transaction", provider_subscription_ref, lambda: self.ledger.record_transaction(
            user_id=supporter_id,
            creator_id=creator_id,
            type=TransactionType.MEMBERSHIP.value,
            provider_payment_ref=provider_payment_ref,
            amount=tier["price"],
            currency=tier["currency"],
            status=TransactionStatus.SUCCEEDED.value,
        ))
        notification = self._follow_up("notification", provider_subscription_ref, lambda: self.notifications.notify(
            user_id=creator_id,
            title="New member",
            message=f"Someone joined your {tier['title']} tier.",
            type=NotificationType.MEMBERSHIP.value,
        ))
        return SubscriptionOutcome(
            subscription=subscription,
            changed=True,
            transaction=transaction,
            notification=notification,
        )

    def _membership_charge(self, subscription: Dict[str, Any], status: str, charge: Optional[Charge]) -> Dict[str, Any]:
        if charge is not None:
            amount, currency, ref = charge.amount, charge.currency, charge.provider_payment_ref
        else:
            tier = self.tiers.get_tier(subscription["tier_id"])
            amount, currency, ref = tier["price"], tier["currency"], ""
        return self.ledger.record_transaction(
            user_id=subscription["supporter_id"],
            creator_id=subscription["creator_id"],
            type=TransactionType.MEMBERSHIP.value,
            provider_payment_ref=ref,
            amount=amount,
            currency=currency,
            status=status,
        )

    def _notify_supporter(self, subscription: Dict[str, Any], status: str) -> Dict[str, Any]:
        title, message = SUBSCRIPTION_MESSAGES[status]
        return self.notifications.notify(
            user_id=subscription["supporter_id"],
            title=title,
            message=message,
            type=NotificationType.MEMBERSHIP.value,
        )

    def apply_subscription_status(
        self,
        provider_subscription_ref: str,
        new_status: str,
        charge: Optional[Charge] = None,
    ) -> SubscriptionOutcome:
        change = self.subscriptions.update_subscription_status(provider_subscription_ref, new_status)
        sub = change.subscription
        if not change.changed:
            return SubscriptionOutcome(subscription=sub, changed=False, previous_status=change.previous_status)

        transaction = None
        # a recovery to active is charged by the paid invoice, via renew_subscription()
        charged = new_status in CHARGE_STATUS_FOR and (charge is not None or new_status != ACTIVE)
        if charged:
            transaction = self._follow_up(
                "transaction", provider_subscription_ref,
                lambda: self._membership_charge(sub, CHARGE_STATUS_FOR[new_status], charge),
            )
        if new_status == CANCELED:
            self._follow_up(
                "unlock revocation", provider_subscription_ref,
                lambda: self.unlocks.revoke_membership_unlocks(sub["supporter_id"], sub["creator_id"]),
            )
        notification = self._follow_up(
            "notification", provider_subscription_ref, lambda: self._notify_supporter(sub, new_status)
        )
        return SubscriptionOutcome(
            subscription=sub,
            changed=True,
            previous_status=change.previous_status,
            transaction=transaction,
            notification=notification,
        )

    def renew_subscription(
        self,
        provider_subscription_ref: str,
        next_renewal_date: datetime,
        charge: Optional[Charge] = None,
    ) -> SubscriptionOutcome:
        change = self.subscriptions.renew(provider_subscription_ref, next_renewal_date)
        sub = change.subscription
        transaction = None
        # zero-amount periods (trials, full discounts) renew without a ledger entry
        if charge is None or charge.amount > 0:
            transaction = self._follow_up(
                "transaction", provider_subscription_ref,
                lambda: self._membership_charge(sub, TransactionStatus.SUCCEEDED.value, charge),
            )
        notification = self._follow_up("notification", provider_subscription_ref, lambda: self.notifications.notify(
            user_id=sub["supporter_id"],
            title="Membership renewed",
            message=f"Your membership renews next on {sub['renewal_date']:%Y-%m-%d}.",
            type=NotificationType.MEMBERSHIP.value,
        ))
        return SubscriptionOutcome(
            subscription=sub,
            changed=True,
            previous_status=change.previous_status,
            transaction=transaction,
            notification=notification,
        )

    def settle_transaction(self, provider_payment_ref: str, outcome: str) -> Optional[Dict[str, Any]]:
        """
        Apply a provider outcome to the ledger entry carrying that reference.

        Returns None when no entry matches: provider events for payments this
        service never recorded are ignored.
        """
        if outcome not in SETTLEMENT_MESSAGES:
            raise ValidationError(f"Unknown settlement outcome: {outcome}")

        current = self.ledger.find_by_provider_ref(provider_payment_ref)
        if current is None:
            logger.info("No ledger entry for provider ref %s; ignoring %s", provider_payment_ref, outcome)
            return None

        updated = self.ledger.mark(str(current["_id"]), outcome)
        if current["status"] != updated["status"]:
            title, template = SETTLEMENT_MESSAGES[outcome]
            self._follow_up("notification", current["_id"], lambda: self.notifications.notify(
                user_id=updated["user_id"],
                title=title,
                message=template.format(amount=updated["amount"], currency=updated["currency"]),
                type=NotificationType.PAYMENT.value,
            ))
        return updated

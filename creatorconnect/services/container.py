from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request

from creatorconnect.core.database import Collections
from creatorconnect.services.ai_logs import AILogService
from creatorconnect.services.ledger import LedgerService
from creatorconnect.services.notifications import NotificationService
from creatorconnect.services.payments import PaymentsService
from creatorconnect.services.subscriptions import SubscriptionService
from creatorconnect.services.supports import SupportService
from creatorconnect.services.tiers import TierService
from creatorconnect.services.unlocks import UnlockService


@dataclass(frozen=True)
class Services:
    tiers: TierService
    supports: SupportService
    subscriptions: SubscriptionService
    ledger: LedgerService
    notifications: NotificationService
    ai_logs: AILogService
    unlocks: UnlockService
    payments: PaymentsService
    webhook_events: Any

    @classmethod
    def build(cls, collections: Collections, default_currency: str = "USD") -> Services:
        tiers = TierService(collections.membership_tiers)
        supports = SupportService(collections.supports)
        subscriptions = SubscriptionService(collections.subscriptions)
        ledger = LedgerService(collections.transactions)
        notifications = NotificationService(collections.notifications)
        unlocks = UnlockService(collections.post_unlocks)
        return cls(
            tiers=tiers,
            supports=supports,
            subscriptions=subscriptions,
            ledger=ledger,
            notifications=notifications,
            ai_logs=AILogService(collections.ai_logs),
            unlocks=unlocks,
            payments=PaymentsService(tiers, supports, subscriptions, ledger, notifications, unlocks, default_currency),
            webhook_events=collections.webhook_events,
        )


def get_services(request: Request) -> Services:
    return request.app.state.services

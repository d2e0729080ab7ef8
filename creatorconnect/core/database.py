"""
MongoDB connection and collection handles.

The client is created once at boot and closed on shutdown. Services never
import a global handle: they receive a Collections instance (or the
collection they own) through their constructor.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.errors import PyMongoError

from .errors import DatabaseConnectionError
from .settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "creatorconnect"

IndexSpec = Tuple[List[Tuple[str, int]], Dict[str, Any]]

INDEXES: Dict[str, List[IndexSpec]] = {
    "membership_tiers": [
        ([("creator_id", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("provider_price_ref", ASCENDING)], {}),
    ],
    "supports": [
        ([("supporter_id", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("creator_id", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("provider_payment_ref", ASCENDING)], {}),
    ],
    "subscriptions": [
        ([("provider_subscription_ref", ASCENDING)], {"unique": True, "name": "uniq_provider_subscription_ref"}),
        ([("supporter_id", ASCENDING), ("status", ASCENDING)], {}),
        ([("creator_id", ASCENDING), ("status", ASCENDING)], {}),
        ([("tier_id", ASCENDING)], {}),
        ([("renewal_date", ASCENDING)], {}),
        (
            [("supporter_id", ASCENDING), ("creator_id", ASCENDING)],
            {
                "unique": True,
                "partialFilterExpression": {"status": "active"},
                "name": "uniq_active_subscription_per_pair",
            },
        ),
    ],
    "transactions": [
        ([("user_id", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("creator_id", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("type", ASCENDING)], {}),
        ([("status", ASCENDING)], {}),
        ([("provider_payment_ref", ASCENDING)], {}),
        ([("created_at", DESCENDING)], {}),
    ],
    "notifications": [
        ([("user_id", ASCENDING), ("is_read", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("type", ASCENDING)], {}),
        ([("created_at", DESCENDING)], {}),
    ],
    "ai_logs": [
        ([("user_id", ASCENDING), ("created_at", DESCENDING)], {}),
        ([("purpose", ASCENDING)], {}),
        ([("created_at", DESCENDING)], {}),
    ],
    "post_unlocks": [
        (
            [("supporter_id", ASCENDING), ("post_id", ASCENDING)],
            {"unique": True, "name": "uniq_unlock_per_supporter_post"},
        ),
        ([("creator_id", ASCENDING)], {}),
        ([("has_access", ASCENDING)], {}),
    ],
    "webhook_events": [
        ([("event_id", ASCENDING)], {"unique": True, "name": "uniq_webhook_event_id"}),
    ],
}


@dataclass(frozen=True)
class Collections:
    membership_tiers: Any
    supports: Any
    subscriptions: Any
    transactions: Any
    notifications: Any
    ai_logs: Any
    post_unlocks: Any
    webhook_events: Any

    @classmethod
    def from_database(cls, db: Any) -> Collections:
        return cls(
            membership_tiers=db["membership_tiers"],
            supports=db["supports"],
            subscriptions=db["subscriptions"],
            transactions=db["transactions"],
            notifications=db["notifications"],
            ai_logs=db["ai_logs"],
            post_unlocks=db["post_unlocks"],
            webhook_events=db["webhook_events"],
        )


def ensure_indexes(db: Any) -> None:
    for name, specs in INDEXES.items():
        coll = db[name]
        for keys, options in specs:
            coll.create_index(keys, **options)
    logger.info("Indexes ensured on %d collections", len(INDEXES))


class Database:
    """Process-wide MongoDB handle: connect() at boot, close() on shutdown."""

    def __init__(self, settings: Settings, client_factory=MongoClient):
        self._settings = settings
        self._client_factory = client_factory
        self.client: Optional[MongoClient] = None
        self.db: Any = None

    def connect(self) -> Any:
        timeout = int(self._settings.mongodb_timeout_ms)
        try:
            self.client = self._client_factory(
                self._settings.mongodb_uri,
                tz_aware=True,
                serverSelectionTimeoutMS=timeout,
                connectTimeoutMS=timeout,
            )
            self.client.admin.command("ping")
            self.db = self._resolve_database(self.client)
        except PyMongoError as exc:
            self.close()
            raise DatabaseConnectionError(f"Error connecting to MongoDB: {exc}") from exc

        logger.info("MongoDB connected: %s", self.db.name)
        return self.db

    def _resolve_database(self, client: MongoClient) -> Any:
        if self._settings.mongodb_db:
            return client[self._settings.mongodb_db]
        return client.get_default_database(default=DEFAULT_DB_NAME)

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            logger.info("MongoDB connection closed")
        self.client = None
        self.db = None

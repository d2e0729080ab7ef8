"""
Stored record schemas.

Each collection's field rules (required, length, enum membership, numeric
minimum, currency casing) live here so they run at construction time,
independent of MongoDB. Services call build_document() before every insert.
"""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from creatorconnect.core.errors import ValidationError
from creatorconnect.core.normalize import CURRENCY_RE
from creatorconnect.core.time import as_utc, utcnow

SUPPORT_MESSAGE_MAX = 500
NOTIFICATION_TITLE_MAX = 200
NOTIFICATION_MESSAGE_MAX = 1000
AI_PROMPT_MAX = 2000
TIER_TITLE_MAX = 100
TIER_DESCRIPTION_MAX = 500


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAST_DUE = "past_due"


class TransactionType(str, Enum):
    SUPPORT = "support"
    MEMBERSHIP = "membership"
    TIP = "tip"


class TransactionStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    PENDING = "pending"
    REFUNDED = "refunded"


class NotificationType(str, Enum):
    SUPPORT = "support"
    MEMBERSHIP = "membership"
    FOLLOW = "follow"
    POST = "post"
    PAYMENT = "payment"
    SYSTEM = "system"


class UnlockMethod(str, Enum):
    PAYMENT = "payment"
    MEMBERSHIP = "membership"


class AIPurpose(str, Enum):
    IDEA_GENERATION = "idea_generation"
    REWRITE = "rewrite"
    DESCRIPTION = "description"
    SUMMARIZE = "summarize"
    TITLE_GENERATION = "title_generation"
    TAG_GENERATION = "tag_generation"
    SEARCH = "search"
    RECOMMENDATION = "recommendation"
    OTHER = "other"


UserId = Annotated[str, Field(min_length=1, max_length=128)]
Amount = Annotated[float, Field(gt=0, allow_inf_nan=False)]


class Record(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True)


class _Priced(Record):
    @field_validator("currency", mode="before", check_fields=False)
    @classmethod
    def _upper_currency(cls, v: Any) -> str:
        if not isinstance(v, str) or not CURRENCY_RE.match(v.strip()):
            raise ValueError("Currency must be a three-letter code")
        return v.strip().upper()


class TierRecord(_Priced):
    creator_id: UserId
    title: str = Field(..., min_length=1, max_length=TIER_TITLE_MAX)
    description: str = Field(..., min_length=1, max_length=TIER_DESCRIPTION_MAX)
    price: Amount
    currency: str = "USD"
    benefits: List[str] = Field(default_factory=list)
    provider_price_ref: str = ""

    @field_validator("title", mode="before")
    @classmethod
    def _trim_title(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class SupportRecord(Record):
    supporter_id: UserId
    creator_id: UserId
    amount: Amount
    message: str = Field(default="", max_length=SUPPORT_MESSAGE_MAX)
    access_expiry: Optional[datetime] = None
    provider_payment_ref: str = ""

    @field_validator("access_expiry")
    @classmethod
    def _utc_expiry(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else None


class SubscriptionRecord(Record):
    supporter_id: UserId
    creator_id: UserId
    tier_id: str = Field(..., min_length=1)
    provider_subscription_ref: str = Field(..., min_length=1)
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    renewal_date: datetime

    @field_validator("renewal_date")
    @classmethod
    def _utc_renewal(cls, v: datetime) -> datetime:
        return as_utc(v)


class TransactionRecord(_Priced):
    user_id: UserId
    creator_id: UserId
    type: TransactionType
    provider_payment_ref: str = ""
    amount: Amount
    currency: str = "USD"
    status: TransactionStatus = TransactionStatus.PENDING


class NotificationRecord(Record):
    user_id: UserId
    title: str = Field(..., min_length=1, max_length=NOTIFICATION_TITLE_MAX)
    message: str = Field(..., min_length=1, max_length=NOTIFICATION_MESSAGE_MAX)
    type: NotificationType = NotificationType.SYSTEM
    is_read: bool = False
    link: str = ""


class AILogRecord(Record):
    user_id: UserId
    prompt: str = Field(..., min_length=1, max_length=AI_PROMPT_MAX)
    response: str = Field(..., min_length=1)
    purpose: AIPurpose = AIPurpose.OTHER


class PostUnlockRecord(Record):
    supporter_id: UserId
    creator_id: UserId
    post_id: str = Field(..., min_length=1, max_length=128)
    has_access: bool = True
    unlocked_by: UnlockMethod


def _error_list(exc: PydanticValidationError) -> List[Dict[str, Any]]:
    out = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "record"
        out.append({"field": loc, "message": err.get("msg", "Invalid value")})
    return out


def build_record(model: Type[Record], **fields: Any) -> Record:
    # None means "use the schema default"
    data = {k: v for k, v in fields.items() if v is not None}
    try:
        return model(**data)
    except PydanticValidationError as exc:
        errors = _error_list(exc)
        message = "; ".join(f"{e['field']}: {e['message']}" for e in errors)
        raise ValidationError(message, errors=errors) from exc


def build_document(model: Type[Record], **fields: Any) -> Dict[str, Any]:
    doc = build_record(model, **fields).model_dump()
    ts = utcnow()
    doc["created_at"] = ts
    doc["updated_at"] = ts
    return doc


def serialize(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Stored document -> JSON-friendly dict with a string id."""
    if doc is None:
        return None
    out = {k: v for k, v in doc.items() if k != "_id"}
    out["id"] = str(doc["_id"])
    return out

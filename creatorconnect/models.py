from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# Request bodies only check shape; field rules (lengths, minimums, enums)
# are enforced by the record schemas so every write path shares them.


class TierCreateReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    title: str
    description: str
    price: float
    currency: str = "USD"
    benefits: List[str] = Field(default_factory=list)
    provider_price_ref: str = Field("", validation_alias=AliasChoices("provider_price_ref", "stripe_price_id"))


class SupportReq(BaseModel):
    creator_id: str
    amount: float
    currency: Optional[str] = None
    message: str = ""
    access_expiry: Optional[datetime] = None
    provider_payment_ref: str = ""
    tip: bool = False
    post_id: Optional[str] = None


class SubscribeReq(BaseModel):
    tier_id: str
    provider_subscription_ref: str
    renewal_date: datetime
    provider_payment_ref: str = ""


class UnlockReq(BaseModel):
    creator_id: str
    post_id: str


class AILogReq(BaseModel):
    prompt: str
    response: str
    purpose: Optional[str] = None


class SubscriptionStatusResp(BaseModel):
    id: str
    provider_subscription_ref: str
    status: str
    changed: bool
    previous_status: Optional[str] = None

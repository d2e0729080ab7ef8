from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from creatorconnect.auth.deps import get_current_user_id
from creatorconnect.core.responses import many, ok, one
from creatorconnect.models import TierCreateReq
from creatorconnect.services.container import Services, get_services

router = APIRouter(prefix="/api/tiers", tags=["tiers"])


@router.post("", status_code=201)
def create_tier(body: TierCreateReq, user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    tier = svc.tiers.create_tier(
        creator_id=user_id,
        title=body.title,
        description=body.description,
        price=body.price,
        currency=body.currency,
        benefits=body.benefits,
        provider_price_ref=body.provider_price_ref,
    )
    return ok(one(tier), "Tier created successfully")


@router.get("/creator/{creator_id}")
def list_creator_tiers(creator_id: str, limit: int = Query(50, ge=1, le=100), svc: Services = Depends(get_services)):
    return ok(many(svc.tiers.list_for_creator(creator_id, limit)))


@router.get("/{tier_id}")
def get_tier(tier_id: str, svc: Services = Depends(get_services)):
    return ok(one(svc.tiers.get_tier(tier_id)))

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from creatorconnect.auth.deps import get_current_user_id
from creatorconnect.core.responses import many, ok, one
from creatorconnect.models import AILogReq
from creatorconnect.services.container import Services, get_services

router = APIRouter(prefix="/api/ai", tags=["ai"])


@router.post("/logs", status_code=201)
def log_interaction(body: AILogReq, user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    doc = svc.ai_logs.log_interaction(user_id, body.prompt, body.response, purpose=body.purpose)
    return ok(one(doc))


@router.get("/logs")
def list_logs(
    purpose: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    svc: Services = Depends(get_services),
):
    return ok(many(svc.ai_logs.list_for_user(user_id, purpose=purpose, limit=limit)))

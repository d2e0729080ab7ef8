from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from creatorconnect.auth.deps import get_current_user_id
from creatorconnect.core.responses import many, ok, one
from creatorconnect.services.container import Services, get_services

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = None,
    unread_only: bool = False,
    user_id: str = Depends(get_current_user_id),
    svc: Services = Depends(get_services),
):
    items, next_cursor = svc.notifications.list_for_user(user_id, unread_only=unread_only, limit=limit, cursor=cursor)
    return ok(many(items), next_cursor=next_cursor)


@router.get("/unread-count")
def unread_count(user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    return ok({"count": svc.notifications.unread_count(user_id)})


@router.post("/read-all")
def mark_all_read(user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    return ok({"updated": svc.notifications.mark_all_read(user_id)})


@router.post("/{notification_id}/read")
def mark_read(notification_id: str, user_id: str = Depends(get_current_user_id), svc: Services = Depends(get_services)):
    return ok(one(svc.notifications.mark_read(notification_id, user_id=user_id)))

"""
Notification inbox endpoints
============================

GET   /api/v1/notifications                    -- paged inbox with unread count
PATCH /api/v1/notifications/read-all           -- mark every record read
PATCH /api/v1/notifications/{notification_id}/read -- mark one read (idempotent)
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request

from ridehail.api.dependencies import get_actor, get_services
from ridehail.api.middleware import DEFAULT_LIMIT, limiter
from ridehail.api.schemas import InboxResponse, MarkAllReadResponse, NotificationResponse
from ridehail.domain.entities import Actor
from ridehail.services.container import Services

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=InboxResponse, summary="List my notifications")
@limiter.limit(DEFAULT_LIMIT)
async def list_notifications(
    request: Request,
    unread_only: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    return await services.inbox.list_notifications(
        actor.user_id, unread_only=unread_only, page=page, limit=limit
    )


@router.patch("/read-all", response_model=MarkAllReadResponse, summary="Mark all read")
@limiter.limit(DEFAULT_LIMIT)
async def mark_all_read(
    request: Request,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    return MarkAllReadResponse(updated=await services.inbox.mark_all_read(actor.user_id))


@router.patch(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark one notification read",
)
@limiter.limit(DEFAULT_LIMIT)
async def mark_read(
    request: Request,
    notification_id: UUID,
    actor: Actor = Depends(get_actor),
    services: Services = Depends(get_services),
):
    result = await services.engine.mark_notification_read(actor.user_id, notification_id)
    return result.entity

"""
In-app notification endpoints for the authenticated user.
"""

from uuid import UUID

from fastapi import APIRouter, Query

from supplyhub.api.deps import CurrentUser, NotificationServiceDep
from supplyhub.schemas.notifications import (
    MarkAllReadResponse,
    NotificationResponse,
    UnreadCountResponse,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/unread", response_model=list[NotificationResponse])
async def list_unread(
    current_user: CurrentUser,
    service: NotificationServiceDep,
    limit: int = Query(50, ge=1, le=200),
) -> list[NotificationResponse]:
    notifications = await service.list_unread(current_user.id, limit=limit)
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.get("/count", response_model=UnreadCountResponse)
async def count_unread(
    current_user: CurrentUser,
    service: NotificationServiceDep,
) -> UnreadCountResponse:
    return UnreadCountResponse(unread=await service.count_unread(current_user.id))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_as_read(
    current_user: CurrentUser,
    service: NotificationServiceDep,
) -> MarkAllReadResponse:
    return MarkAllReadResponse(updated=await service.mark_all_as_read(current_user.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_as_read(
    notification_id: UUID,
    current_user: CurrentUser,
    service: NotificationServiceDep,
) -> NotificationResponse:
    notification = await service.mark_as_read(notification_id, current_user.id)
    return NotificationResponse.model_validate(notification)

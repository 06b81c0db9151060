"""Notification endpoints — inbox for every user, announcements for admins."""


import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.dependencies import get_current_user, require_admin
from expense_tracker.auth.schemas import Actor
from expense_tracker.common.constants import NotificationType
from expense_tracker.common.pagination import PaginationParams
from expense_tracker.common.rate_limit import limiter
from expense_tracker.database import get_db
from expense_tracker.notifications.schemas import (
    AnnouncementCreate,
    NotificationListResponse,
    NotificationResponse,
)
from expense_tracker.notifications.service import NotificationService

router = APIRouter(prefix="", tags=["notifications"])
admin_router = APIRouter(prefix="", tags=["admin-notifications"])


# ── GET / — list current user's notifications ───────────────────────

@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    read: Optional[bool] = Query(default=None, description="Filter by read status"),
    type: Optional[NotificationType] = Query(
        default=None, alias="type", description="Filter by notification type"
    ),
    pagination: PaginationParams = Depends(),
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List notifications for the authenticated user (paginated)."""
    return await NotificationService.list_notifications(
        db,
        user_id=actor.id,
        pagination=pagination,
        read=read,
        notification_type=type,
    )


# ── GET /unread-count — badge count ─────────────────────────────────
# NOTE: static paths are registered before /{notification_id}.

@router.get("/unread-count")
async def unread_count(
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService.get_unread_count(db, actor.id)
    return {"data": {"count": count}}


# ── PUT /read-all — bulk mark all as read ───────────────────────────

@router.put("/read-all")
async def mark_all_read(
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    count = await NotificationService.mark_all_read(db, actor.id)
    await db.commit()
    return {"data": {"count": count}}


# ── PUT /{notification_id}/read — mark single as read ───────────────

@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    notification = await NotificationService.mark_read(db, notification_id, actor.id)
    await db.commit()
    return {"data": NotificationResponse.from_orm_row(notification)}


# ── DELETE /{notification_id} ───────────────────────────────────────

@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: uuid.UUID,
    actor: Actor = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await NotificationService.delete_notification(db, notification_id, actor.id)
    await db.commit()
    return {"data": {"id": str(notification_id), "deleted": True}}


# ── POST /admin/notifications — system announcement ─────────────────

@admin_router.post("", status_code=201)
@limiter.limit("10/minute")
async def broadcast_announcement(
    request: Request,
    body: AnnouncementCreate,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Send an announcement to every active user, or to one role."""
    count = await NotificationService.broadcast_announcement(
        db,
        title=body.title,
        message=body.message,
        target_role=body.target_role,
        expires_at=body.expires_at,
    )
    await db.commit()
    return {"data": {"recipients": count}}

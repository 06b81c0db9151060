"""Notification service — inbox CRUD and admin announcements."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from expense_tracker.auth.models import User
from expense_tracker.common.constants import NotificationType, UserRole
from expense_tracker.common.exceptions import ForbiddenException, NotFoundException
from expense_tracker.common.pagination import PaginationParams, build_meta
from expense_tracker.notifications.models import Notification
from expense_tracker.notifications.schemas import (
    NotificationListMeta,
    NotificationListResponse,
    NotificationResponse,
    RelatedEntity,
    SystemRef,
    related_to_columns,
)

logger = logging.getLogger(__name__)


def _not_expired():
    return or_(
        Notification.expires_at.is_(None),
        Notification.expires_at > datetime.now(timezone.utc),
    )


class NotificationService:
    """Async notification operations."""

    @staticmethod
    async def create_notification(
        db: AsyncSession,
        *,
        user_id: uuid.UUID,
        type: NotificationType,
        title: str,
        message: str,
        related: Optional[RelatedEntity] = None,
        expires_at: Optional[datetime] = None,
    ) -> Notification:
        """Create a new notification and flush to DB."""
        entity_type, entity_id = related_to_columns(related)
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            related_entity_type=entity_type,
            related_entity_id=entity_id,
            expires_at=expires_at,
        )
        db.add(notification)
        await db.flush()
        return notification

    @staticmethod
    async def list_notifications(
        db: AsyncSession,
        user_id: uuid.UUID,
        pagination: PaginationParams,
        *,
        read: Optional[bool] = None,
        notification_type: Optional[NotificationType] = None,
    ) -> NotificationListResponse:
        """Return paginated, unexpired notifications for a user, newest first."""
        query = (
            select(Notification)
            .where(Notification.user_id == user_id, _not_expired())
            .order_by(Notification.created_at.desc())
        )

        if read is not None:
            query = query.where(Notification.read.is_(read))
        if notification_type is not None:
            query = query.where(Notification.type == notification_type)

        count_q = query.with_only_columns(func.count(), maintain_column_froms=True).order_by(None)
        total: int = (await db.execute(count_q)).scalar_one()

        rows = (
            await db.execute(
                query.offset(pagination.offset).limit(pagination.page_size)
            )
        ).scalars().all()

        # Unread count ignores the read/type filters
        unread = await NotificationService.get_unread_count(db, user_id)

        meta = build_meta(total, pagination.page, pagination.page_size)
        return NotificationListResponse(
            data=[NotificationResponse.from_orm_row(n) for n in rows],
            meta=NotificationListMeta(**meta.model_dump(), unread=unread),
        )

    @staticmethod
    async def get_unread_count(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> int:
        result = await db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.read.is_(False),
                _not_expired(),
            )
        )
        return result.scalar_one()

    @staticmethod
    async def _get_own(
        db: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Notification:
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundException("Notification", notification_id)
        if notification.user_id != user_id:
            raise ForbiddenException("You can only manage your own notifications.")
        return notification

    @staticmethod
    async def mark_read(
        db: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> Notification:
        """Mark a single notification as read. Verifies ownership."""
        notification = await NotificationService._get_own(db, notification_id, user_id)
        notification.read = True
        await db.flush()
        return notification

    @staticmethod
    async def mark_all_read(
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> int:
        """Bulk-mark all unread notifications as read. Returns count updated."""
        result = await db.execute(
            update(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.read.is_(False),
            )
            .values(read=True)
            .execution_options(synchronize_session=False)
        )
        await db.flush()
        return result.rowcount  # type: ignore[return-value]

    @staticmethod
    async def delete_notification(
        db: AsyncSession,
        notification_id: uuid.UUID,
        user_id: uuid.UUID,
    ) -> None:
        notification = await NotificationService._get_own(db, notification_id, user_id)
        await db.delete(notification)
        await db.flush()

    # ── Announcements ─────────────────────────────────────────────────

    @staticmethod
    async def broadcast_announcement(
        db: AsyncSession,
        *,
        title: str,
        message: str,
        target_role: Optional[UserRole] = None,
        expires_at: Optional[datetime] = None,
    ) -> int:
        """Create one SYSTEM_ANNOUNCEMENT per matching active user. Returns the count."""
        query = select(User.id).where(User.is_active.is_(True))
        if target_role is not None:
            query = query.where(User.role == target_role)
        user_ids = (await db.execute(query)).scalars().all()

        if not user_ids:
            raise NotFoundException("Users with role", target_role.value if target_role else "any")

        entity_type, entity_id = related_to_columns(SystemRef())
        db.add_all([
            Notification(
                user_id=uid,
                type=NotificationType.SYSTEM_ANNOUNCEMENT,
                title=title,
                message=message,
                related_entity_type=entity_type,
                related_entity_id=entity_id,
                expires_at=expires_at,
            )
            for uid in user_ids
        ])
        await db.flush()
        logger.info("Announcement '%s' sent to %d user(s)", title, len(user_ids))
        return len(user_ids)

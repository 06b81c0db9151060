"""Notification Pydantic schemas for request / response validation."""


import uuid
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from expense_tracker.common.constants import EntityType, NotificationType, UserRole
from expense_tracker.common.pagination import PaginationMeta


# ── Related entity (tagged union over two storage columns) ──────────

class ReportRef(BaseModel):
    kind: Literal["report"] = "report"
    report_id: int


class ExpenseRef(BaseModel):
    kind: Literal["expense"] = "expense"
    expense_id: int


class SystemRef(BaseModel):
    kind: Literal["system"] = "system"


RelatedEntity = Annotated[
    Union[ReportRef, ExpenseRef, SystemRef],
    Field(discriminator="kind"),
]


def related_to_columns(
    related: Optional[RelatedEntity],
) -> tuple[Optional[EntityType], Optional[str]]:
    """``ReportRef(report_id=7)`` → ``(EntityType.REPORT, "7")``."""
    if related is None:
        return None, None
    if isinstance(related, ReportRef):
        return EntityType.REPORT, str(related.report_id)
    if isinstance(related, ExpenseRef):
        return EntityType.EXPENSE, str(related.expense_id)
    return EntityType.SYSTEM, None


def related_from_columns(
    entity_type: Optional[EntityType],
    entity_id: Optional[str],
) -> Optional[RelatedEntity]:
    """Inverse of :func:`related_to_columns`; malformed rows map to ``None``."""
    if entity_type == EntityType.SYSTEM:
        return SystemRef()
    if entity_id is None or not entity_id.isdigit():
        return None
    if entity_type == EntityType.REPORT:
        return ReportRef(report_id=int(entity_id))
    if entity_type == EntityType.EXPENSE:
        return ExpenseRef(expense_id=int(entity_id))
    return None


# ── Requests ────────────────────────────────────────────────────────

class AnnouncementCreate(BaseModel):
    """Admin broadcast. ``target_role=None`` addresses every active user."""

    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)
    target_role: Optional[UserRole] = None
    expires_at: Optional[datetime] = None


# ── Responses ───────────────────────────────────────────────────────

class NotificationResponse(BaseModel):
    """Single notification in API responses."""

    id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    read: bool
    related: Optional[RelatedEntity] = None
    created_at: datetime
    expires_at: Optional[datetime] = None

    @classmethod
    def from_orm_row(cls, row) -> "NotificationResponse":
        return cls(
            id=row.id,
            type=row.type,
            title=row.title,
            message=row.message,
            read=row.read,
            related=related_from_columns(row.related_entity_type, row.related_entity_id),
            created_at=row.created_at,
            expires_at=row.expires_at,
        )


class NotificationListMeta(PaginationMeta):
    """Extends standard pagination meta with unread count."""

    unread: int


class NotificationListResponse(BaseModel):
    """Paginated list of notifications with unread count in meta."""

    data: list[NotificationResponse]
    meta: NotificationListMeta

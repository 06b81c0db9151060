"""Append-only history ORM models: ReportHistory, ExpenseHistory."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_tracker.common.constants import ExpenseEventType, ReportEventType
from expense_tracker.database import Base


class ReportHistory(Base):
    """Immutable log of every lifecycle event on a report."""

    __tablename__ = "report_history"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    report_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False,
    )
    event_type: Mapped[ReportEventType] = mapped_column(
        sa.Enum(ReportEventType, name="report_event_type"), nullable=False,
    )
    event_date: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    details: Mapped[Optional[str]] = mapped_column(sa.Text)
    performed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    # Relationships
    performed_by = relationship("User", lazy="joined")

    __table_args__ = (
        sa.Index("ix_report_history_report_id", "report_id"),
        sa.Index("ix_report_history_event_date", "event_date"),
    )

    def __repr__(self) -> str:
        return f"<ReportHistory report={self.report_id} {self.event_type.value}>"


class ExpenseHistory(Base):
    """Immutable log of changes to an expense and its report membership."""

    __tablename__ = "expense_history"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    expense_id: Mapped[int] = mapped_column(
        sa.Integer, sa.ForeignKey("expenses.id", ondelete="CASCADE"), nullable=False,
    )
    report_id: Mapped[Optional[int]] = mapped_column(
        sa.Integer, sa.ForeignKey("reports.id", ondelete="SET NULL"), nullable=True,
    )
    event_type: Mapped[ExpenseEventType] = mapped_column(
        sa.Enum(ExpenseEventType, name="expense_event_type"), nullable=False,
    )
    event_date: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    details: Mapped[Optional[str]] = mapped_column(sa.Text)
    performed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    # Relationships
    performed_by = relationship("User", lazy="joined")

    __table_args__ = (
        sa.Index("ix_expense_history_expense_id", "expense_id"),
    )

    def __repr__(self) -> str:
        return f"<ExpenseHistory expense={self.expense_id} {self.event_type.value}>"

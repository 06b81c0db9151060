"""Expenses ORM model: Expense."""

from __future__ import annotations

import uuid
from datetime import date as date_type, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_tracker.common.constants import ExpenseCategory, ExpenseStatus
from expense_tracker.database import Base


class Expense(Base):
    """A single spend line item, optionally attached to a report."""

    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    amount: Mapped[Decimal] = mapped_column(sa.Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(sa.String(10), default="INR")
    merchant: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    date: Mapped[date_type] = mapped_column(sa.Date, nullable=False)
    description: Mapped[str] = mapped_column(sa.Text, nullable=False)
    category: Mapped[ExpenseCategory] = mapped_column(
        sa.Enum(ExpenseCategory, name="expense_category"),
        nullable=False,
        default=ExpenseCategory.OTHER,
    )
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    receipt_urls: Mapped[list] = mapped_column(JSONB, default=list)
    status: Mapped[ExpenseStatus] = mapped_column(
        sa.Enum(ExpenseStatus, name="expense_status"),
        nullable=False,
        default=ExpenseStatus.UNREPORTED,
    )
    claim_reimbursement: Mapped[Optional[bool]] = mapped_column(sa.Boolean, default=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    report_id: Mapped[Optional[int]] = mapped_column(
        sa.Integer, sa.ForeignKey("reports.id", ondelete="SET NULL"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    report = relationship("Report", back_populates="expenses", lazy="raise")

    __table_args__ = (
        sa.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        sa.Index("ix_expenses_user_id", "user_id"),
        sa.Index("ix_expenses_report_id", "report_id"),
    )

    def __repr__(self) -> str:
        return f"<Expense #{self.id} {self.merchant[:30]} {self.amount}>"

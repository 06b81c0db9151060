"""Expenses Pydantic v2 schemas — request/response validation."""

import uuid
from datetime import date as date_type, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from expense_tracker.common.constants import ExpenseCategory, ExpenseStatus
from expense_tracker.common.formatting import (
    StatusDisplay,
    expense_status_display,
    format_currency,
)
from expense_tracker.common.pagination import PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class ExpenseCreate(BaseModel):
    """Create a new expense, optionally straight onto a pending report."""

    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    currency: str = Field("INR", max_length=10)
    merchant: str = Field(..., min_length=1, max_length=255)
    date: date_type
    description: str = Field(..., min_length=1, max_length=2000)
    category: ExpenseCategory = ExpenseCategory.OTHER
    notes: Optional[str] = Field(None, max_length=2000)
    receipt_urls: List[str] = Field(default_factory=list)
    claim_reimbursement: bool = True
    report_id: Optional[int] = None


class ExpenseUpdate(BaseModel):
    """Update an existing expense. Only fields sent are changed."""

    amount: Optional[Decimal] = Field(None, gt=0, max_digits=12, decimal_places=2)
    currency: Optional[str] = Field(None, max_length=10)
    merchant: Optional[str] = Field(None, min_length=1, max_length=255)
    date: Optional[date_type] = None
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    category: Optional[ExpenseCategory] = None
    notes: Optional[str] = Field(None, max_length=2000)
    receipt_urls: Optional[List[str]] = None
    claim_reimbursement: Optional[bool] = None


# ═════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════


class ExpenseOut(BaseModel):
    """Full expense representation."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    amount: Decimal
    currency: str = "INR"
    merchant: str
    date: date_type
    description: str
    category: ExpenseCategory
    notes: Optional[str] = None
    receipt_urls: List[str] = []
    status: ExpenseStatus
    claim_reimbursement: Optional[bool] = True
    user_id: uuid.UUID
    report_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status_display(self) -> StatusDisplay:
        return expense_status_display(self.status)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def formatted_amount(self) -> str:
        return format_currency(self.amount)


class ExpenseResponse(BaseModel):
    data: ExpenseOut


class ExpenseListResponse(BaseModel):
    data: List[ExpenseOut]
    meta: PaginationMeta


# ═════════════════════════════════════════════════════════════════════
# Bulk delete
# ═════════════════════════════════════════════════════════════════════


class BulkDeleteRequest(BaseModel):
    expense_ids: List[int] = Field(..., min_length=1, max_length=100)


class BulkDeleteItem(BaseModel):
    id: int
    success: bool
    error: Optional[str] = None


class BulkDeleteResult(BaseModel):
    """Per-id outcome of a bulk delete; each id commits or rolls back alone."""

    requested: int = 0
    succeeded: int = 0
    failed: int = 0
    results: List[BulkDeleteItem] = Field(default_factory=list)


# ═════════════════════════════════════════════════════════════════════
# Stats
# ═════════════════════════════════════════════════════════════════════


class CategoryStat(BaseModel):
    category: ExpenseCategory
    count: int = 0
    amount: Decimal = Decimal("0.00")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def formatted_amount(self) -> str:
        return format_currency(self.amount)


class StatusStat(BaseModel):
    status: ExpenseStatus
    count: int = 0
    amount: Decimal = Decimal("0.00")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def formatted_amount(self) -> str:
        return format_currency(self.amount)


class ExpenseStats(BaseModel):
    """Counts and sums of the caller's expenses, overall and grouped."""

    total_count: int = 0
    total_amount: Decimal = Decimal("0.00")
    by_category: List[CategoryStat] = Field(default_factory=list)
    by_status: List[StatusStat] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def formatted_total(self) -> str:
        return format_currency(self.total_amount)


class ExpenseStatsResponse(BaseModel):
    data: ExpenseStats

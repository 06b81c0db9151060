"""Dashboard Pydantic v2 schemas — response models for the admin metrics endpoints."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field, model_validator

from expense_tracker.common.constants import ExpenseCategory, ReportStatus, Timeframe
from expense_tracker.common.formatting import (
    StatusDisplay,
    format_currency,
    report_status_display,
)


class DateRange(BaseModel):
    """Inclusive window the amounts were summed over (UTC)."""

    start: datetime
    end: datetime


# ═════════════════════════════════════════════════════════════════════
# GET /metrics
# ═════════════════════════════════════════════════════════════════════


class FinancialOverview(BaseModel):
    pending_reimbursement_amount: Decimal = Field(
        Decimal("0.00"), description="Expense total of approved, not yet reimbursed reports",
    )
    ytd_approved_count: int = 0
    ytd_rejected_count: int = 0
    avg_processing_days: float = Field(
        0.0, description="Mean whole days from submission to approval or rejection",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def formatted_pending_reimbursement(self) -> str:
        return format_currency(self.pending_reimbursement_amount)


class ApprovalQueueMetrics(BaseModel):
    awaiting_approval_count: int = 0
    awaiting_reimbursement_count: int = 0
    pending_over_seven_days_count: int = 0


class ReimbursedAmounts(BaseModel):
    """Reimbursed expense totals per standard timeframe."""

    today: Decimal = Decimal("0.00")
    this_week: Decimal = Decimal("0.00")
    this_month: Decimal = Decimal("0.00")
    this_quarter: Decimal = Decimal("0.00")
    this_year: Decimal = Decimal("0.00")
    all_time: Decimal = Decimal("0.00")


class RecentActivityItem(BaseModel):
    report_id: int
    title: str
    status: ReportStatus
    updated_at: Optional[datetime] = None
    user_name: str
    user_email: str

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status_display(self) -> StatusDisplay:
        return report_status_display(self.status)


class DashboardMetrics(BaseModel):
    financial_overview: FinancialOverview
    approval_queue: ApprovalQueueMetrics
    reimbursed_amounts: ReimbursedAmounts
    recent_activity: List[RecentActivityItem] = Field(default_factory=list)


class DashboardMetricsResponse(BaseModel):
    data: DashboardMetrics


# ═════════════════════════════════════════════════════════════════════
# GET /metrics/category-breakdown, GET /metrics/filtered-total
# ═════════════════════════════════════════════════════════════════════


class CategoryAmount(BaseModel):
    category: ExpenseCategory
    amount: Decimal

    @computed_field  # type: ignore[prop-decorator]
    @property
    def formatted_amount(self) -> str:
        return format_currency(self.amount)


class CategoryBreakdown(BaseModel):
    timeframe: Timeframe
    date_range: DateRange
    categories: List[CategoryAmount] = Field(default_factory=list)


class CategoryBreakdownResponse(BaseModel):
    data: CategoryBreakdown


class FilteredTotal(BaseModel):
    timeframe: Timeframe
    category: Optional[ExpenseCategory] = None
    date_range: DateRange
    total_reimbursed: Decimal

    @computed_field  # type: ignore[prop-decorator]
    @property
    def formatted_total(self) -> str:
        return format_currency(self.total_reimbursed)


class FilteredTotalResponse(BaseModel):
    data: FilteredTotal


# ═════════════════════════════════════════════════════════════════════
# POST /metrics/custom-range
# ═════════════════════════════════════════════════════════════════════


class CustomRangeRequest(BaseModel):
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _ordered(self) -> "CustomRangeRequest":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class CustomRangeTotal(BaseModel):
    date_range: DateRange
    total_reimbursed: Decimal
    report_count: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def formatted_total(self) -> str:
        return format_currency(self.total_reimbursed)


class CustomRangeResponse(BaseModel):
    data: CustomRangeTotal

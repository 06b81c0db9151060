"""Reports Pydantic v2 schemas — request/response validation."""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from expense_tracker.common.constants import ReportStatus
from expense_tracker.common.formatting import StatusDisplay
from expense_tracker.common.pagination import PaginationMeta
from expense_tracker.expenses.schemas import ExpenseOut


# ═════════════════════════════════════════════════════════════════════
# Embedded
# ═════════════════════════════════════════════════════════════════════


class ReportUserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    display_name: str


# ═════════════════════════════════════════════════════════════════════
# Requests
# ═════════════════════════════════════════════════════════════════════


class ReportCreate(BaseModel):
    """Create a new (PENDING) report."""

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def _check_dates(self) -> "ReportCreate":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ExpenseIdsRequest(BaseModel):
    expense_ids: List[int] = Field(..., min_length=1)


class BulkIdsRequest(BaseModel):
    report_ids: List[int] = Field(..., min_length=1, max_length=100)


class RejectRequest(BaseModel):
    # Presence is enforced by the lifecycle engine so that a missing or
    # blank reason yields the same invalid-state error for every caller.
    reason: Optional[str] = Field(None, max_length=2000)


class BulkRejectRequest(BulkIdsRequest):
    reason: Optional[str] = Field(None, max_length=2000)


class ReimburseRequest(BaseModel):
    payment_reference: Optional[str] = Field(None, max_length=255)


class BulkReimburseRequest(BulkIdsRequest):
    payment_reference: Optional[str] = Field(None, max_length=255)


# ═════════════════════════════════════════════════════════════════════
# Responses
# ═════════════════════════════════════════════════════════════════════


class ReportOut(BaseModel):
    """Report plus its UI projection (status display, formatted totals)."""

    id: int
    title: str
    description: Optional[str] = None
    status: ReportStatus
    status_display: StatusDisplay
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    date_range: str = ""
    total_amount: Decimal
    reimbursable_amount: Decimal
    non_reimbursable_amount: Decimal
    formatted_total: str
    formatted_reimbursable: str
    formatted_non_reimbursable: str
    expense_count: int
    submitted_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    reimbursed_at: Optional[datetime] = None
    reimbursement_notes: Optional[str] = None
    user: Optional[ReportUserBrief] = None
    approver: Optional[ReportUserBrief] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ReportDetailOut(ReportOut):
    expenses: List[ExpenseOut] = []


class ReportResponse(BaseModel):
    data: ReportDetailOut


class ReportListResponse(BaseModel):
    data: List[ReportOut]
    meta: PaginationMeta


class StatusSummary(BaseModel):
    count: int = 0
    total_amount: Decimal = Decimal("0.00")
    formatted_total: str = "Rs.0.00"
    reimbursable_amount: Decimal = Decimal("0.00")
    non_reimbursable_amount: Decimal = Decimal("0.00")
    formatted_reimbursable: str = "Rs.0.00"


class ReportSummary(BaseModel):
    """Counts and amounts of the caller's reports, per status."""

    total_reports: int
    total_amount: Decimal
    formatted_total: str
    reimbursable_amount: Decimal
    non_reimbursable_amount: Decimal
    formatted_reimbursable: str
    by_status: dict[ReportStatus, StatusSummary]


class BulkResult(BaseModel):
    requested: int
    succeeded: int
    skipped: int
    failed: int
    succeeded_ids: List[int] = []
    skipped_ids: List[int] = []
    failed_ids: List[int] = []
